"""
Timer abstraction used for token refresh scheduling.

after(delay, callback) arms a one-shot timer and returns a handle with
cancel(). Coroutine callbacks are run as tasks on the event loop.
"""

import asyncio
import inspect
from typing import Any, Callable, Protocol

import structlog

logger = structlog.get_logger()


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timer(Protocol):
    def after(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


class LoopTimer:
    """Timer backed by the running asyncio event loop."""

    def __init__(self):
        # Strong references so fired tasks are not garbage collected mid-run
        self._tasks: set[asyncio.Task] = set()

    def after(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(delay, 0), self._fire, callback)

    def _fire(self, callback: Callable[[], Any]) -> None:
        result = callback()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("timer_callback_failed", error=repr(task.exception()))

"""
Long-polling worker.

Repeatedly fetches pending notifications from the queue's poll URL and
hands them to the router. A failed poll waits a fixed backoff and tries
again; the loop only ends when the owning session stops it.
"""

import asyncio
from typing import Awaitable, Callable

import structlog

from workspace_integrations.core.config import get_settings
from workspace_integrations.core.errors import TransportError
from workspace_integrations.core.http import Transport
from workspace_integrations.core.metrics import get_metrics
from workspace_integrations.core.router import NotificationRouter

logger = structlog.get_logger()


class PollLoop:
    """Fetch-dispatch loop for one poll URL."""

    def __init__(
        self,
        transport: Transport,
        router: NotificationRouter,
        poll_url: str,
        *,
        backoff: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = get_settings()
        self.transport = transport
        self.router = router
        self.poll_url = poll_url
        self.backoff = backoff if backoff is not None else self.settings.poll_backoff_seconds
        self._sleep = sleep
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def _fetch(self) -> list:
        data = await self.transport.get(self.poll_url, timeout=self.settings.poll_timeout)
        messages = data.get("messages", []) if isinstance(data, dict) else None
        if not isinstance(messages, list):
            raise TransportError("Poll response has no message list", body=data)
        return messages

    async def run(self) -> None:
        """Poll until stop() is called."""
        self._running = True
        metrics = get_metrics()
        metrics.set_gauge("wi_polling", value=1)
        logger.info("polling_started", url=self.poll_url)

        try:
            while self._running:
                try:
                    messages = await self._fetch()
                except TransportError as e:
                    metrics.increment("wi_polls_total", {"status": "error"})
                    logger.warning(
                        "poll_failed",
                        error=str(e),
                        status=e.status_code,
                        retry_in=self.backoff,
                    )
                    await self._sleep(self.backoff)
                    continue

                metrics.increment("wi_polls_total", {"status": "success"})
                if not messages:
                    continue
                logger.debug("poll_batch", count=len(messages))
                metrics.increment("wi_poll_messages_total", value=len(messages))
                try:
                    await self.router.process_notifications(messages)
                except Exception as e:
                    metrics.increment("wi_polls_total", {"status": "dispatch_error"})
                    logger.error("poll_dispatch_failed", error=repr(e), count=len(messages))
        finally:
            metrics.set_gauge("wi_polling", value=0)

        logger.info("polling_stopped", url=self.poll_url)

    def start(self) -> asyncio.Task:
        """Run the loop as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    def stop(self) -> None:
        """Clear the liveness flag and cancel the background task, if any."""
        self._running = False
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def close(self) -> None:
        self.stop()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

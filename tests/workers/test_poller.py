"""
Tests for the long-polling worker.

Verifies:
- Failed polls back off 5 seconds and retry until one succeeds
- Successful batches are dispatched in order
- Stopping during a backoff ends the loop without another fetch
- The background task can be closed while a poll is in flight
- Malformed records or a failing dispatch do not end polling
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from workspace_integrations.core.errors import TransportError
from workspace_integrations.core.metrics import get_metrics
from workspace_integrations.core.router import NotificationRouter
from workspace_integrations.workers.poller import PollLoop

POLL_URL = "https://queue.example.com/poll/abc"


def _make_loop(get, sleeps: list[float] | None = None):
    transport = MagicMock()
    transport.get = AsyncMock(side_effect=get)
    router = MagicMock()
    router.process_notifications = AsyncMock()

    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    loop = PollLoop(transport, router, POLL_URL, sleep=fake_sleep)
    return loop, transport, router


class TestRun:
    @pytest.mark.asyncio
    async def test_retries_after_failures_then_dispatches(self):
        batch = [{"type": "status", "changes": {"updated": {"Audio.Volume": 33}}}]
        sleeps: list[float] = []
        calls = 0

        async def get(url, **kwargs):
            nonlocal calls
            calls += 1
            if calls < 3:
                raise TransportError("bad gateway", status_code=502)
            loop.stop()
            return {"messages": batch}

        loop, transport, router = _make_loop(get, sleeps)
        await loop.run()

        assert transport.get.await_count == 3
        assert sleeps == [5.0, 5.0]
        router.process_notifications.assert_awaited_once_with(batch)

    @pytest.mark.asyncio
    async def test_polls_the_poll_url(self):
        async def get(url, **kwargs):
            loop.stop()
            return {"messages": []}

        loop, transport, router = _make_loop(get)
        await loop.run()

        assert transport.get.await_args.args[0] == POLL_URL
        router.process_notifications.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_body_backs_off(self):
        sleeps: list[float] = []
        responses = iter([{"unexpected": True}, {"messages": [{"type": "healthCheck"}]}])

        async def get(url, **kwargs):
            body = next(responses)
            if "messages" in body:
                loop.stop()
            return body

        loop, _, router = _make_loop(get, sleeps)
        await loop.run()

        assert sleeps == [5.0]
        router.process_notifications.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_batches_dispatched_in_fetch_order(self):
        batches = iter([{"messages": [{"n": 1}]}, {"messages": [{"n": 2}]}])
        dispatched = []

        async def get(url, **kwargs):
            try:
                return next(batches)
            except StopIteration:
                loop.stop()
                return {"messages": []}

        loop, _, router = _make_loop(get)
        router.process_notifications = AsyncMock(side_effect=lambda msgs: dispatched.extend(msgs))
        await loop.run()

        assert dispatched == [{"n": 1}, {"n": 2}]

    @pytest.mark.asyncio
    async def test_stop_during_backoff_prevents_next_fetch(self):
        async def get(url, **kwargs):
            raise TransportError("down")

        loop, transport, _ = _make_loop(get)

        async def stopping_sleep(seconds):
            loop.stop()

        loop._sleep = stopping_sleep
        await loop.run()

        assert transport.get.await_count == 1
        assert not loop.running


class TestTask:
    @pytest.mark.asyncio
    async def test_close_cancels_in_flight_poll(self):
        started = asyncio.Event()

        async def get(url, **kwargs):
            started.set()
            await asyncio.Event().wait()

        loop, _, _ = _make_loop(get)
        task = loop.start()
        await asyncio.wait_for(started.wait(), timeout=1)

        await loop.close()

        assert task.done()
        assert not loop.running


class TestResilience:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_batch", [[None], ["x"], [{"type": ["status"]}]])
    async def test_malformed_records_do_not_end_polling(self, bad_batch):
        router = NotificationRouter()
        got = []
        router.on_status("Audio.Volume", lambda d, p, v, n: got.append(v))
        responses = iter(
            [
                {"messages": bad_batch},
                {"messages": [{"type": "status", "changes": {"updated": {"Audio.Volume": 40}}}]},
            ]
        )

        async def get(url, **kwargs):
            body = next(responses)
            if body["messages"] is not bad_batch:
                loop.stop()
            return body

        transport = MagicMock()
        transport.get = AsyncMock(side_effect=get)
        loop = PollLoop(transport, router, POLL_URL, sleep=AsyncMock())
        await loop.run()

        assert transport.get.await_count == 2
        assert got == [40]

    @pytest.mark.asyncio
    async def test_dispatch_failure_keeps_polling(self):
        batches = iter([{"messages": [{"n": 1}]}, {"messages": [{"n": 2}]}])

        async def get(url, **kwargs):
            try:
                return next(batches)
            except StopIteration:
                loop.stop()
                return {"messages": []}

        loop, transport, router = _make_loop(get)
        router.process_notifications = AsyncMock(side_effect=[RuntimeError("boom"), None])
        await loop.run()

        assert transport.get.await_count == 3
        assert router.process_notifications.await_count == 2
        router.process_notifications.assert_awaited_with([{"n": 2}])

    @pytest.mark.asyncio
    async def test_polling_gauge_tracks_loop(self):
        seen = []

        async def get(url, **kwargs):
            seen.append(get_metrics().get_gauge("wi_polling"))
            loop.stop()
            return {"messages": []}

        loop, _, _ = _make_loop(get)
        await loop.run()

        assert seen == [1]
        assert get_metrics().get_gauge("wi_polling") == 0

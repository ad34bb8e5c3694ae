"""Tests for whatsnew.analytics.mark_seen: debounced single-flight coordinator."""
from __future__ import annotations

import asyncio
import gc

import pytest

from whatsnew.analytics.mark_seen import (
    MARK_SEEN_DEBOUNCE_SECONDS,
    MarkSeenCoordinator,
    MarkSeenState,
)
from whatsnew.analytics.tracker import AnalyticsTracker


class UpstreamError(Exception):
    def __init__(self, status: int) -> None:
        super().__init__(f"upstream failed with {status}: token=abc123")
        self.status = status


def _coordinator(provider) -> MarkSeenCoordinator:
    return MarkSeenCoordinator(
        AnalyticsTracker(provider),
        surface="panel",
        tenant_id="sha256:tenant",
        user_id="admin-1",
    )


def test_starts_idle(recording_provider):
    assert _coordinator(recording_provider).state is MarkSeenState.IDLE


def test_success_tracks_event_and_settles(recording_provider):
    coordinator = _coordinator(recording_provider)

    async def mark_seen():
        return {"marked": 3}

    result = asyncio.run(coordinator.run(mark_seen))

    assert result == {"marked": 3}
    assert coordinator.state is MarkSeenState.SETTLED
    assert recording_provider.events == [
        (
            "whats_new.mark_seen_success",
            {
                "surface": "panel",
                "tenant_id": "sha256:tenant",
                "user_id": "admin-1",
                "result": "success",
            },
        )
    ]


def test_failure_tracks_error_code_and_reraises(recording_provider):
    coordinator = _coordinator(recording_provider)

    async def mark_seen():
        raise UpstreamError(503)

    with pytest.raises(UpstreamError):
        asyncio.run(coordinator.run(mark_seen))

    assert coordinator.state is MarkSeenState.SETTLED
    name, properties = recording_provider.events[0]
    assert name == "whats_new.mark_seen_failure"
    assert properties["result"] == "failure"
    assert properties["error_code"] == "server_error"
    assert "abc123" not in repr(properties)


def test_concurrent_callers_share_one_request(recording_provider):
    coordinator = _coordinator(recording_provider)
    calls = 0

    async def mark_seen():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return calls

    async def scenario():
        first = asyncio.create_task(coordinator.run(mark_seen))
        await asyncio.sleep(0)
        assert coordinator.state is MarkSeenState.IN_FLIGHT
        second = asyncio.create_task(coordinator.run(mark_seen))
        return await asyncio.gather(first, second)

    results = asyncio.run(scenario())

    assert results == [1, 1]
    assert calls == 1
    assert len(recording_provider.events) == 1


def test_invalid_surface_drops_event_but_not_request(recording_provider):
    coordinator = MarkSeenCoordinator(AnalyticsTracker(recording_provider), surface="sidebar")

    async def mark_seen():
        return "ok"

    assert asyncio.run(coordinator.run(mark_seen)) == "ok"
    assert recording_provider.events == []


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _counting_mark_seen():
    calls = []

    async def mark_seen():
        calls.append(1)
        return len(calls)

    return mark_seen, calls


class TestDebounce:
    def _coordinator(self, provider, clock, **kwargs) -> MarkSeenCoordinator:
        return MarkSeenCoordinator(
            AnalyticsTracker(provider), surface="panel", clock=clock, **kwargs
        )

    def test_default_window_is_one_minute(self, recording_provider) -> None:
        assert MARK_SEEN_DEBOUNCE_SECONDS == 60.0
        assert self._coordinator(recording_provider, FakeClock()).debounce_seconds == 60.0

    def test_first_call_is_never_debounced(self, recording_provider) -> None:
        assert not self._coordinator(recording_provider, FakeClock()).is_debounced()

    def test_skipped_inside_window(self, recording_provider) -> None:
        clock = FakeClock()
        coordinator = self._coordinator(recording_provider, clock)
        mark_seen, calls = _counting_mark_seen()

        async def scenario():
            await coordinator.run(mark_seen)
            clock.now += 59
            return await coordinator.run(mark_seen)

        assert asyncio.run(scenario()) is None
        assert len(calls) == 1
        assert len(recording_provider.events) == 1

    def test_runs_when_unread(self, recording_provider) -> None:
        clock = FakeClock()
        coordinator = self._coordinator(recording_provider, clock)
        mark_seen, calls = _counting_mark_seen()

        async def scenario():
            await coordinator.run(mark_seen)
            assert coordinator.has_unread is False
            clock.now += 1
            coordinator.has_unread = True
            return await coordinator.run(mark_seen)

        assert asyncio.run(scenario()) == 2
        assert len(calls) == 2
        assert len(recording_provider.events) == 2

    def test_runs_after_window(self, recording_provider) -> None:
        clock = FakeClock()
        coordinator = self._coordinator(recording_provider, clock)
        mark_seen, calls = _counting_mark_seen()

        async def scenario():
            await coordinator.run(mark_seen)
            clock.now += 60
            return await coordinator.run(mark_seen)

        assert asyncio.run(scenario()) == 2
        assert len(calls) == 2
        assert coordinator.state is MarkSeenState.SETTLED

    def test_failure_does_not_start_window(self, recording_provider) -> None:
        clock = FakeClock()
        coordinator = self._coordinator(recording_provider, clock)
        attempts = []

        async def mark_seen():
            attempts.append(1)
            if len(attempts) == 1:
                raise UpstreamError(500)
            return "ok"

        async def scenario():
            with pytest.raises(UpstreamError):
                await coordinator.run(mark_seen)
            return await coordinator.run(mark_seen)

        assert asyncio.run(scenario()) == "ok"
        assert len(attempts) == 2


def test_cancelled_waiter_leaves_no_unretrieved_exception(recording_provider):
    unhandled = []

    async def mark_seen():
        await asyncio.sleep(0.01)
        raise UpstreamError(503)

    async def scenario():
        asyncio.get_running_loop().set_exception_handler(
            lambda loop, context: unhandled.append(context)
        )
        coordinator = _coordinator(recording_provider)
        waiter = asyncio.create_task(coordinator.run(mark_seen))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        await asyncio.sleep(0.05)
        assert coordinator.state is MarkSeenState.SETTLED
        del coordinator
        gc.collect()
        await asyncio.sleep(0)

    asyncio.run(scenario())

    assert unhandled == []
    assert recording_provider.events[0][0] == "whats_new.mark_seen_failure"

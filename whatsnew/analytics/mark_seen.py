"""Debounced, single-flight coordination for "mark posts seen" calls.

The UI may ask to mark posts seen from several places at once (panel open,
page load, a debounce timer).  Only one request is in flight at a time;
concurrent callers share its outcome.  Each outcome is reported to
analytics as ``mark_seen_success`` or ``mark_seen_failure``.

After a successful write, further calls are skipped for
``debounce_seconds`` unless the caller reports unread posts again.

State machine: ``idle -> in_flight -> settled -> in_flight -> ...``.
State lives on the coordinator instance, one per page/session.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from whatsnew.analytics.errors import map_seen_failure_to_error_code
from whatsnew.analytics.taxonomy import EventName
from whatsnew.analytics.tracker import AnalyticsTracker

logger = logging.getLogger(__name__)

MARK_SEEN_DEBOUNCE_SECONDS = 60.0


class MarkSeenState(StrEnum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    SETTLED = "settled"


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # A cancelled waiter leaves the shielded task unobserved.
    if not task.cancelled():
        task.exception()


class MarkSeenCoordinator:
    def __init__(
        self,
        tracker: AnalyticsTracker,
        surface: str,
        tenant_id: str | None = None,
        user_id: str | None = None,
        *,
        has_unread: bool = False,
        debounce_seconds: float = MARK_SEEN_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tracker = tracker
        self.surface = surface
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.has_unread = has_unread
        self.debounce_seconds = debounce_seconds
        self.state = MarkSeenState.IDLE
        self._clock = clock
        self._last_write_at: float | None = None
        self._task: asyncio.Task[Any] | None = None

    def _base_properties(self) -> dict[str, Any]:
        return {
            "surface": self.surface,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
        }

    def is_debounced(self) -> bool:
        """Return True if a call now would be skipped."""
        if self.has_unread or self._last_write_at is None:
            return False
        return self._clock() - self._last_write_at < self.debounce_seconds

    async def _execute(self, mark_seen: Callable[[], Awaitable[Any]]) -> Any:
        try:
            result = await mark_seen()
        except Exception as exc:
            error_code = map_seen_failure_to_error_code(exc)
            logger.info("Mark-seen failed: error_code=%s", error_code)
            self.tracker.track_event(
                EventName.MARK_SEEN_FAILURE,
                {**self._base_properties(), "result": "failure", "error_code": error_code},
            )
            raise
        finally:
            self.state = MarkSeenState.SETTLED

        self._last_write_at = self._clock()
        self.has_unread = False
        self.tracker.track_event(
            EventName.MARK_SEEN_SUCCESS,
            {**self._base_properties(), "result": "success"},
        )
        return result

    async def run(self, mark_seen: Callable[[], Awaitable[Any]]) -> Any:
        """Run *mark_seen*, or join the request already in flight.

        Returns ``None`` without calling *mark_seen* while debounced.  The
        request's own exception is re-raised to every waiting caller.
        """
        if self.is_debounced():
            logger.debug("Mark-seen skipped: debounced")
            return None

        if self._task is None or self._task.done():
            self.state = MarkSeenState.IN_FLIGHT
            self._task = asyncio.ensure_future(self._execute(mark_seen))
            self._task.add_done_callback(_consume_exception)
        return await asyncio.shield(self._task)

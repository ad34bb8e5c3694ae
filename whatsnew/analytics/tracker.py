"""Analytics tracker: validate, then hand off to a provider.

Telemetry must never break the feature it instruments: an invalid event is
dropped silently, and any exception raised by the provider is swallowed.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

from whatsnew.analytics.taxonomy import DEFAULT_TAXONOMY, Taxonomy
from whatsnew.analytics.validator import sanitize_event

logger = logging.getLogger(__name__)


class AnalyticsProvider(Protocol):
    def track(self, event_name: str, properties: Mapping[str, Any]) -> None:
        ...


class NoopAnalyticsProvider:
    """Provider used when no analytics backend is configured."""

    def track(self, event_name: str, properties: Mapping[str, Any]) -> None:
        return None


class AnalyticsTracker:
    def __init__(
        self,
        provider: AnalyticsProvider | None = None,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
    ) -> None:
        self.provider = provider if provider is not None else NoopAnalyticsProvider()
        self.taxonomy = taxonomy

    def track_event(self, event_name: Any, raw_properties: Any = None) -> None:
        """Send *event_name* with its sanitized properties, if it is valid.

        Returns nothing and never raises.
        """
        sanitized = sanitize_event(event_name, raw_properties, self.taxonomy)
        if sanitized is None:
            return

        try:
            self.provider.track(sanitized.event_name, sanitized.properties)
        except Exception as exc:
            # SAFETY: exception text may echo the payload, log the type only
            logger.debug(
                "Analytics provider failed: event=%s error=%s",
                sanitized.event_name,
                type(exc).__name__,
            )


def create_analytics_tracker(provider: AnalyticsProvider | None = None) -> AnalyticsTracker:
    return AnalyticsTracker(provider)

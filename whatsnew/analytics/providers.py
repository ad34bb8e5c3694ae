"""Concrete analytics providers.

Every provider receives properties that already passed the validator.
Providers may still raise; ``AnalyticsTracker`` isolates those failures.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import posthog

from whatsnew.analytics.taxonomy import PropertyKey
from whatsnew.analytics.tracker import AnalyticsProvider, NoopAnalyticsProvider
from whatsnew.core.settings import Settings

logger = logging.getLogger(__name__)

ANONYMOUS_DISTINCT_ID = "anonymous"


class LoggingAnalyticsProvider:
    """Write one log line per event.  Property values are never logged."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def track(self, event_name: str, properties: Mapping[str, Any]) -> None:
        logger.log(
            self.level,
            "Analytics event: name=%s keys=%s",
            event_name,
            ",".join(sorted(properties)),
        )


class PostHogAnalyticsProvider:
    """Forward events to PostHog.

    ``distinct_id`` is the ``user_id`` property when present, then the
    (already hashed) ``tenant_id``, then :data:`ANONYMOUS_DISTINCT_ID`.
    """

    def __init__(self, client: Any, enabled: bool = True) -> None:
        self._client = client
        self._enabled = enabled

    @classmethod
    def from_settings(cls, settings: Settings) -> PostHogAnalyticsProvider:
        enabled = settings.analytics_enabled and bool(settings.posthog_api_key)
        if not enabled:
            logger.info("PostHog analytics provider disabled (env=%s)", settings.app_env)
            return cls(client=None, enabled=False)

        client = posthog.Posthog(settings.posthog_api_key, host=settings.posthog_host)
        logger.info("PostHog analytics provider initialized (env=%s)", settings.app_env)
        return cls(client=client, enabled=True)

    @staticmethod
    def distinct_id_for(properties: Mapping[str, Any]) -> str:
        for key in (PropertyKey.USER_ID, PropertyKey.TENANT_ID):
            value = properties.get(key)
            if isinstance(value, str) and value:
                return value
        return ANONYMOUS_DISTINCT_ID

    def track(self, event_name: str, properties: Mapping[str, Any]) -> None:
        if not self._enabled or self._client is None:
            return

        self._client.capture(
            event=str(event_name),
            distinct_id=self.distinct_id_for(properties),
            properties=dict(properties),
        )


def build_provider(settings: Settings) -> AnalyticsProvider:
    """Return the provider selected by ``ANALYTICS_PROVIDER``.

    Unknown names fall back to the no-op provider.
    """
    if not settings.analytics_enabled:
        return NoopAnalyticsProvider()

    name = settings.analytics_provider.strip().lower()
    if name == "logging":
        return LoggingAnalyticsProvider()
    if name == "posthog":
        return PostHogAnalyticsProvider.from_settings(settings)
    if name != "noop":
        logger.warning("Unknown ANALYTICS_PROVIDER=%s; using noop provider", name)
    return NoopAnalyticsProvider()

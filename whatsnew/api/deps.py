"""FastAPI dependency injection: analytics provider and tracker factories."""
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from whatsnew.analytics.providers import build_provider
from whatsnew.analytics.tracker import AnalyticsProvider, AnalyticsTracker
from whatsnew.core.settings import get_settings


@lru_cache(maxsize=1)
def get_analytics_provider() -> AnalyticsProvider:
    """Return the process-wide provider selected by ``ANALYTICS_PROVIDER``."""
    return build_provider(get_settings())


def get_tracker(
    provider: AnalyticsProvider = Depends(get_analytics_provider),
) -> AnalyticsTracker:
    """Return an AnalyticsTracker bound to the configured provider."""
    return AnalyticsTracker(provider)

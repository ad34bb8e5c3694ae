"""Tests for whatsnew.analytics.providers."""
from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

from whatsnew.analytics.providers import (
    ANONYMOUS_DISTINCT_ID,
    LoggingAnalyticsProvider,
    PostHogAnalyticsProvider,
    build_provider,
)
from whatsnew.analytics.tracker import AnalyticsTracker, NoopAnalyticsProvider
from whatsnew.core.settings import Settings


def _settings(**overrides) -> Settings:
    values = {
        "ANALYTICS_ENABLED": True,
        "ANALYTICS_PROVIDER": "noop",
        "POSTHOG_API_KEY": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ---------------------------------------------------------------------------
# build_provider
# ---------------------------------------------------------------------------


def test_default_provider_is_noop():
    assert isinstance(build_provider(_settings()), NoopAnalyticsProvider)


def test_disabled_analytics_always_noop():
    settings = _settings(ANALYTICS_ENABLED=False, ANALYTICS_PROVIDER="logging")
    assert isinstance(build_provider(settings), NoopAnalyticsProvider)


def test_logging_provider_selected():
    assert isinstance(build_provider(_settings(ANALYTICS_PROVIDER=" Logging ")), LoggingAnalyticsProvider)


def test_unknown_provider_falls_back_to_noop(caplog):
    with caplog.at_level(logging.WARNING, logger="whatsnew.analytics.providers"):
        provider = build_provider(_settings(ANALYTICS_PROVIDER="segment"))
    assert isinstance(provider, NoopAnalyticsProvider)
    assert "segment" in caplog.text


def test_posthog_without_api_key_is_disabled():
    provider = build_provider(_settings(ANALYTICS_PROVIDER="posthog"))
    assert isinstance(provider, PostHogAnalyticsProvider)
    provider.track("whats_new.open_panel", {"surface": "panel"})


def test_posthog_client_built_from_settings():
    settings = _settings(
        ANALYTICS_PROVIDER="posthog",
        POSTHOG_API_KEY="phc_test",
        POSTHOG_HOST="https://eu.i.posthog.com",
    )
    with patch("whatsnew.analytics.providers.posthog.Posthog") as posthog_cls:
        provider = build_provider(settings)
        provider.track("whats_new.open_panel", {"surface": "panel"})

    posthog_cls.assert_called_once_with("phc_test", host="https://eu.i.posthog.com")
    posthog_cls.return_value.capture.assert_called_once()


# ---------------------------------------------------------------------------
# LoggingAnalyticsProvider
# ---------------------------------------------------------------------------


def test_logging_provider_logs_keys_not_values(caplog):
    provider = LoggingAnalyticsProvider()

    with caplog.at_level(logging.INFO, logger="whatsnew.analytics.providers"):
        provider.track("whats_new.open_post", {"surface": "page", "slug": "secret-launch"})

    assert "whats_new.open_post" in caplog.text
    assert "slug,surface" in caplog.text
    assert "secret-launch" not in caplog.text


# ---------------------------------------------------------------------------
# PostHogAnalyticsProvider
# ---------------------------------------------------------------------------


def test_posthog_capture_uses_user_id_as_distinct_id():
    client = MagicMock()
    provider = PostHogAnalyticsProvider(client)

    provider.track("whats_new.open_panel", {"surface": "panel", "tenant_id": "sha256:t", "user_id": "u-1"})

    client.capture.assert_called_once_with(
        event="whats_new.open_panel",
        distinct_id="u-1",
        properties={"surface": "panel", "tenant_id": "sha256:t", "user_id": "u-1"},
    )


def test_posthog_distinct_id_fallbacks():
    assert PostHogAnalyticsProvider.distinct_id_for({"tenant_id": "sha256:t"}) == "sha256:t"
    assert PostHogAnalyticsProvider.distinct_id_for({"surface": "panel"}) == ANONYMOUS_DISTINCT_ID


def test_posthog_disabled_does_not_capture():
    client = MagicMock()
    provider = PostHogAnalyticsProvider(client, enabled=False)

    provider.track("whats_new.open_panel", {"surface": "panel"})

    client.capture.assert_not_called()


def test_posthog_failure_isolated_by_tracker():
    client = MagicMock()
    client.capture.side_effect = ConnectionError("posthog unreachable")
    tracker = AnalyticsTracker(PostHogAnalyticsProvider(client))

    tracker.track_event("whats_new.open_panel", {"surface": "panel"})

    client.capture.assert_called_once()

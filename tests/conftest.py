from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient


class RecordingProvider:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def track(self, event_name: str, properties: dict[str, Any]) -> None:
        self.events.append((event_name, dict(properties)))


@pytest.fixture
def recording_provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, recording_provider: RecordingProvider) -> TestClient:
    monkeypatch.setenv("ANALYTICS_PROVIDER", "noop")

    from whatsnew.api.deps import get_analytics_provider
    from whatsnew.core.settings import get_settings

    get_settings.cache_clear()
    get_analytics_provider.cache_clear()

    from whatsnew.main import app

    app.dependency_overrides[get_analytics_provider] = lambda: recording_provider
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

    get_settings.cache_clear()
    get_analytics_provider.cache_clear()

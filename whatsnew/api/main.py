"""FastAPI application.

Registers the PII response guard and the health and analytics routers.
``whatsnew.main`` re-exports ``app`` for ASGI servers.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from whatsnew.api.middleware.pii_filter import PIIFilterMiddleware
from whatsnew.api.routes.analytics import router as analytics_router
from whatsnew.api.routes.health import router as health_router
from whatsnew.core.logging import setup_logging
from whatsnew.core.settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    settings = get_settings()
    logger.info(
        "Analytics enabled=%s provider=%s",
        settings.analytics_enabled,
        settings.analytics_provider,
    )
    yield


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(PIIFilterMiddleware)

app.include_router(health_router)
app.include_router(analytics_router)

"""Analytics routes — GET /analytics/taxonomy, POST /analytics/events.

The events endpoint is the trusted enforcement site for events reported by
the browser.  It always answers 202 so a client cannot probe which events
or properties were dropped.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from whatsnew.analytics.export import export_taxonomy
from whatsnew.analytics.tracker import AnalyticsTracker
from whatsnew.api.deps import get_tracker

router = APIRouter(prefix="/analytics", tags=["analytics"])


class TrackEventRequest(BaseModel):
    event_name: str
    properties: Any = None


@router.get("/taxonomy", summary="Export the analytics taxonomy")
def get_taxonomy() -> dict[str, Any]:
    return export_taxonomy()


@router.post(
    "/events",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Track a client-reported analytics event",
)
def track_event(
    body: TrackEventRequest,
    tracker: AnalyticsTracker = Depends(get_tracker),
) -> dict[str, str]:
    tracker.track_event(body.event_name, body.properties)
    return {"status": "accepted"}

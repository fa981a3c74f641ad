"""Event history API routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from toaster.core.dependencies import get_event_history
from toaster.services import EventHistory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["events"])

DEFAULT_LIMIT = 50


@router.get("/events")
async def list_events(
    limit: int = DEFAULT_LIMIT,
    history: EventHistory = Depends(get_event_history),
) -> dict:
    events = [entry.to_dict() for entry in history.list(limit)]
    return {"events": events, "count": len(events)}


@router.get("/events/entry/{entry_id}")
async def get_event(entry_id: str, history: EventHistory = Depends(get_event_history)) -> dict:
    entry = history.get_by_id(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return entry.to_dict()


@router.get("/events/{event_type}")
async def list_events_by_type(
    event_type: str,
    limit: int = DEFAULT_LIMIT,
    history: EventHistory = Depends(get_event_history),
) -> dict:
    events = [entry.to_dict() for entry in history.list_by_kind(event_type, limit)]
    return {"events": events, "count": len(events), "type": event_type}


@router.get("/events-stats")
async def event_stats(history: EventHistory = Depends(get_event_history)) -> dict:
    return history.stats()


@router.post("/events/clear")
async def clear_events(history: EventHistory = Depends(get_event_history)) -> dict:
    history.clear()
    return {"success": True, "message": "Event history cleared"}

"""Listener control API routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from toaster.core.dependencies import get_coordinator
from toaster.core.errors import ToasterError
from toaster.services import ListenerCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/listeners", tags=["listeners"])


@router.get("")
async def listener_status(coordinator: ListenerCoordinator = Depends(get_coordinator)) -> dict:
    return coordinator.status()


@router.post("/restart")
async def restart_listeners(coordinator: ListenerCoordinator = Depends(get_coordinator)) -> dict:
    """Stop, then start both listeners with the current credentials."""
    try:
        running = await coordinator.restart()
    except ToasterError as e:
        logger.error(f"Listener restart failed: {e}")
        raise HTTPException(status_code=503, detail=str(e)) from None
    return {"success": running, **coordinator.status()}

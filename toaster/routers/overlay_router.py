"""Overlay WebSocket transport"""

import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from toaster.core.dependencies import get_broadcaster, get_event_history
from toaster.services import ConnectionManager, EventHistory

logger = logging.getLogger(__name__)

router = APIRouter(tags=["overlay"])


@router.websocket("/ws")
async def overlay_socket(
    websocket: WebSocket,
    broadcaster: ConnectionManager = Depends(get_broadcaster),
    history: EventHistory = Depends(get_event_history),
) -> None:
    """Push every broadcast envelope; answer history pulls on request."""
    client = await broadcaster.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                continue
            if not isinstance(message, dict) or message.get("type") != "history":
                continue

            limit = message.get("limit")
            entries = history.list(limit if isinstance(limit, int) else None)
            broadcaster.send(
                client,
                {"event": "history", "payload": [entry.to_dict() for entry in entries]},
            )
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(client)

"""WebSocket fan-out to connected overlays.

Each client gets its own bounded queue drained by a sender task, so ordering
holds per client and a slow client only ever loses its own messages.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from toaster.shared.models.event import Envelope

logger = logging.getLogger(__name__)

BROADCAST_EVENT = "twitch-event"
DEFAULT_QUEUE_SIZE = 100


class OverlayClient:
    """One connected display client."""

    def __init__(self, websocket: WebSocket, queue_size: int):
        self.websocket = websocket
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self.task: asyncio.Task | None = None
        self.dropped = 0

    def offer(self, message: dict[str, Any]) -> bool:
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False


class ConnectionManager:
    """Broadcast sink backed by the set of connected overlays."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue_size = queue_size
        self._clients: set[OverlayClient] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> OverlayClient:
        await websocket.accept()
        client = OverlayClient(websocket, self._queue_size)
        client.task = asyncio.create_task(self._sender(client))
        self._clients.add(client)
        logger.info(f"[Overlay] Client connected ({self.client_count} total)")
        return client

    async def disconnect(self, client: OverlayClient) -> None:
        if client not in self._clients:
            return
        self._clients.discard(client)
        if client.task is not None and client.task is not asyncio.current_task():
            client.task.cancel()
            try:
                await client.task
            except asyncio.CancelledError:
                pass
        logger.info(f"[Overlay] Client disconnected ({self.client_count} total)")

    def send(self, client: OverlayClient, message: dict[str, Any]) -> bool:
        """Queue a message for one client."""
        return client.offer(message)

    def emit(self, envelope: Envelope) -> None:
        message = {"event": BROADCAST_EVENT, "payload": envelope.to_dict()}
        for client in list(self._clients):
            if not client.offer(message):
                logger.warning(
                    f"[Overlay] Client queue full, dropped {envelope.kind.value} event"
                )

    async def _sender(self, client: OverlayClient) -> None:
        while True:
            message = await client.queue.get()
            try:
                await client.websocket.send_json(message)
            except Exception as e:
                logger.info(f"[Overlay] Send failed, dropping client: {e}")
                self._clients.discard(client)
                return

    async def close(self) -> None:
        for client in list(self._clients):
            await self.disconnect(client)

"""Listener lifecycle coordinator.

Starts and stops the push-event and chat listeners as one unit. A failure of
one listener never prevents the other from running, and the coordinator never
reports ``running`` while both listeners are down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from toaster.core.errors import ListenerStartError
from toaster.services.auth_manager import CredentialManager
from toaster.services.chat_filter import ChatFilterService
from toaster.services.event_bridge import EventBridge
from toaster.shared.models.event import EventKind
from toaster.twitch.base import Listener

logger = logging.getLogger(__name__)

STOPPED = "stopped"
RUNNING = "running"

PUSH_EVENT_KINDS = (
    EventKind.RAID,
    EventKind.FOLLOW,
    EventKind.SUBSCRIBE,
    EventKind.GIFT,
    EventKind.CHEER,
    EventKind.REDEMPTION,
)


class ListenerCoordinator:
    def __init__(
        self,
        auth: CredentialManager,
        bridge: EventBridge,
        chat_filter: ChatFilterService,
        eventsub: Listener,
        chat: Listener,
    ):
        self._auth = auth
        self._bridge = bridge
        self._chat_filter = chat_filter
        self._eventsub = eventsub
        self._chat = chat

        self._state = STOPPED
        self._lock = asyncio.Lock()
        self._cancel_handles: list[Callable[[], None]] = []
        self._errors: dict[str, str | None] = {eventsub.name: None, chat.name: None}

        eventsub.on_closed(self._on_listener_closed)
        chat.on_closed(self._on_listener_closed)

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == RUNNING

    @property
    def listeners(self) -> tuple[Listener, Listener]:
        return self._eventsub, self._chat

    async def start(self) -> bool:
        """Initialize credentials and bring both listeners up.

        Credential errors propagate. Listener failures are logged and
        isolated; the coordinator runs if at least one listener started.
        """
        async with self._lock:
            if self._state == RUNNING:
                return True

            await self._auth.initialize()
            self._subscribe()

            started = 0
            for listener in self.listeners:
                if await self._start_listener(listener):
                    started += 1

            if started:
                self._state = RUNNING
                logger.info(f"[Listeners] Running ({started}/2 listeners up)")
            else:
                self._cancel_subscriptions()
                logger.error("[Listeners] No listener could be started")
            return self.is_running

    async def _start_listener(self, listener: Listener) -> bool:
        try:
            await listener.start()
        except ListenerStartError as e:
            self._errors[listener.name] = str(e)
            logger.error(f"[Listeners] Failed to start {listener.name}: {e}")
            return False
        except Exception as e:
            self._errors[listener.name] = str(e)
            logger.exception(f"[Listeners] Unexpected error starting {listener.name}")
            return False
        self._errors[listener.name] = None
        return True

    def _subscribe(self) -> None:
        self._cancel_subscriptions()
        for kind in PUSH_EVENT_KINDS:
            self._cancel_handles.append(
                self._eventsub.on_event(kind, self._bridge.handler_for(kind))
            )
        self._cancel_handles.append(self._chat.on_event(EventKind.CHAT, self._on_chat_message))

    def _cancel_subscriptions(self) -> None:
        handles, self._cancel_handles = self._cancel_handles, []
        for cancel in handles:
            cancel()

    def _on_chat_message(self, payload: dict[str, Any]) -> None:
        identity = self._auth.identity
        owner = identity.login if identity else None
        username = str(payload.get("username") or "")
        message = str(payload.get("message") or "")
        if self._chat_filter.admit(username, message, owner):
            self._bridge.handle_chat_message(payload)

    def _on_listener_closed(self, listener: Listener) -> None:
        self._errors[listener.name] = "connection closed"
        if self._state != RUNNING:
            return
        if not any(other.is_running for other in self.listeners):
            self._cancel_subscriptions()
            self._state = STOPPED
            logger.warning("[Listeners] All listeners are down, coordinator stopped")

    async def stop(self) -> None:
        """Stop both listeners. Safe at any time."""
        async with self._lock:
            self._cancel_subscriptions()
            for listener in self.listeners:
                try:
                    await listener.stop()
                except Exception:
                    logger.exception(f"[Listeners] Error stopping {listener.name}")
            self._state = STOPPED
            logger.info("[Listeners] Stopped")

    async def restart(self) -> bool:
        await self.stop()
        return await self.start()

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state,
            "listeners": {
                listener.name: {
                    "running": listener.is_running,
                    "error": self._errors.get(listener.name),
                }
                for listener in self.listeners
            },
        }

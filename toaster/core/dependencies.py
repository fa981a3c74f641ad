"""Dependency injection utilities for FastAPI"""

import logging
from dataclasses import dataclass

from fastapi.requests import HTTPConnection

from toaster.core.config import Settings
from toaster.services import (
    ChatFilterService,
    ConnectionManager,
    CredentialManager,
    CredentialStore,
    EventBridge,
    EventHistory,
    JsonFileStore,
    ListenerCoordinator,
    StateStore,
)
from toaster.twitch import ChatListener, EventSubListener

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Every long-lived component, constructed once per application."""

    settings: Settings
    auth: CredentialManager
    history: EventHistory
    broadcaster: ConnectionManager
    bridge: EventBridge
    chat_filter: ChatFilterService
    coordinator: ListenerCoordinator

    async def close(self) -> None:
        await self.coordinator.stop()
        await self.broadcaster.close()
        await self.auth.close()


def build_services(settings: Settings) -> AppServices:
    """Wire the component graph. The broadcast sink exists before the bridge."""
    auth = CredentialManager(
        settings,
        CredentialStore(settings.token_file),
        StateStore(settings.state_file),
    )
    history = EventHistory(max_events=settings.event_history_size)
    broadcaster = ConnectionManager()
    bridge = EventBridge(history, broadcaster)

    chat_filter = ChatFilterService(JsonFileStore(settings.chat_filters_file))
    chat_filter.load()

    coordinator = ListenerCoordinator(
        auth,
        bridge,
        chat_filter,
        eventsub=EventSubListener(auth),
        chat=ChatListener(auth),
    )
    return AppServices(
        settings=settings,
        auth=auth,
        history=history,
        broadcaster=broadcaster,
        bridge=bridge,
        chat_filter=chat_filter,
        coordinator=coordinator,
    )


# ============================================
# Service Dependencies
# ============================================


def get_services(conn: HTTPConnection) -> AppServices:
    return conn.app.state.services


def get_auth_manager(conn: HTTPConnection) -> CredentialManager:
    return get_services(conn).auth


def get_event_history(conn: HTTPConnection) -> EventHistory:
    return get_services(conn).history


def get_event_bridge(conn: HTTPConnection) -> EventBridge:
    return get_services(conn).bridge


def get_chat_filter(conn: HTTPConnection) -> ChatFilterService:
    return get_services(conn).chat_filter


def get_coordinator(conn: HTTPConnection) -> ListenerCoordinator:
    return get_services(conn).coordinator


def get_broadcaster(conn: HTTPConnection) -> ConnectionManager:
    return get_services(conn).broadcaster

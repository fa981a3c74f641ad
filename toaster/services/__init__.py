"""Application services."""

from .auth_manager import CredentialManager
from .broadcaster import ConnectionManager
from .chat_filter import ChatFilterService
from .event_bridge import EventBridge
from .event_history import EventHistory
from .file_store import CredentialStore, JsonFileStore, StateStore
from .listener_manager import ListenerCoordinator

__all__ = [
    "ChatFilterService",
    "ConnectionManager",
    "CredentialManager",
    "CredentialStore",
    "EventBridge",
    "EventHistory",
    "JsonFileStore",
    "ListenerCoordinator",
    "StateStore",
]

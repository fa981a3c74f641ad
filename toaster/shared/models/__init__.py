"""Shared data models."""

from .chat_filter import ChatFilterConfig, FilterConditions, RateLimitConfig
from .event import Envelope, EventKind, HistoryEntry
from .token import AuthorizationState, Identity, TokenRecord

__all__ = [
    "AuthorizationState",
    "ChatFilterConfig",
    "Envelope",
    "EventKind",
    "FilterConditions",
    "HistoryEntry",
    "Identity",
    "RateLimitConfig",
    "TokenRecord",
]

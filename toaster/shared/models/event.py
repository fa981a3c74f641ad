"""Normalized event envelope and history entry."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class EventKind(StrEnum):
    """Event kinds, valued by their wire names."""

    RAID = "raid"
    FOLLOW = "follow"
    SUBSCRIBE = "subscribe"
    GIFT = "gift"
    CHEER = "cheer"
    REDEMPTION = "redemption"
    CHAT = "chat"


@dataclass(frozen=True)
class Envelope:
    """Display-ready representation of one ingested event."""

    kind: EventKind
    data: dict[str, Any]
    timestamp: int  # ms since epoch

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind.value, "data": self.data, "timestamp": self.timestamp}


@dataclass(frozen=True)
class HistoryEntry:
    """Envelope plus a generated unique identifier."""

    id: str
    kind: EventKind
    data: dict[str, Any]
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "data": self.data,
            "timestamp": self.timestamp,
        }

"""Bounded in-memory event history, most recent first."""

from __future__ import annotations

import logging
import time
import uuid
from collections import Counter, deque
from typing import Any

from toaster.shared.models.event import EventKind, HistoryEntry

logger = logging.getLogger(__name__)


class EventHistory:
    """Keeps the last ``max_events`` emitted events.

    All operations are synchronous. Inserting beyond capacity evicts the
    oldest entry, and evicted entries are no longer reachable by id.
    """

    def __init__(self, max_events: int = 50):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self.max_events = max_events
        self._entries: deque[HistoryEntry] = deque(maxlen=max_events)
        self._by_id: dict[str, HistoryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def record(
        self, kind: EventKind | str, data: dict[str, Any], timestamp: int | None = None
    ) -> HistoryEntry:
        entry = HistoryEntry(
            id=uuid.uuid4().hex,
            kind=EventKind(kind),
            data=data,
            timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
        )
        if len(self._entries) == self.max_events:
            evicted = self._entries.pop()
            self._by_id.pop(evicted.id, None)
        self._entries.appendleft(entry)
        self._by_id[entry.id] = entry
        return entry

    def list(self, limit: int | None = None) -> list[HistoryEntry]:
        if limit is None:
            return list(self._entries)
        if limit <= 0:
            return []
        return [entry for _, entry in zip(range(limit), self._entries)]

    def list_by_kind(self, kind: EventKind | str, limit: int | None = None) -> list[HistoryEntry]:
        if limit is not None and limit <= 0:
            return []
        matches = [entry for entry in self._entries if entry.kind == kind]
        return matches if limit is None else matches[:limit]

    def get_by_id(self, entry_id: str) -> HistoryEntry | None:
        return self._by_id.get(entry_id)

    def clear(self) -> None:
        self._entries.clear()
        self._by_id.clear()
        logger.info("Event history cleared")

    def stats(self) -> dict[str, Any]:
        counts = Counter(entry.kind.value for entry in self._entries)
        return {"total": len(self._entries), "byType": dict(counts)}

"""Subscription interface shared by the ingestion listeners."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable

from toaster.shared.models.event import EventKind

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], Any]
ClosedCallback = Callable[["Listener"], Any]


class Listener(ABC):
    """Long-lived ingestion connection that delivers raw per-kind payloads.

    Subclasses implement ``start()`` and ``stop()`` and call ``dispatch()`` for
    every inbound event. When the connection ends without ``stop()`` being
    called they call ``_notify_closed()``.
    """

    name = "listener"

    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[EventHandler]] = defaultdict(list)
        self._closed_callbacks: list[ClosedCallback] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def on_event(self, kind: EventKind | str, handler: EventHandler) -> Callable[[], None]:
        """Register a handler; returns a callable that removes it."""
        handlers = self._handlers[EventKind(kind)]
        handlers.append(handler)

        def cancel() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return cancel

    def on_closed(self, callback: ClosedCallback) -> Callable[[], None]:
        self._closed_callbacks.append(callback)

        def cancel() -> None:
            if callback in self._closed_callbacks:
                self._closed_callbacks.remove(callback)

        return cancel

    def dispatch(self, kind: EventKind, payload: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(kind, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"[{self.name}] {kind.value} handler failed")

    def _notify_closed(self) -> None:
        self._running = False
        for callback in list(self._closed_callbacks):
            try:
                callback(self)
            except Exception:
                logger.exception(f"[{self.name}] close callback failed")

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

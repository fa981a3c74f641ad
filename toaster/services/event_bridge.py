"""Event normalization bridge.

Turns raw per-kind payloads from the ingestion listeners (or manual injection)
into display-ready envelopes, records them in history and hands them to the
broadcast sink. Every field of a kind's mapping is always present.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Protocol

from toaster.services.event_history import EventHistory
from toaster.shared.models.event import Envelope, EventKind

logger = logging.getLogger(__name__)

DEFAULT_TIER = "1000"


class BroadcastSink(Protocol):
    def emit(self, envelope: Envelope) -> None: ...


def _text(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    return "" if value is None else str(value)


def _int(raw: dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _flag(raw: dict[str, Any], key: str) -> bool:
    return bool(raw.get(key) or False)


def _identity(raw: dict[str, Any]) -> dict[str, str]:
    username = _text(raw, "username")
    return {"username": username, "displayName": _text(raw, "displayName") or username}


def _iso(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def normalize_raid(raw: dict[str, Any]) -> dict[str, Any]:
    return {**_identity(raw), "viewerCount": _int(raw, "viewerCount", 0)}


def normalize_follow(raw: dict[str, Any]) -> dict[str, Any]:
    return _identity(raw)


def normalize_subscribe(raw: dict[str, Any]) -> dict[str, Any]:
    return {**_identity(raw), "tier": _text(raw, "tier") or DEFAULT_TIER}


def normalize_gift(raw: dict[str, Any]) -> dict[str, Any]:
    cumulative = raw.get("cumulativeAmount")
    return {
        **_identity(raw),
        "amount": _int(raw, "amount", 1),
        "tier": _text(raw, "tier") or DEFAULT_TIER,
        "isAnonymous": _flag(raw, "isAnonymous"),
        "cumulativeAmount": None if cumulative is None else _int(raw, "cumulativeAmount", 0),
        "profileImageUrl": _text(raw, "profileImageUrl"),
    }


def normalize_cheer(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        **_identity(raw),
        "bits": _int(raw, "bits", 0),
        "message": _text(raw, "message"),
    }


def normalize_redemption(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        **_identity(raw),
        "rewardTitle": _text(raw, "rewardTitle"),
        "rewardCost": _int(raw, "rewardCost", 0),
        "rewardPrompt": _text(raw, "rewardPrompt"),
        "userInput": _text(raw, "userInput"),
        "profileImageUrl": _text(raw, "profileImageUrl"),
        "redeemedAt": _iso(raw.get("redeemedAt")),
    }


def normalize_chat(raw: dict[str, Any]) -> dict[str, Any]:
    badges = raw.get("badges")
    return {
        **_identity(raw),
        "message": _text(raw, "message"),
        "color": _text(raw, "color"),
        "isMod": _flag(raw, "isMod"),
        "isSubscriber": _flag(raw, "isSubscriber"),
        "isVip": _flag(raw, "isVip"),
        "badges": dict(badges) if isinstance(badges, dict) else {},
    }


NORMALIZERS: dict[EventKind, Callable[[dict[str, Any]], dict[str, Any]]] = {
    EventKind.RAID: normalize_raid,
    EventKind.FOLLOW: normalize_follow,
    EventKind.SUBSCRIBE: normalize_subscribe,
    EventKind.GIFT: normalize_gift,
    EventKind.CHEER: normalize_cheer,
    EventKind.REDEMPTION: normalize_redemption,
    EventKind.CHAT: normalize_chat,
}


class EventBridge:
    """Normalizes, records and broadcasts events."""

    def __init__(
        self,
        history: EventHistory,
        sink: BroadcastSink,
        clock: Callable[[], float] = time.time,
    ):
        self.history = history
        self._sink = sink
        self._clock = clock
        self._last_timestamp = 0

    def _timestamp(self) -> int:
        now = int(self._clock() * 1000)
        # Wall clock may step backwards; emitted timestamps may not
        self._last_timestamp = max(now, self._last_timestamp)
        return self._last_timestamp

    def emit(self, kind: EventKind | str, data: dict[str, Any]) -> Envelope:
        kind = EventKind(kind)
        envelope = Envelope(kind=kind, data=data, timestamp=self._timestamp())
        logger.debug(f"[EventBridge] Emitting {kind.value}: {data}")

        self.history.record(kind, data, envelope.timestamp)
        try:
            self._sink.emit(envelope)
        except Exception:
            logger.exception(f"[EventBridge] Broadcast of {kind.value} event failed")
        return envelope

    def _handle(self, kind: EventKind, raw: dict[str, Any]) -> Envelope:
        return self.emit(kind, NORMALIZERS[kind](raw or {}))

    def handle_raid(self, raw: dict[str, Any]) -> Envelope:
        return self._handle(EventKind.RAID, raw)

    def handle_follow(self, raw: dict[str, Any]) -> Envelope:
        return self._handle(EventKind.FOLLOW, raw)

    def handle_subscribe(self, raw: dict[str, Any]) -> Envelope:
        return self._handle(EventKind.SUBSCRIBE, raw)

    def handle_gift(self, raw: dict[str, Any]) -> Envelope:
        return self._handle(EventKind.GIFT, raw)

    def handle_cheer(self, raw: dict[str, Any]) -> Envelope:
        return self._handle(EventKind.CHEER, raw)

    def handle_redemption(self, raw: dict[str, Any]) -> Envelope:
        return self._handle(EventKind.REDEMPTION, raw)

    def handle_chat_message(self, raw: dict[str, Any]) -> Envelope:
        return self._handle(EventKind.CHAT, raw)

    def handler_for(self, kind: EventKind | str) -> Callable[[dict[str, Any]], Envelope]:
        """Per-kind handler; raises ValueError for unknown kinds."""
        return {
            EventKind.RAID: self.handle_raid,
            EventKind.FOLLOW: self.handle_follow,
            EventKind.SUBSCRIBE: self.handle_subscribe,
            EventKind.GIFT: self.handle_gift,
            EventKind.CHEER: self.handle_cheer,
            EventKind.REDEMPTION: self.handle_redemption,
            EventKind.CHAT: self.handle_chat_message,
        }[EventKind(kind)]

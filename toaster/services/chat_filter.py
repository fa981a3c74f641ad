"""Chat admission filter and fixed-interval rate limiter."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from pydantic import ValidationError

from toaster.services.file_store import JsonFileStore
from toaster.shared.models.chat_filter import ChatFilterConfig, RateLimitConfig, canonicalize

logger = logging.getLogger(__name__)


def passes_filter(
    config: ChatFilterConfig, username: str, message: str, channel_owner: str | None
) -> bool:
    """Allow-if-any conditions, then length bounds as a hard cap."""
    if not config.enabled:
        return True

    conditions = config.conditions
    lower_message = message.lower()

    allowed = not conditions.has_allow_condition
    if not allowed and conditions.prefix and message.startswith(conditions.prefix):
        allowed = True
    if (
        not allowed
        and conditions.mentions_channel_owner
        and channel_owner
        and f"@{channel_owner.lower()}" in lower_message
    ):
        allowed = True
    if not allowed and any(k and k.lower() in lower_message for k in conditions.keywords):
        allowed = True
    if not allowed and username.lower() in {u.lower() for u in conditions.allowed_users}:
        allowed = True

    if not allowed:
        return False

    if conditions.min_length > 0 and len(message) < conditions.min_length:
        return False
    if conditions.max_length > 0 and len(message) > conditions.max_length:
        return False
    return True


class RateLimiter:
    """Admits at most one message per ``1000 / maxPerSecond`` ms. No queue, no burst."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._last_emit_ms: float | None = None

    def allow(self, rate_limit: RateLimitConfig) -> bool:
        if not rate_limit.enabled:
            return True

        now_ms = self._clock() * 1000
        if self._last_emit_ms is not None and now_ms - self._last_emit_ms < rate_limit.min_interval_ms:
            return False

        self._last_emit_ms = now_ms
        return True


def _deep_merge(base: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ChatFilterService:
    """Holds the live filter configuration and the limiter state.

    The configuration object is immutable and replaced wholesale, so a message
    is always judged against one consistent snapshot.
    """

    def __init__(self, store: JsonFileStore, clock: Callable[[], float] = time.monotonic):
        self._store = store
        self._config = ChatFilterConfig()
        self._limiter = RateLimiter(clock)

    @property
    def config(self) -> ChatFilterConfig:
        return self._config

    def load(self) -> ChatFilterConfig:
        document = self._store.read()
        if document is None:
            logger.info("[Chat] Using default filters")
            self._config = ChatFilterConfig()
            return self._config

        try:
            self._config = ChatFilterConfig.model_validate(canonicalize(document))
            logger.info("[Chat] Loaded custom filters")
        except ValidationError as e:
            logger.warning(f"[Chat] Invalid filter file, using defaults: {e.error_count()} errors")
            self._config = ChatFilterConfig()
        return self._config

    def update(self, partial: dict[str, Any]) -> ChatFilterConfig:
        """Merge *partial* onto the current config, validate, persist, then swap.

        Raises ``pydantic.ValidationError`` without touching the file or the
        live configuration when the merged document is invalid.
        """
        merged = _deep_merge(self._config.to_document(), canonicalize(partial))
        config = ChatFilterConfig.model_validate(merged)
        self._store.write(config.to_document())
        self._config = config
        logger.info("[Chat] Filters updated and saved")
        return config

    def reset(self) -> ChatFilterConfig:
        config = ChatFilterConfig()
        self._store.write(config.to_document())
        self._config = config
        logger.info("[Chat] Filters reset to defaults")
        return config

    def admit(self, username: str, message: str, channel_owner: str | None) -> bool:
        config = self._config
        if not passes_filter(config, username, message, channel_owner):
            return False
        return self._limiter.allow(config.rate_limit)

"""Unit tests for the chat admission filter, rate limiter and filter service."""

import json

import pytest
from conftest import FakeClock
from pydantic import ValidationError

from toaster.services.chat_filter import ChatFilterService, RateLimiter, passes_filter
from toaster.services.file_store import JsonFileStore
from toaster.shared.models.chat_filter import ChatFilterConfig, RateLimitConfig

UNCONFIGURED = {
    "conditions": {"prefix": None, "keywords": [], "allowedUsers": []},
    "rateLimit": {"enabled": False},
}


def config(**document) -> ChatFilterConfig:
    return ChatFilterConfig.model_validate(document)


# ============================================================
#  Filter
# ============================================================


def test_unconfigured_filter_admits_everything() -> None:
    cfg = config(**UNCONFIGURED)
    for message in ("", "hello", "x" * 500, "!cmd", "@someone hi"):
        assert passes_filter(cfg, "viewer", message, "streamer")


def test_disabled_filter_admits_everything() -> None:
    cfg = config(enabled=False, conditions={"prefix": "!", "maxLength": 1})
    assert passes_filter(cfg, "viewer", "no prefix and very long", "streamer")


def test_prefix_condition() -> None:
    cfg = config(conditions={"prefix": "!"})
    assert passes_filter(cfg, "viewer", "!hello", None)
    assert not passes_filter(cfg, "viewer", "hello", None)


def test_max_length_caps_prefix_match() -> None:
    cfg = config(conditions={"prefix": "!", "maxLength": 5})
    assert passes_filter(cfg, "viewer", "!hi", None)
    assert not passes_filter(cfg, "viewer", "!hello world", None)


def test_min_length_applies_without_allow_conditions() -> None:
    cfg = config(conditions={"prefix": None, "minLength": 3})
    assert not passes_filter(cfg, "viewer", "hi", None)
    assert passes_filter(cfg, "viewer", "hey", None)


def test_owner_mention_is_case_insensitive() -> None:
    cfg = config(conditions={"prefix": None, "mentionsChannelOwner": True})
    assert passes_filter(cfg, "viewer", "hey @StreamER nice", "streamer")
    assert not passes_filter(cfg, "viewer", "hey streamer", "streamer")


def test_keywords_are_case_insensitive_substrings() -> None:
    cfg = config(conditions={"prefix": None, "keywords": ["Hype"]})
    assert passes_filter(cfg, "viewer", "so much hYPe", None)
    assert not passes_filter(cfg, "viewer", "calm", None)


def test_allowed_users_are_case_insensitive() -> None:
    cfg = config(conditions={"prefix": None, "allowedUsers": ["ModFriend"]})
    assert passes_filter(cfg, "modfriend", "anything", None)
    assert not passes_filter(cfg, "stranger", "anything", None)


def test_legacy_keys_are_accepted() -> None:
    cfg = config(
        conditions={"startsWithPrefix": "?", "containsKeywords": ["gg"], "fromSpecificUsers": ["a"]},
        rateLimit={"maxMessagesPerSecond": 4},
    )
    assert cfg.conditions.prefix == "?"
    assert cfg.conditions.keywords == ["gg"]
    assert cfg.conditions.allowed_users == ["a"]
    assert cfg.rate_limit.max_per_second == 4


# ============================================================
#  Rate limiter
# ============================================================


def test_rate_limiter_drops_inside_interval() -> None:
    clock = FakeClock(100.0)
    limiter = RateLimiter(clock)
    rate = RateLimitConfig(maxPerSecond=10)

    assert limiter.allow(rate)
    clock.advance(0.05)
    assert not limiter.allow(rate)


def test_rate_limiter_admits_after_interval() -> None:
    clock = FakeClock(100.0)
    limiter = RateLimiter(clock)
    rate = RateLimitConfig(maxPerSecond=10)

    assert limiter.allow(rate)
    clock.advance(0.15)
    assert limiter.allow(rate)


def test_rate_limiter_disabled() -> None:
    limiter = RateLimiter(FakeClock())
    rate = RateLimitConfig(enabled=False)
    assert all(limiter.allow(rate) for _ in range(10))


def test_rate_limit_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        RateLimitConfig(maxPerSecond=0)


# ============================================================
#  Service
# ============================================================


@pytest.fixture
def store(tmp_path) -> JsonFileStore:
    return JsonFileStore(tmp_path / ".chat-filters.json")


def test_load_defaults_when_absent(store) -> None:
    service = ChatFilterService(store)
    cfg = service.load()
    assert cfg == ChatFilterConfig()
    assert cfg.conditions.prefix == "!"
    assert cfg.rate_limit.max_per_second == 10


def test_load_defaults_when_malformed(store) -> None:
    store.path.write_text("{not json", encoding="utf-8")
    assert ChatFilterService(store).load() == ChatFilterConfig()


def test_load_empty_conditions_admits_everything(store) -> None:
    store.path.write_text(
        json.dumps({"enabled": True, "conditions": {}, "rateLimit": {"enabled": False}}),
        encoding="utf-8",
    )
    service = ChatFilterService(store)
    cfg = service.load()

    assert cfg.conditions.prefix is None
    assert passes_filter(cfg, "viewer", "hello", None)
    assert all(service.admit("viewer", "hello", "streamer") for _ in range(3))


def test_missing_conditions_section_uses_default_prefix(store) -> None:
    store.path.write_text(json.dumps({"enabled": True}), encoding="utf-8")
    assert ChatFilterService(store).load().conditions.prefix == "!"


def test_load_legacy_file(store) -> None:
    store.path.write_text(
        json.dumps({"enabled": True, "conditions": {"mentionsBot": True}}), encoding="utf-8"
    )
    cfg = ChatFilterService(store).load()
    assert cfg.conditions.mentions_channel_owner is True


def test_update_merges_and_persists(store) -> None:
    service = ChatFilterService(store)
    service.load()

    cfg = service.update({"conditions": {"keywords": ["hello"]}})

    assert cfg.conditions.keywords == ["hello"]
    assert cfg.conditions.prefix == "!"
    assert cfg.rate_limit.enabled is True
    saved = json.loads(store.path.read_text(encoding="utf-8"))
    assert saved["conditions"]["keywords"] == ["hello"]
    assert saved["conditions"]["prefix"] == "!"
    assert saved["rateLimit"]["maxPerSecond"] == 10


def test_invalid_update_changes_nothing(store) -> None:
    service = ChatFilterService(store)
    service.load()
    before = service.config

    with pytest.raises(ValidationError):
        service.update({"rateLimit": {"maxPerSecond": -1}})

    assert service.config is before
    assert not store.path.exists()


def test_reset_restores_defaults(store) -> None:
    service = ChatFilterService(store)
    service.update({"enabled": False})
    assert service.reset() == ChatFilterConfig()
    assert json.loads(store.path.read_text(encoding="utf-8"))["enabled"] is True


def test_admit_applies_filter_then_limiter(store) -> None:
    clock = FakeClock(10.0)
    service = ChatFilterService(store, clock)

    assert service.admit("viewer", "!one", "streamer")
    assert not service.admit("viewer", "no prefix", "streamer")
    clock.advance(0.01)
    assert not service.admit("viewer", "!two", "streamer")
    clock.advance(0.2)
    assert service.admit("viewer", "!three", "streamer")

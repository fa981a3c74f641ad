"""Chat filter configuration document."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Key names used by older .chat-filters.json files
LEGACY_KEYS: dict[str, dict[str, str]] = {
    "conditions": {
        "startsWithPrefix": "prefix",
        "mentionsBot": "mentionsChannelOwner",
        "containsKeywords": "keywords",
        "fromSpecificUsers": "allowedUsers",
    },
    "rateLimit": {
        "maxMessagesPerSecond": "maxPerSecond",
    },
}

DEFAULT_PREFIX = "!"


class FilterConditions(BaseModel):
    """Allow-conditions (any match admits) plus hard length bounds."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prefix: str | None = Field(
        default=None,
        validation_alias=AliasChoices("prefix", "startsWithPrefix"),
    )
    mentions_channel_owner: bool = Field(
        default=False,
        validation_alias=AliasChoices("mentionsChannelOwner", "mentionsBot"),
        serialization_alias="mentionsChannelOwner",
    )
    keywords: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("keywords", "containsKeywords"),
    )
    allowed_users: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("allowedUsers", "fromSpecificUsers"),
        serialization_alias="allowedUsers",
    )
    min_length: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("minLength", "min_length"),
        serialization_alias="minLength",
    )
    max_length: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("maxLength", "max_length"),
        serialization_alias="maxLength",
    )

    @property
    def has_allow_condition(self) -> bool:
        return bool(
            self.prefix or self.mentions_channel_owner or self.keywords or self.allowed_users
        )


def default_conditions() -> FilterConditions:
    """Conditions used when the document has none at all (or on reset)."""
    return FilterConditions(prefix=DEFAULT_PREFIX)


class RateLimitConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = True
    max_per_second: float = Field(
        default=10,
        gt=0,
        validation_alias=AliasChoices("maxPerSecond", "maxMessagesPerSecond"),
        serialization_alias="maxPerSecond",
    )

    @property
    def min_interval_ms(self) -> float:
        return 1000 / self.max_per_second


class ChatFilterConfig(BaseModel):
    """Whole filter document; persisted replace-on-write."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    enabled: bool = True
    conditions: FilterConditions = Field(default_factory=default_conditions)
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        validation_alias=AliasChoices("rateLimit", "rate_limit"),
        serialization_alias="rateLimit",
    )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def canonicalize(document: dict[str, Any]) -> dict[str, Any]:
    """Rename legacy keys so a partial document merges onto the current one."""
    result = dict(document)
    for section, renames in LEGACY_KEYS.items():
        part = result.get(section)
        if not isinstance(part, dict):
            continue
        part = dict(part)
        for old, new in renames.items():
            if old in part:
                value = part.pop(old)
                part.setdefault(new, value)
        result[section] = part
    return result

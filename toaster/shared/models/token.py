"""Credential data models and their on-disk document shape."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class Identity:
    """Public identity of the token's subject (the channel owner)."""

    id: str
    login: str
    display_name: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "login": self.login, "displayName": self.display_name}


@dataclass(frozen=True)
class TokenRecord:
    """User token pair plus the identity it was issued for.

    ``expires_in`` is in seconds; ``None`` or 0 means the expiry is unknown.
    ``obtainment_timestamp`` is milliseconds since the epoch.
    """

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    obtainment_timestamp: int = 0
    scope: list[str] = field(default_factory=list)
    user_id: str | None = None
    user_login: str | None = None
    user_display_name: str | None = None

    @property
    def identity(self) -> Identity | None:
        if not self.user_id or not self.user_login:
            return None
        return Identity(
            id=self.user_id,
            login=self.user_login,
            display_name=self.user_display_name or self.user_login,
        )

    @property
    def has_known_expiry(self) -> bool:
        return bool(self.expires_in) and self.obtainment_timestamp > 0

    def expires_at_ms(self) -> int | None:
        if not self.has_known_expiry:
            return None
        return self.obtainment_timestamp + int(self.expires_in or 0) * 1000

    def is_expired(self, now_ms: int, margin_seconds: int = 0) -> bool:
        """True when the token is past (or within *margin_seconds* of) its expiry."""
        expires_at = self.expires_at_ms()
        if expires_at is None:
            return False
        return now_ms >= expires_at - margin_seconds * 1000

    def with_identity(self, identity: Identity | None) -> TokenRecord:
        if identity is None:
            return self
        return replace(
            self,
            user_id=identity.id,
            user_login=identity.login,
            user_display_name=identity.display_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.expires_in,
            "obtainmentTimestamp": self.obtainment_timestamp,
            "scope": list(self.scope),
            "userId": self.user_id,
            "userLogin": self.user_login,
            "userDisplayName": self.user_display_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenRecord | None:
        """Build a record from a token file document; ``None`` without an access token."""
        access_token = data.get("accessToken")
        if not access_token:
            return None

        scope = data.get("scope") or []
        if isinstance(scope, str):
            scope = scope.split()

        return cls(
            access_token=access_token,
            refresh_token=data.get("refreshToken") or None,
            expires_in=data.get("expiresIn") or None,
            obtainment_timestamp=int(data.get("obtainmentTimestamp") or 0),
            scope=list(scope),
            user_id=data.get("userId") or None,
            user_login=data.get("userLogin") or None,
            user_display_name=data.get("userDisplayName") or None,
        )


@dataclass(frozen=True)
class AuthorizationState:
    """Single-use CSRF nonce for one outstanding authorization redirect."""

    state: str
    timestamp: int  # ms since epoch

    def is_stale(self, now_ms: int, ttl_seconds: int) -> bool:
        return now_ms - self.timestamp > ttl_seconds * 1000

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthorizationState | None:
        state = data.get("state")
        if not isinstance(state, str) or not state:
            return None
        return cls(state=state, timestamp=int(data.get("timestamp") or 0))

"""Credential lifecycle: load, validate, refresh, authorize, log out.

The manager is the only component that refreshes tokens. Everything else asks
it for a usable access token through ``get_access_token()``.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import replace
from typing import Any, Callable, Protocol

import httpx

from toaster.core.config import BROADCASTER_SCOPES, Settings
from toaster.core.errors import (
    AuthorizationStateError,
    ConfigurationError,
    MissingTokenError,
    NotInitializedError,
    TokenRefreshError,
    ToasterError,
)
from toaster.services.file_store import CredentialStore, StateStore
from toaster.services.oauth_proxy import OAuthProxyClient
from toaster.services.twitch_api import TwitchAPIClient
from toaster.shared.models.token import AuthorizationState, Identity, TokenRecord

logger = logging.getLogger(__name__)


class CredentialStrategy(Protocol):
    """How codes are exchanged and tokens refreshed in one credential mode."""

    mode: str
    api: TwitchAPIClient

    @property
    def client_id(self) -> str: ...

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenRecord: ...

    async def refresh(self, record: TokenRecord) -> TokenRecord: ...

    async def close(self) -> None: ...


def _carry_identity(fresh: TokenRecord, previous: TokenRecord) -> TokenRecord:
    return replace(
        fresh,
        user_id=previous.user_id,
        user_login=previous.user_login,
        user_display_name=previous.user_display_name,
    )


def _record_from_twitch(data: dict[str, Any], fallback_refresh: str | None = None) -> TokenRecord:
    scope = data.get("scope") or []
    if isinstance(scope, str):
        scope = scope.split()
    return TokenRecord(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token") or fallback_refresh,
        expires_in=data.get("expires_in") or None,
        scope=list(scope),
    )


class SelfHostedStrategy:
    """Client id and secret are configured locally; talk to Twitch directly."""

    mode = "self-hosted"

    def __init__(self, client_id: str, client_secret: str) -> None:
        self.api = TwitchAPIClient(client_id, client_secret)

    @property
    def client_id(self) -> str:
        return self.api.client_id

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenRecord:
        data = await self.api.exchange_code_for_token(code, redirect_uri)
        identity = await self.api.get_user(data["access_token"])
        return _record_from_twitch(data).with_identity(identity)

    async def refresh(self, record: TokenRecord) -> TokenRecord:
        if not record.refresh_token:
            raise TokenRefreshError("No refresh token available")
        data = await self.api.refresh_access_token(record.refresh_token)
        return _carry_identity(_record_from_twitch(data, record.refresh_token), record)

    async def close(self) -> None:
        await self.api.close()


class ProxyStrategy:
    """No local secret; exchange and refresh go through the OAuth proxy."""

    mode = "proxy"

    def __init__(self, proxy: OAuthProxyClient, client_id: str) -> None:
        self.proxy = proxy
        self.api = TwitchAPIClient(client_id)

    @classmethod
    async def connect(cls, base_url: str) -> ProxyStrategy:
        proxy = OAuthProxyClient(base_url)
        client_id = await proxy.get_client_id()
        if not client_id:
            await proxy.close()
            raise ConfigurationError(f"OAuth proxy at {base_url} did not provide a client id")
        return cls(proxy, client_id)

    @property
    def client_id(self) -> str:
        return self.api.client_id

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenRecord:
        data = await self.proxy.exchange_code(code, redirect_uri)
        user = data["user"]
        record = TokenRecord.from_dict(data)
        return record.with_identity(
            Identity(
                id=str(user["id"]),
                login=user["login"],
                display_name=user.get("displayName") or user["login"],
            )
        )

    async def refresh(self, record: TokenRecord) -> TokenRecord:
        if not record.refresh_token:
            raise TokenRefreshError("No refresh token available")
        data = await self.proxy.refresh(record.refresh_token)
        fresh = TokenRecord.from_dict(data)
        if not fresh.refresh_token:
            fresh = replace(fresh, refresh_token=record.refresh_token)
        return _carry_identity(fresh, record)

    async def close(self) -> None:
        await self.proxy.close()
        await self.api.close()


class CredentialManager:
    """Owns the current TokenRecord for the channel owner."""

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        state_store: StateStore,
        *,
        clock: Callable[[], float] = time.time,
        strategy: CredentialStrategy | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._state_store = state_store
        self._clock = clock
        self._strategy = strategy

        self._record: TokenRecord | None = None
        self._initialized = False
        self._refresh_failed = False
        self._refresh_task: asyncio.Task[TokenRecord] | None = None
        self._init_lock = asyncio.Lock()
        self._strategy_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def record(self) -> TokenRecord | None:
        return self._record

    @property
    def identity(self) -> Identity | None:
        return self._record.identity if self._record else None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_authenticated(self) -> bool:
        return bool(self._record and self._record.access_token) and not self._refresh_failed

    @property
    def api(self) -> TwitchAPIClient:
        """Twitch client bound to the resolved client id."""
        if self._strategy is None:
            raise NotInitializedError("Credential mode has not been resolved")
        return self._strategy.api

    @property
    def mode(self) -> str | None:
        if self._strategy is not None:
            return self._strategy.mode
        if self._settings.is_self_hosted:
            return SelfHostedStrategy.mode
        if self._settings.oauth_proxy_url:
            return ProxyStrategy.mode
        return None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _next_timestamp(self, previous: TokenRecord | None) -> int:
        now = self._now_ms()
        if previous is None:
            return now
        return max(now, previous.obtainment_timestamp + 1)

    def _require_record(self) -> TokenRecord:
        if self._record is None:
            raise NotInitializedError("CredentialManager.initialize() has not completed")
        return self._record

    # ------------------------------------------------------------------
    # Mode selection
    # ------------------------------------------------------------------

    async def resolve_strategy(self) -> CredentialStrategy:
        if self._strategy is not None:
            return self._strategy

        async with self._strategy_lock:
            if self._strategy is not None:
                return self._strategy

            settings = self._settings
            if settings.is_self_hosted:
                strategy: CredentialStrategy = SelfHostedStrategy(
                    settings.twitch_client_id, settings.twitch_client_secret
                )
            elif settings.oauth_proxy_url:
                strategy = await ProxyStrategy.connect(settings.oauth_proxy_url)
            else:
                raise ConfigurationError(
                    "Set TWITCH_CLIENT_ID and TWITCH_CLIENT_SECRET, or OAUTH_PROXY_URL"
                )

            logger.info(f"[Auth] Using {strategy.mode} mode")
            self._strategy = strategy
            return strategy

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def initialize(self) -> CredentialManager:
        """Load credentials and make them ready for use. Idempotent."""
        if self._initialized:
            return self

        async with self._init_lock:
            if self._initialized:
                return self

            strategy = await self.resolve_strategy()

            record = self._store.load()
            if record is None:
                record = self._record_from_env()
                if record is None:
                    raise MissingTokenError(
                        "No stored token. Visit /auth/twitch to authorize the channel."
                    )
                logger.info("[Auth] Using tokens from environment")
                self._store.save(record)

            self._record = record
            self._refresh_failed = False

            if not record.has_known_expiry or record.identity is None:
                await self._fill_from_validation(strategy)

            self._initialized = True
            logger.info(f"[Auth] Credentials ready for {self._record.user_login or 'unknown user'}")
            return self

    def _record_from_env(self) -> TokenRecord | None:
        access_token = self._settings.twitch_access_token
        if not access_token:
            return None
        return TokenRecord(
            access_token=access_token,
            refresh_token=self._settings.twitch_refresh_token or None,
            obtainment_timestamp=self._now_ms(),
        )

    async def _validate(self, strategy: CredentialStrategy, access_token: str) -> dict | None:
        """Validation payload, None if the token is invalid, {} if Twitch is unreachable."""
        try:
            return await strategy.api.validate_token(access_token)
        except httpx.HTTPError as e:
            logger.warning(f"[Auth] Token validation unavailable: {e}")
            return {}

    async def _fill_from_validation(self, strategy: CredentialStrategy) -> None:
        record = self._require_record()
        payload = await self._validate(strategy, record.access_token)

        if payload is None:
            if not record.refresh_token:
                self._refresh_failed = True
                raise TokenRefreshError("Stored access token is invalid and cannot be refreshed")
            logger.info("[Auth] Stored access token is invalid, refreshing")
            record = await self.refresh()
            payload = await self._validate(strategy, record.access_token)

        if not payload:
            return

        if not record.has_known_expiry and payload.get("expires_in"):
            record = replace(
                record,
                expires_in=int(payload["expires_in"]),
                obtainment_timestamp=self._now_ms(),
            )
        if not record.scope and payload.get("scopes"):
            record = replace(record, scope=list(payload["scopes"]))
        if record.identity is None and payload.get("user_id") and payload.get("login"):
            record = record.with_identity(
                Identity(id=payload["user_id"], login=payload["login"], display_name=payload["login"])
            )

        if record != self._record:
            self._store.save(record)
            self._record = record

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def get_access_token(self) -> str:
        """Return a usable access token, refreshing it first if it is about to expire."""
        record = self._require_record()
        if record.is_expired(self._now_ms(), self._settings.token_refresh_margin):
            logger.info("[Auth] Access token near expiry, refreshing")
            record = await self.refresh()
        return record.access_token

    async def refresh(self) -> TokenRecord:
        """Refresh the token pair. Concurrent callers share one refresh."""
        self._require_record()
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._do_refresh())
        return await asyncio.shield(self._refresh_task)

    async def _do_refresh(self) -> TokenRecord:
        record = self._require_record()
        strategy = await self.resolve_strategy()
        try:
            fresh = await strategy.refresh(record)
        except TokenRefreshError as e:
            if self._record is record:
                self._refresh_failed = True
            logger.error(f"[Auth] Token refresh failed: {e}")
            raise

        if self._record is not record:
            # Re-authorized or logged out while the refresh was in flight
            logger.info("[Auth] Discarding refresh for replaced credentials")
            return self._require_record()

        fresh = replace(fresh, obtainment_timestamp=self._next_timestamp(record))
        # Persist before publishing
        self._store.save(fresh)
        self._record = fresh
        self._refresh_failed = False
        logger.info("[Auth] Access token refreshed")
        return fresh

    async def _settle_refresh(self) -> None:
        """Wait out an in-flight refresh before the record is replaced or removed."""
        task, self._refresh_task = self._refresh_task, None
        if task is None or task.done():
            return
        try:
            await asyncio.shield(task)
        except ToasterError as e:
            logger.info(f"[Auth] Superseded refresh ended with: {e}")

    # ------------------------------------------------------------------
    # Authorization code flow
    # ------------------------------------------------------------------

    async def create_authorization_url(self) -> str:
        strategy = await self.resolve_strategy()
        state = secrets.token_hex(16)
        self._state_store.save(AuthorizationState(state=state, timestamp=self._now_ms()))
        return strategy.api.generate_oauth_url(self._settings.redirect_uri, BROADCASTER_SCOPES, state)

    async def complete_authorization(self, code: str, state: str | None) -> TokenRecord:
        """Validate the state nonce, exchange the code, persist the new record."""
        stored = self._state_store.load()
        self._state_store.delete()

        if stored is None:
            raise AuthorizationStateError("No authorization in progress")
        if stored.is_stale(self._now_ms(), self._settings.oauth_state_ttl):
            raise AuthorizationStateError("Authorization state expired")
        if not state or not secrets.compare_digest(stored.state, state):
            raise AuthorizationStateError("Invalid state parameter")

        strategy = await self.resolve_strategy()
        record = await strategy.exchange_code(code, self._settings.redirect_uri)
        await self._settle_refresh()
        record = replace(record, obtainment_timestamp=self._next_timestamp(self._record))

        self._store.save(record)
        self._record = record
        self._refresh_failed = False
        self._initialized = True
        logger.info(f"[Auth] Authorized as {record.user_login}")
        return record

    # ------------------------------------------------------------------
    # Status / teardown
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        record = self._record or self._store.load()
        authenticated = bool(record and record.access_token) and not self._refresh_failed
        identity = record.identity if record else None
        return {
            "authenticated": authenticated,
            "mode": self.mode,
            "user": identity.to_dict() if identity else None,
        }

    async def logout(self) -> None:
        await self._settle_refresh()
        self._store.delete()
        self._record = None
        self._initialized = False
        self._refresh_failed = False
        logger.info("[Auth] Logged out, token file removed")

    async def close(self) -> None:
        if self._strategy is not None:
            await self._strategy.close()

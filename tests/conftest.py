"""Shared fixtures: isolated settings, stores, fakes."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from toaster.core.config import Settings
from toaster.core.errors import ListenerStartError
from toaster.services.file_store import CredentialStore, StateStore
from toaster.shared.models.token import TokenRecord
from toaster.twitch.base import Listener

NOW = 1_700_000_000.0  # seconds


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink:
    def __init__(self):
        self.envelopes = []

    def emit(self, envelope) -> None:
        self.envelopes.append(envelope)


class FakeListener(Listener):
    def __init__(
        self,
        name: str,
        fail: bool = False,
        fail_stop: bool = False,
        gate: asyncio.Event | None = None,
    ):
        super().__init__()
        self.name = name
        self.fail = fail
        self.fail_stop = fail_stop
        self.gate = gate
        self.connecting = asyncio.Event()
        self.start_calls = 0
        self.stop_calls = 0

    async def start(self) -> None:
        self.start_calls += 1
        self.connecting.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ListenerStartError(self.name, "connection refused")
        self._running = True

    async def stop(self) -> None:
        self.stop_calls += 1
        self._running = False
        if self.fail_stop:
            raise RuntimeError("socket already closed")

    def drop(self) -> None:
        """Simulate an unexpected close."""
        self._notify_closed()


def make_settings(tmp_path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "twitch_client_id": "test-client-id",
        "twitch_client_secret": "test-client-secret",
        "oauth_proxy_url": "",
        "twitch_access_token": "",
        "twitch_refresh_token": "",
        "data_dir": tmp_path,
        "environment": "test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_record(**overrides: Any) -> TokenRecord:
    values: dict[str, Any] = {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "expires_in": 14400,
        "obtainment_timestamp": int(NOW * 1000),
        "scope": ["chat:read"],
        "user_id": "1234",
        "user_login": "streamer",
        "user_display_name": "Streamer",
    }
    values.update(overrides)
    return TokenRecord(**values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def credential_store(settings) -> CredentialStore:
    return CredentialStore(settings.token_file)


@pytest.fixture
def state_store(settings) -> StateStore:
    return StateStore(settings.state_file)

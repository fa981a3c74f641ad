"""Unit tests for the listener lifecycle coordinator."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeClock, FakeListener, RecordingSink, make_record

from toaster.core.errors import MissingTokenError
from toaster.services.auth_manager import CredentialManager
from toaster.services.chat_filter import ChatFilterService
from toaster.services.event_bridge import EventBridge
from toaster.services.event_history import EventHistory
from toaster.services.file_store import JsonFileStore, StateStore
from toaster.services.listener_manager import RUNNING, STOPPED, ListenerCoordinator
from toaster.shared.models.event import EventKind


class Harness:
    def __init__(
        self, settings, credential_store, eventsub_fails=False, chat_fails=False, **listener_options
    ):
        self.auth = CredentialManager(
            settings, credential_store, StateStore(settings.state_file), clock=FakeClock()
        )
        self.sink = RecordingSink()
        self.bridge = EventBridge(EventHistory(), self.sink, clock=FakeClock())
        self.chat_filter = ChatFilterService(
            JsonFileStore(settings.chat_filters_file), clock=FakeClock()
        )
        self.eventsub = listener_options.get("eventsub") or FakeListener("eventsub", fail=eventsub_fails)
        self.chat = listener_options.get("chat") or FakeListener("chat", fail=chat_fails)
        self.coordinator = ListenerCoordinator(
            self.auth, self.bridge, self.chat_filter, self.eventsub, self.chat
        )


@pytest.fixture
def authorized(credential_store):
    credential_store.save(make_record())
    return credential_store


@pytest.mark.asyncio
async def test_start_runs_both_listeners(settings, authorized) -> None:
    h = Harness(settings, authorized)

    assert await h.coordinator.start() is True
    assert h.coordinator.state == RUNNING
    assert h.eventsub.is_running and h.chat.is_running


@pytest.mark.asyncio
async def test_start_is_noop_when_running(settings, authorized) -> None:
    h = Harness(settings, authorized)
    await h.coordinator.start()
    await h.coordinator.start()

    assert h.eventsub.start_calls == 1
    assert h.chat.start_calls == 1


@pytest.mark.asyncio
async def test_partial_start_still_runs(settings, authorized) -> None:
    h = Harness(settings, authorized, eventsub_fails=True)

    assert await h.coordinator.start() is True
    assert h.coordinator.state == RUNNING

    status = h.coordinator.status()
    assert status["listeners"]["eventsub"]["running"] is False
    assert "connection refused" in status["listeners"]["eventsub"]["error"]
    assert status["listeners"]["chat"] == {"running": True, "error": None}

    await h.coordinator.stop()
    assert h.coordinator.state == STOPPED
    assert h.eventsub.stop_calls == 1
    assert h.chat.stop_calls == 1


@pytest.mark.asyncio
async def test_nothing_started_stays_stopped(settings, authorized) -> None:
    h = Harness(settings, authorized, eventsub_fails=True, chat_fails=True)

    assert await h.coordinator.start() is False
    assert h.coordinator.state == STOPPED


@pytest.mark.asyncio
async def test_credential_errors_propagate(settings, credential_store) -> None:
    h = Harness(settings, credential_store)

    with pytest.raises(MissingTokenError):
        await h.coordinator.start()

    assert h.coordinator.state == STOPPED
    assert h.eventsub.start_calls == 0


@pytest.mark.asyncio
async def test_push_events_reach_the_bridge(settings, authorized) -> None:
    h = Harness(settings, authorized)
    await h.coordinator.start()

    h.eventsub.dispatch(EventKind.RAID, {"username": "raider", "viewerCount": 7})

    [envelope] = h.sink.envelopes
    assert envelope.kind is EventKind.RAID
    assert envelope.data["viewerCount"] == 7


@pytest.mark.asyncio
async def test_chat_passes_through_the_filter(settings, authorized) -> None:
    h = Harness(settings, authorized)
    await h.coordinator.start()

    h.chat.dispatch(EventKind.CHAT, {"username": "viewer", "message": "just talking"})
    h.chat.dispatch(EventKind.CHAT, {"username": "viewer", "message": "!command"})

    assert [e.data["message"] for e in h.sink.envelopes] == ["!command"]


@pytest.mark.asyncio
async def test_stop_cancels_subscriptions(settings, authorized) -> None:
    h = Harness(settings, authorized)
    await h.coordinator.start()
    await h.coordinator.stop()

    h.eventsub.dispatch(EventKind.FOLLOW, {"username": "late"})

    assert h.sink.envelopes == []


@pytest.mark.asyncio
async def test_stop_when_never_started(settings, authorized) -> None:
    h = Harness(settings, authorized)
    await h.coordinator.stop()
    assert h.coordinator.state == STOPPED


@pytest.mark.asyncio
async def test_restart_resubscribes_once(settings, authorized) -> None:
    h = Harness(settings, authorized)
    await h.coordinator.start()

    assert await h.coordinator.restart() is True
    h.eventsub.dispatch(EventKind.FOLLOW, {"username": "fan"})

    assert len(h.sink.envelopes) == 1
    assert h.eventsub.start_calls == 2


@pytest.mark.asyncio
async def test_losing_every_listener_stops_the_coordinator(settings, authorized) -> None:
    h = Harness(settings, authorized)
    await h.coordinator.start()

    h.eventsub.drop()
    assert h.coordinator.state == RUNNING

    h.chat.drop()
    assert h.coordinator.state == STOPPED
    assert h.coordinator.status()["listeners"]["chat"]["error"] == "connection closed"


@pytest.mark.asyncio
async def test_failing_stop_does_not_block_the_other(settings, authorized) -> None:
    h = Harness(settings, authorized, eventsub=FakeListener("eventsub", fail_stop=True))
    await h.coordinator.start()

    await h.coordinator.stop()

    assert h.eventsub.stop_calls == 1
    assert h.chat.stop_calls == 1
    assert not h.chat.is_running
    assert h.coordinator.state == STOPPED


@pytest.mark.asyncio
async def test_stop_during_start_leaves_everything_down(settings, authorized) -> None:
    gate = asyncio.Event()
    h = Harness(settings, authorized, chat=FakeListener("chat", gate=gate))

    starting = asyncio.create_task(h.coordinator.start())
    await h.chat.connecting.wait()
    stopping = asyncio.create_task(h.coordinator.stop())
    await asyncio.sleep(0)
    gate.set()
    await asyncio.gather(starting, stopping)

    assert h.coordinator.state == STOPPED
    assert not h.eventsub.is_running
    assert not h.chat.is_running

    h.eventsub.dispatch(EventKind.RAID, {"username": "late"})
    assert h.sink.envelopes == []

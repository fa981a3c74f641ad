"""HTTP and WebSocket surface tests using FastAPI's TestClient."""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import respx
from conftest import FakeListener, make_record
from fastapi.testclient import TestClient

from toaster.app import create_app
from toaster.core.dependencies import AppServices
from toaster.services import (
    ChatFilterService,
    ConnectionManager,
    CredentialManager,
    CredentialStore,
    EventBridge,
    EventHistory,
    JsonFileStore,
    ListenerCoordinator,
    StateStore,
)


def build_test_services(settings) -> AppServices:
    auth = CredentialManager(
        settings, CredentialStore(settings.token_file), StateStore(settings.state_file)
    )
    history = EventHistory(max_events=settings.event_history_size)
    broadcaster = ConnectionManager()
    bridge = EventBridge(history, broadcaster)
    chat_filter = ChatFilterService(JsonFileStore(settings.chat_filters_file))
    chat_filter.load()
    coordinator = ListenerCoordinator(
        auth, bridge, chat_filter, FakeListener("eventsub"), FakeListener("chat")
    )
    return AppServices(
        settings=settings,
        auth=auth,
        history=history,
        broadcaster=broadcaster,
        bridge=bridge,
        chat_filter=chat_filter,
        coordinator=coordinator,
    )


@pytest.fixture
def services(settings) -> AppServices:
    return build_test_services(settings)


@pytest.fixture
def client(settings, services):
    with TestClient(create_app(settings, services)) as test_client:
        yield test_client


# ============================================================
#  Service info
# ============================================================


def test_root_and_health(client) -> None:
    root = client.get("/").json()
    assert root["service"] == "ttv-toaster"
    assert root["listeners"] == "stopped"
    assert client.get("/health").json()["status"] == "healthy"


def test_startup_starts_listeners_when_authorized(settings) -> None:
    CredentialStore(settings.token_file).save(make_record())
    services = build_test_services(settings)

    with TestClient(create_app(settings, services)) as test_client:
        assert services.coordinator.state == "running"
        assert test_client.get("/api/listeners").json()["state"] == "running"

    assert services.coordinator.state == "stopped"


# ============================================================
#  Manual injection + history
# ============================================================


def test_inject_event_records_history(client) -> None:
    response = client.post("/api/test/raid")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {"username": "teststreamer", "displayName": "TestStreamer", "viewerCount": 42}

    events = client.get("/api/events").json()
    assert events["count"] == 1
    [entry] = events["events"]
    assert entry["type"] == "raid"

    assert client.get(f"/api/events/entry/{entry['id']}").json() == entry


def test_inject_unknown_kind(client) -> None:
    response = client.post("/api/test/hosting")
    assert response.status_code == 400
    assert "raid" in response.json()["validTypes"]


def test_history_routes(client) -> None:
    for kind in ("raid", "follow", "follow", "redemption"):
        client.post(f"/api/test/{kind}")

    follows = client.get("/api/events/follow", params={"limit": 1}).json()
    assert follows["count"] == 1
    assert follows["type"] == "follow"

    redemption = client.get("/api/events/redemption").json()["events"][0]
    assert isinstance(redemption["data"]["redeemedAt"], str)

    assert client.get("/api/events-stats").json() == {
        "total": 4,
        "byType": {"raid": 1, "follow": 2, "redemption": 1},
    }
    assert client.get("/api/events/entry/missing").status_code == 404

    assert client.post("/api/events/clear").json()["success"] is True
    assert client.get("/api/events").json()["count"] == 0


# ============================================================
#  Chat filters
# ============================================================


def test_chat_filter_routes(client, settings) -> None:
    defaults = client.get("/api/chat/filters").json()
    assert defaults["conditions"]["prefix"] == "!"
    assert defaults["rateLimit"] == {"enabled": True, "maxPerSecond": 10}

    updated = client.post("/api/chat/filters", json={"conditions": {"keywords": ["hype"]}}).json()
    assert updated["success"] is True
    assert updated["filters"]["conditions"]["keywords"] == ["hype"]
    assert updated["filters"]["conditions"]["prefix"] == "!"
    assert settings.chat_filters_file.exists()

    rejected = client.post("/api/chat/filters", json={"rateLimit": {"maxPerSecond": 0}})
    assert rejected.status_code == 400
    assert rejected.json()["success"] is False
    assert client.get("/api/chat/filters").json()["conditions"]["keywords"] == ["hype"]

    reset = client.post("/api/chat/filters/reset").json()
    assert reset["filters"]["conditions"]["keywords"] == []


# ============================================================
#  Auth
# ============================================================


def test_authorize_redirects_to_twitch(client, settings) -> None:
    response = client.get("/auth/twitch", follow_redirects=False)
    assert response.status_code == 302

    location = urlparse(response.headers["location"])
    assert location.netloc == "id.twitch.tv"
    state = parse_qs(location.query)["state"][0]
    assert StateStore(settings.state_file).load().state == state


def test_callback_rejects_bad_state(client, settings) -> None:
    client.get("/auth/twitch", follow_redirects=False)

    response = client.get("/auth/callback", params={"code": "c", "state": "wrong"})
    assert response.status_code == 400
    assert not settings.state_file.exists()


def test_callback_reports_provider_error(client) -> None:
    response = client.get("/auth/callback", params={"error": "access_denied"})
    assert response.status_code == 400


def test_callback_success_starts_listeners(client, services) -> None:
    location = client.get("/auth/twitch", follow_redirects=False).headers["location"]
    state = parse_qs(urlparse(location).query)["state"][0]

    with respx.mock:
        respx.post("https://id.twitch.tv/oauth2/token").mock(
            return_value=httpx.Response(
                200,
                json={
                    "access_token": "fresh",
                    "refresh_token": "fresh-refresh",
                    "expires_in": 14400,
                    "scope": ["chat:read"],
                },
            )
        )
        respx.get("https://api.twitch.tv/helix/users").mock(
            return_value=httpx.Response(
                200, json={"data": [{"id": "7", "login": "owner", "display_name": "Owner"}]}
            )
        )
        response = client.get(
            "/auth/callback", params={"code": "abc", "state": state}, follow_redirects=False
        )

    assert response.status_code == 302
    assert response.headers["location"] == "/?auth=success"
    assert services.coordinator.state == "running"
    assert client.get("/auth/status").json()["user"]["login"] == "owner"


def test_callback_exchange_failure_is_502(client) -> None:
    location = client.get("/auth/twitch", follow_redirects=False).headers["location"]
    state = parse_qs(urlparse(location).query)["state"][0]

    with respx.mock:
        respx.post("https://id.twitch.tv/oauth2/token").mock(
            return_value=httpx.Response(400, json={"message": "Invalid authorization code"})
        )
        response = client.get("/auth/callback", params={"code": "bad", "state": state})

    assert response.status_code == 502
    assert response.json()["detail"]["error"] == "token_exchange_failed"


def test_status_and_logout(client, settings, services) -> None:
    assert client.get("/auth/status").json()["authenticated"] is False

    CredentialStore(settings.token_file).save(make_record())
    status = client.get("/auth/status").json()
    assert status["authenticated"] is True
    assert status["mode"] == "self-hosted"

    assert client.post("/auth/logout").json() == {"success": True}
    assert not settings.token_file.exists()
    assert services.coordinator.state == "stopped"


# ============================================================
#  Listeners
# ============================================================


def test_restart_without_credentials_is_503(client) -> None:
    response = client.post("/api/listeners/restart")
    assert response.status_code == 503
    assert client.get("/api/listeners").json()["state"] == "stopped"


def test_restart_with_credentials(client, settings) -> None:
    CredentialStore(settings.token_file).save(make_record())
    body = client.post("/api/listeners/restart").json()
    assert body["success"] is True
    assert body["listeners"]["eventsub"]["running"] is True


# ============================================================
#  Overlay WebSocket
# ============================================================


def test_overlay_receives_broadcast_and_history(client) -> None:
    with client.websocket_connect("/ws") as ws:
        client.post("/api/test/follow")
        message = ws.receive_json()
        assert message["event"] == "twitch-event"
        assert message["payload"]["type"] == "follow"
        assert message["payload"]["data"]["username"] == "newfollower"

        ws.send_json({"type": "history", "limit": 5})
        history = ws.receive_json()
        assert history["event"] == "history"
        assert [e["type"] for e in history["payload"]] == ["follow"]

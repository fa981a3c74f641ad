"""Twitch EventSub over WebSocket.

Connects, waits for ``session_welcome``, subscribes the session to the
channel's topics through Helix, then dispatches notifications as raw bridge
payloads. The only reconnect performed is the server-requested
``session_reconnect`` migration; any other close is reported upward.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict
from typing import TYPE_CHECKING, Any

import aiohttp
import httpx

from toaster.core.errors import ListenerStartError, ToasterError
from toaster.shared.models.event import EventKind
from toaster.twitch.base import Listener

if TYPE_CHECKING:
    from toaster.services.auth_manager import CredentialManager

logger = logging.getLogger(__name__)

EVENTSUB_WS_URL = "wss://eventsub.wss.twitch.tv/ws"
WELCOME_TIMEOUT = 10.0
SEEN_MESSAGE_LIMIT = 500


def subscription_specs(broadcaster_id: str) -> list[tuple[str, str, dict[str, str]]]:
    """(type, version, condition) for every topic the overlay consumes."""
    return [
        ("channel.raid", "1", {"to_broadcaster_user_id": broadcaster_id}),
        (
            "channel.follow",
            "2",
            {"broadcaster_user_id": broadcaster_id, "moderator_user_id": broadcaster_id},
        ),
        ("channel.subscribe", "1", {"broadcaster_user_id": broadcaster_id}),
        ("channel.subscription.gift", "1", {"broadcaster_user_id": broadcaster_id}),
        ("channel.cheer", "1", {"broadcaster_user_id": broadcaster_id}),
        (
            "channel.channel_points_custom_reward_redemption.add",
            "1",
            {"broadcaster_user_id": broadcaster_id},
        ),
    ]


def payload_from_notification(
    sub_type: str, event: dict[str, Any]
) -> tuple[EventKind, dict[str, Any]] | None:
    """Map an EventSub notification event to (kind, raw bridge payload)."""
    if sub_type == "channel.raid":
        return EventKind.RAID, {
            "username": event.get("from_broadcaster_user_login"),
            "displayName": event.get("from_broadcaster_user_name"),
            "viewerCount": event.get("viewers"),
        }

    if sub_type == "channel.follow":
        return EventKind.FOLLOW, {
            "username": event.get("user_login"),
            "displayName": event.get("user_name"),
        }

    if sub_type == "channel.subscribe":
        return EventKind.SUBSCRIBE, {
            "username": event.get("user_login"),
            "displayName": event.get("user_name"),
            "tier": event.get("tier"),
        }

    if sub_type == "channel.subscription.gift":
        return EventKind.GIFT, {
            "username": event.get("user_login") or "Anonymous",
            "displayName": event.get("user_name") or "Anonymous",
            "amount": event.get("total"),
            "tier": event.get("tier"),
            "isAnonymous": event.get("is_anonymous", False),
            "cumulativeAmount": event.get("cumulative_total"),
        }

    if sub_type == "channel.cheer":
        anonymous = event.get("is_anonymous", False)
        return EventKind.CHEER, {
            "username": "Anonymous" if anonymous else event.get("user_login"),
            "displayName": "Anonymous" if anonymous else event.get("user_name"),
            "bits": event.get("bits"),
            "message": event.get("message"),
        }

    if sub_type == "channel.channel_points_custom_reward_redemption.add":
        reward = event.get("reward") or {}
        return EventKind.REDEMPTION, {
            "username": event.get("user_login"),
            "displayName": event.get("user_name"),
            "rewardTitle": reward.get("title"),
            "rewardCost": reward.get("cost"),
            "rewardPrompt": reward.get("prompt"),
            "userInput": event.get("user_input"),
            "redeemedAt": event.get("redeemed_at"),
        }

    return None


class EventSubListener(Listener):
    """Push-event listener for raids, follows, subs, gifts, cheers and redemptions."""

    name = "eventsub"

    def __init__(
        self,
        auth: CredentialManager,
        url: str = EVENTSUB_WS_URL,
        welcome_timeout: float = WELCOME_TIMEOUT,
    ):
        super().__init__()
        self._auth = auth
        self._url = url
        self._welcome_timeout = welcome_timeout
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task | None = None
        self._stopping = False
        self._seen: OrderedDict[str, None] = OrderedDict()
        self.session_id: str | None = None

    async def start(self) -> None:
        if self._running:
            return
        self._stopping = False

        try:
            token = await self._auth.get_access_token()
            identity = self._auth.identity
            if identity is None:
                raise ListenerStartError(self.name, "token record has no user identity")

            self._session = aiohttp.ClientSession()
            self._ws = await self._session.ws_connect(self._url)
            self.session_id = await self._await_welcome(self._ws)

            subscribed = await self._subscribe_all(token, identity.id)
            if subscribed == 0:
                raise ListenerStartError(self.name, "every subscription was rejected")
        except ListenerStartError:
            await self._close_connection()
            raise
        except (
            ToasterError, aiohttp.ClientError, asyncio.TimeoutError, KeyError, TypeError, ValueError
        ) as e:
            await self._close_connection()
            raise ListenerStartError(self.name, str(e) or type(e).__name__) from e
        except BaseException:
            await self._close_connection()
            raise

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"[EventSub] Listening to channel {identity.display_name} ({identity.id})")

    async def _await_welcome(self, ws: aiohttp.ClientWebSocketResponse) -> str:
        async def receive() -> str:
            while True:
                msg = await ws.receive()
                if msg.type != aiohttp.WSMsgType.TEXT:
                    raise aiohttp.ClientError(f"connection closed before welcome ({msg.type.name})")
                message = json.loads(msg.data)
                metadata = message.get("metadata", {})
                if metadata.get("message_type") == "session_welcome":
                    return message["payload"]["session"]["id"]

        return await asyncio.wait_for(receive(), timeout=self._welcome_timeout)

    async def _subscribe_all(self, token: str, broadcaster_id: str) -> int:
        api = self._auth.api
        subscribed = 0
        for sub_type, version, condition in subscription_specs(broadcaster_id):
            try:
                await api.create_eventsub_subscription(
                    token,
                    session_id=self.session_id or "",
                    sub_type=sub_type,
                    version=version,
                    condition=condition,
                )
            except httpx.HTTPError as e:
                logger.warning(f"[EventSub] Subscription {sub_type} failed: {e}")
                continue
            subscribed += 1
            logger.info(f"[EventSub] Subscribed to: {sub_type}")
        return subscribed

    async def _run(self) -> None:
        try:
            while self._ws is not None:
                ws = self._ws
                migrated = False
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        migrated = await self._handle_text(msg.data)
                        if migrated:
                            break
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        logger.warning(f"[EventSub] WebSocket error: {ws.exception()}")
                        break
                if not migrated:
                    break
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[EventSub] Receive loop failed")
        finally:
            if not self._stopping:
                logger.warning("[EventSub] Connection closed unexpectedly")
                await self._close_connection()
                self._notify_closed()

    async def _handle_text(self, raw: str) -> bool:
        """Handle one frame; returns True after migrating to a new connection."""
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("[EventSub] Ignoring non-JSON frame")
            return False

        metadata = message.get("metadata") or {}
        payload = message.get("payload") or {}
        message_type = metadata.get("message_type")

        if message_type == "session_keepalive":
            return False

        if message_type == "session_reconnect":
            reconnect_url = (payload.get("session") or {}).get("reconnect_url")
            if reconnect_url:
                await self._migrate(reconnect_url)
                return True
            return False

        if message_type == "revocation":
            sub = payload.get("subscription") or {}
            logger.warning(f"[EventSub] Subscription {sub.get('type')} revoked: {sub.get('status')}")
            return False

        if message_type != "notification":
            return False

        message_id = metadata.get("message_id")
        if message_id:
            if message_id in self._seen:
                return False
            self._seen[message_id] = None
            if len(self._seen) > SEEN_MESSAGE_LIMIT:
                self._seen.popitem(last=False)

        sub_type = (payload.get("subscription") or {}).get("type", "")
        mapped = payload_from_notification(sub_type, payload.get("event") or {})
        if mapped is None:
            logger.debug(f"[EventSub] Unhandled notification {sub_type}")
            return False

        kind, event_payload = mapped
        self.dispatch(kind, event_payload)
        return False

    async def _migrate(self, reconnect_url: str) -> None:
        """Move to the server-provided URL; subscriptions carry over."""
        assert self._session is not None
        logger.info("[EventSub] Server requested reconnect, migrating session")
        new_ws = await self._session.ws_connect(reconnect_url)
        try:
            self.session_id = await self._await_welcome(new_ws)
        except BaseException:
            await new_ws.close()
            raise
        old_ws, self._ws = self._ws, new_ws
        if old_ws is not None:
            await old_ws.close()

    async def _close_connection(self) -> None:
        ws, self._ws = self._ws, None
        session, self._session = self._session, None
        if ws is not None and not ws.closed:
            await ws.close()
        if session is not None:
            await session.close()

    async def stop(self) -> None:
        self._stopping = True
        self._running = False
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._close_connection()
        self.session_id = None
        logger.info("[EventSub] Listener stopped")

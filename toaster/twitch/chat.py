"""Twitch chat over IRC-on-WebSocket."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from toaster.core.errors import ListenerStartError, ToasterError
from toaster.shared.models.event import EventKind
from toaster.twitch.base import Listener

if TYPE_CHECKING:
    from toaster.services.auth_manager import CredentialManager

logger = logging.getLogger(__name__)

IRC_WS_URL = "wss://irc-ws.chat.twitch.tv:443"
WELCOME_TIMEOUT = 10.0

_TAG_ESCAPES = {":": ";", "s": " ", "\\": "\\", "r": "\r", "n": "\n"}


def _unescape_tag(value: str) -> str:
    out = []
    chars = iter(value)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_TAG_ESCAPES.get(nxt, nxt))
        else:
            out.append(ch)
    return "".join(out)


def parse_tags(raw: str) -> dict[str, str]:
    tags = {}
    for item in raw.split(";"):
        key, _, value = item.partition("=")
        tags[key] = _unescape_tag(value)
    return tags


def parse_badges(raw: str) -> dict[str, str]:
    badges = {}
    for item in raw.split(","):
        if not item:
            continue
        name, _, version = item.partition("/")
        badges[name] = version
    return badges


def parse_privmsg(line: str) -> dict[str, Any] | None:
    """Parse a tagged PRIVMSG line into a raw chat payload.

    Returns None for anything that is not a PRIVMSG.
    """
    tags: dict[str, str] = {}
    rest = line.rstrip("\r\n")

    if rest.startswith("@"):
        raw_tags, _, rest = rest[1:].partition(" ")
        tags = parse_tags(raw_tags)

    if not rest.startswith(":"):
        return None
    prefix, _, rest = rest[1:].partition(" ")
    command, _, rest = rest.partition(" ")
    if command != "PRIVMSG":
        return None

    _channel, _, message = rest.partition(" ")
    if message.startswith(":"):
        message = message[1:]

    username = prefix.split("!", 1)[0]
    badges = parse_badges(tags.get("badges", ""))

    return {
        "username": username,
        "displayName": tags.get("display-name") or username,
        "message": message,
        "color": tags.get("color", ""),
        "isMod": tags.get("mod") == "1",
        "isSubscriber": tags.get("subscriber") == "1",
        "isVip": "vip" in tags or "vip" in badges,
        "badges": badges,
    }


class ChatListener(Listener):
    """Joins the channel owner's chat and dispatches every PRIVMSG."""

    name = "chat"

    def __init__(
        self,
        auth: CredentialManager,
        url: str = IRC_WS_URL,
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
        self.channel: str | None = None

    async def start(self) -> None:
        if self._running:
            return
        self._stopping = False

        try:
            token = await self._auth.get_access_token()
            identity = self._auth.identity
            if identity is None:
                raise ListenerStartError(self.name, "could not get user info from token record")
            self.channel = identity.login.lower()

            self._session = aiohttp.ClientSession()
            self._ws = await self._session.ws_connect(self._url)
            await self._ws.send_str("CAP REQ :twitch.tv/tags twitch.tv/commands")
            await self._ws.send_str(f"PASS oauth:{token}")
            await self._ws.send_str(f"NICK {self.channel}")
            await asyncio.wait_for(self._await_welcome(self._ws), timeout=self._welcome_timeout)
            await self._ws.send_str(f"JOIN #{self.channel}")
        except ListenerStartError:
            await self._close_connection()
            raise
        except (ToasterError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self._close_connection()
            raise ListenerStartError(self.name, str(e) or type(e).__name__) from e
        except BaseException:
            await self._close_connection()
            raise

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"[Chat] Connected to channel: {identity.display_name}")

    async def _await_welcome(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while True:
            msg = await ws.receive()
            if msg.type != aiohttp.WSMsgType.TEXT:
                raise aiohttp.ClientError(f"connection closed during login ({msg.type.name})")
            for line in msg.data.splitlines():
                if line.startswith("PING"):
                    await ws.send_str(line.replace("PING", "PONG", 1))
                    continue
                parts = line.split(" ")
                if len(parts) > 1 and parts[1] == "001":
                    return
                if len(parts) > 1 and parts[1] == "NOTICE" and "auth" in line.lower():
                    raise ListenerStartError(self.name, line.split(" :", 1)[-1])

    async def _run(self) -> None:
        ws = self._ws
        try:
            if ws is None:
                return
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    for line in msg.data.splitlines():
                        await self._handle_line(ws, line)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning(f"[Chat] WebSocket error: {ws.exception()}")
                    break
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[Chat] Receive loop failed")
        finally:
            if not self._stopping:
                logger.warning("[Chat] Connection closed unexpectedly")
                await self._close_connection()
                self._notify_closed()

    async def _handle_line(self, ws: aiohttp.ClientWebSocketResponse, line: str) -> None:
        if not line:
            return
        if line.startswith("PING"):
            await ws.send_str(line.replace("PING", "PONG", 1))
            return

        payload = parse_privmsg(line)
        if payload is not None:
            self.dispatch(EventKind.CHAT, payload)
        elif " RECONNECT" in line:
            logger.info("[Chat] Server requested reconnect")
            await ws.close()

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
        logger.info("[Chat] Disconnected")

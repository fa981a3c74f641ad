"""Twitch API client service.

Covers the OAuth endpoints (authorize URL, code exchange, refresh, validate),
the Helix user lookup and EventSub subscription creation. All calls use a
user access token; no app access token is ever requested.
"""

import logging
from urllib.parse import quote, urlencode

import httpx

from toaster.core.errors import TokenExchangeError, TokenRefreshError
from toaster.shared.models.token import Identity

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
OAUTH_BASE = "https://id.twitch.tv/oauth2"


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


class TwitchAPIClient:
    """Client for interacting with Twitch API.

    Manages a shared httpx client for connection reuse. ``client_secret`` is
    only needed for code exchange and refresh (self-hosted mode and the OAuth
    proxy); Helix calls need the public client id alone.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        *,
        http: httpx.AsyncClient | None = None,
    ):
        if not client_id:
            raise ValueError("Twitch client_id is required")

        self.client_id = client_id
        self.client_secret = client_secret

        # Shared HTTP client, reuses TCP connections across requests
        self._http = http or httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    def _user_headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Client-Id": self.client_id}

    def _require_secret(self) -> None:
        if not self.client_secret:
            raise ValueError("This operation needs the Twitch client_secret")

    # ------------------------------------------------------------------
    # OAuth flow
    # ------------------------------------------------------------------

    def generate_oauth_url(self, redirect_uri: str, scopes: list[str], state: str) -> str:
        """Generate Twitch OAuth authorization URL."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(scopes),
            "state": state,
        }
        return f"{OAUTH_BASE}/authorize?{urlencode(params, quote_via=quote)}"

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> dict:
        """Exchange OAuth code for a user token.

        Returns the provider's token response (access_token, refresh_token,
        expires_in, scope).
        """
        self._require_secret()
        try:
            response = await self._http.post(
                f"{OAUTH_BASE}/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": redirect_uri,
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Code exchange request failed: {type(e).__name__}: {e}")
            raise TokenExchangeError(f"token endpoint unreachable: {e}") from e

        if response.status_code != 200:
            detail = _error_detail(response)
            logger.error(f"Failed to exchange code: {response.status_code} {detail}")
            raise TokenExchangeError(
                f"token exchange rejected: {detail}", status_code=response.status_code
            )

        data = response.json()
        if not data.get("access_token"):
            raise TokenExchangeError("no access_token in exchange response")
        return data

    async def refresh_access_token(self, refresh_token: str) -> dict:
        """Refresh a user's access token using their refresh token.

        The refresh token itself may also be rotated (Twitch returns a new one).
        Caller should persist both tokens.
        """
        self._require_secret()
        try:
            response = await self._http.post(
                f"{OAUTH_BASE}/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Token refresh request failed: {type(e).__name__}: {e}")
            raise TokenRefreshError(f"token endpoint unreachable: {e}") from e

        if response.status_code != 200:
            detail = _error_detail(response)
            logger.error(f"Token refresh failed: {detail}")
            raise TokenRefreshError(f"refresh rejected: {detail}", status_code=response.status_code)

        data = response.json()
        if not data.get("access_token"):
            raise TokenRefreshError("no access_token in refresh response")
        return data

    async def validate_token(self, access_token: str) -> dict | None:
        """Validate an access token.

        Returns the validation payload (client_id, login, user_id, scopes,
        expires_in), or None when Twitch reports the token invalid. Network
        errors propagate as ``httpx.HTTPError``.
        """
        response = await self._http.get(
            f"{OAUTH_BASE}/validate",
            headers={"Authorization": f"OAuth {access_token}"},
        )
        if response.status_code == 401:
            return None
        response.raise_for_status()
        return response.json()

    # ------------------------------------------------------------------
    # User data
    # ------------------------------------------------------------------

    async def get_user(self, access_token: str) -> Identity:
        """Get the identity the access token was issued for."""
        try:
            response = await self._http.get(
                f"{HELIX_BASE}/users", headers=self._user_headers(access_token)
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"user lookup failed: {e}") from e

        if response.status_code != 200:
            raise TokenExchangeError(
                f"user lookup rejected: {_error_detail(response)}", status_code=response.status_code
            )

        users = response.json().get("data", [])
        if not users:
            raise TokenExchangeError("user lookup returned no user")

        user = users[0]
        return Identity(
            id=user["id"],
            login=user["login"],
            display_name=user.get("display_name") or user["login"],
        )

    # ------------------------------------------------------------------
    # EventSub
    # ------------------------------------------------------------------

    async def create_eventsub_subscription(
        self,
        access_token: str,
        *,
        session_id: str,
        sub_type: str,
        version: str,
        condition: dict[str, str],
    ) -> dict:
        """Subscribe a WebSocket session to one EventSub topic."""
        response = await self._http.post(
            f"{HELIX_BASE}/eventsub/subscriptions",
            headers=self._user_headers(access_token),
            json={
                "type": sub_type,
                "version": version,
                "condition": condition,
                "transport": {"method": "websocket", "session_id": session_id},
            },
        )
        if response.status_code not in (200, 202):
            raise httpx.HTTPStatusError(
                f"subscription {sub_type} rejected: {_error_detail(response)}",
                request=response.request,
                response=response,
            )
        data = response.json().get("data", [])
        return data[0] if data else {}

"""Client for the delegated OAuth proxy.

The proxy holds the confidential client secret and performs code exchange and
refresh on our behalf. It is treated as an opaque oracle: whatever token pair
it returns is what we persist.
"""

import logging

import httpx

from toaster.core.errors import TokenExchangeError, TokenRefreshError

logger = logging.getLogger(__name__)


class OAuthProxyClient:
    """Talks to the proxy's ``/``, ``/exchange`` and ``/refresh`` endpoints."""

    def __init__(self, base_url: str, *, http: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        await self._http.aclose()

    async def get_client_id(self) -> str | None:
        """Fetch the proxy's public client id, or None if unavailable."""
        try:
            response = await self._http.get(f"{self.base_url}/")
            response.raise_for_status()
            return response.json().get("clientId") or None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to get client id from OAuth proxy: {e}")
            return None

    async def exchange_code(self, code: str, redirect_uri: str) -> dict:
        """Returns {accessToken, refreshToken, expiresIn, scope, user: {...}}."""
        try:
            response = await self._http.post(
                f"{self.base_url}/exchange",
                json={"code": code, "redirectUri": redirect_uri},
            )
        except httpx.HTTPError as e:
            logger.error(f"OAuth proxy unreachable during exchange: {e}")
            raise TokenExchangeError(f"OAuth proxy unreachable: {e}") from e

        if response.status_code != 200:
            logger.error(f"Proxy exchange failed: {response.status_code} {response.text}")
            raise TokenExchangeError(f"proxy exchange rejected (HTTP {response.status_code})")

        data = response.json()
        if not data.get("accessToken") or not isinstance(data.get("user"), dict):
            raise TokenExchangeError("proxy exchange response is incomplete")
        return data

    async def refresh(self, refresh_token: str) -> dict:
        """Returns {accessToken, refreshToken, expiresIn, scope}."""
        try:
            response = await self._http.post(
                f"{self.base_url}/refresh",
                json={"refreshToken": refresh_token},
            )
        except httpx.HTTPError as e:
            logger.error(f"OAuth proxy unreachable during refresh: {e}")
            raise TokenRefreshError(f"OAuth proxy unreachable: {e}") from e

        if response.status_code != 200:
            logger.error(f"Proxy token refresh failed: {response.status_code}")
            raise TokenRefreshError(f"proxy refresh rejected (HTTP {response.status_code})")

        data = response.json()
        if not data.get("accessToken"):
            raise TokenRefreshError("proxy refresh response has no accessToken")
        return data

"""OAuth proxy application.

Performs code exchange and refresh for installations that have no client
secret of their own. Only the public client id is ever exposed.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from toaster import __version__
from toaster.core.errors import UpstreamError
from toaster.core.logging import setup_logging
from toaster.proxy.config import ProxySettings, get_proxy_settings
from toaster.services.twitch_api import TwitchAPIClient

logger = logging.getLogger(__name__)


class ExchangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = ""
    redirect_uri: str = Field(default="", alias="redirectUri")


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(default="", alias="refreshToken")


def _upstream_failure(e: UpstreamError, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=e.status_code or 502,
        content={"error": message, "details": str(e)},
    )


def create_proxy_app(
    settings: ProxySettings | None = None, api: TwitchAPIClient | None = None
) -> FastAPI:
    """Create and configure the OAuth proxy"""
    settings = settings or get_proxy_settings()
    setup_logging(settings)

    if api is None and settings.is_configured:
        api = TwitchAPIClient(settings.twitch_client_id, settings.twitch_client_secret)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if api is None:
            logger.error("Missing TWITCH_CLIENT_ID or TWITCH_CLIENT_SECRET")
        logger.info(f"OAuth proxy running on port {settings.port}")
        yield
        if api is not None:
            await api.close()

    app = FastAPI(
        title="TTV Toaster OAuth Proxy",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def require_api() -> TwitchAPIClient:
        if api is None:
            raise HTTPException(status_code=500, detail="Server configuration error")
        return api

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.get("/")
    async def root():
        return {
            "service": "TTV Toaster OAuth Proxy",
            "status": "running",
            "version": __version__,
            "clientId": settings.twitch_client_id or None,
        }

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.post("/exchange")
    async def exchange(body: ExchangeRequest):
        """Exchange an authorization code for tokens plus the user's identity."""
        if not body.code or not body.redirect_uri:
            raise HTTPException(status_code=400, detail="Missing required fields: code, redirectUri")
        client = require_api()

        try:
            data = await client.exchange_code_for_token(body.code, body.redirect_uri)
            user = await client.get_user(data["access_token"])
        except UpstreamError as e:
            logger.error(f"Token exchange failed: {e}")
            return _upstream_failure(e, "Failed to exchange code for token")

        logger.info(f"[OAuth] Successfully authenticated user: {user.display_name}")
        return {
            "accessToken": data["access_token"],
            "refreshToken": data.get("refresh_token"),
            "expiresIn": data.get("expires_in"),
            "scope": data.get("scope", []),
            "user": user.to_dict(),
        }

    @app.post("/refresh")
    async def refresh(body: RefreshRequest):
        """Refresh an access token."""
        if not body.refresh_token:
            raise HTTPException(status_code=400, detail="Missing required field: refreshToken")
        client = require_api()

        try:
            data = await client.refresh_access_token(body.refresh_token)
        except UpstreamError as e:
            logger.error(f"Token refresh failed: {e}")
            return _upstream_failure(e, "Failed to refresh token")

        logger.info("[OAuth] Successfully refreshed token")
        return {
            "accessToken": data["access_token"],
            "refreshToken": data.get("refresh_token"),
            "expiresIn": data.get("expires_in"),
            "scope": data.get("scope", []),
        }

    return app

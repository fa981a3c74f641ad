"""FastAPI application factory"""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toaster import __version__
from toaster.core.config import Settings, get_settings
from toaster.core.dependencies import AppServices, build_services
from toaster.core.errors import ToasterError
from toaster.core.logging import setup_logging
from toaster.routers import (
    auth_router,
    chat_filters_router,
    events_router,
    listeners_router,
    overlay_router,
    test_events_router,
)

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, services: AppServices | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    settings = settings or get_settings()

    # Setup logging first
    setup_logging(settings)

    services = services or build_services(settings)
    started_at = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle startup and shutdown"""
        logger.info("Starting TTV Toaster server")
        logger.info(f"Environment: {settings.environment}, credential mode: {services.auth.mode}")

        if services.auth.mode is None:
            logger.warning("No OAuth configuration found")
            logger.warning("  Option 1 (Easy): set OAUTH_PROXY_URL")
            logger.warning("  Option 2 (Privacy): set TWITCH_CLIENT_ID and TWITCH_CLIENT_SECRET")

        if settings.token_file.exists() or settings.twitch_access_token:
            logger.info("Found existing authentication, starting listeners...")
            try:
                await services.coordinator.start()
            except ToasterError as e:
                logger.error(f"Failed to start listeners: {e}")
                logger.error(f"Please re-authenticate at http://localhost:{settings.port}/auth/twitch")
        else:
            logger.info(
                f"No authentication found. Please log in at http://localhost:{settings.port}/auth/twitch"
            )

        yield

        logger.info("Shutting down TTV Toaster server")
        try:
            await services.close()
        except Exception as e:
            logger.exception(f"Error during shutdown: {e}")

    app = FastAPI(
        title="TTV Toaster",
        description="Twitch event relay for browser overlays",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.services = services

    # Overlays run from OBS browser sources on any origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router.router)
    app.include_router(chat_filters_router.router)
    app.include_router(events_router.router)
    app.include_router(test_events_router.router)
    app.include_router(listeners_router.router)
    app.include_router(overlay_router.router)

    @app.get("/")
    async def root():
        """Root endpoint - minimal service info"""
        return {
            "service": "ttv-toaster",
            "status": "running",
            "version": __version__,
            "listeners": services.coordinator.state,
        }

    @app.get("/health")
    async def health():
        """Liveness check (no upstream dependency)"""
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - started_at),
            "overlays": services.broadcaster.client_count,
        }

    logger.info("FastAPI application configured")

    return app

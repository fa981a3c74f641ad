"""Authentication API routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from toaster.core.dependencies import get_auth_manager, get_coordinator
from toaster.core.errors import (
    AuthorizationStateError,
    ConfigurationError,
    TokenExchangeError,
    ToasterError,
)
from toaster.services import CredentialManager, ListenerCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.get("/twitch")
async def start_authorization(
    auth: CredentialManager = Depends(get_auth_manager),
) -> RedirectResponse:
    """Redirect the channel owner to Twitch with a fresh state nonce."""
    try:
        url = await auth.create_authorization_url()
    except ConfigurationError as e:
        logger.error(f"OAuth not configured: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from None
    return RedirectResponse(url=url, status_code=302)


@router.get("/callback")
async def authorization_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    auth: CredentialManager = Depends(get_auth_manager),
    coordinator: ListenerCoordinator = Depends(get_coordinator),
) -> RedirectResponse:
    """Handle Twitch OAuth callback"""
    if error:
        logger.error(f"OAuth error from Twitch: {error}")
        raise HTTPException(status_code=400, detail=error_description or error)

    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    try:
        record = await auth.complete_authorization(code, state)
    except AuthorizationStateError as e:
        logger.warning(f"Rejected OAuth callback: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from None
    except TokenExchangeError as e:
        raise HTTPException(
            status_code=502,
            detail={"error": "token_exchange_failed", "message": str(e)},
        ) from None
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from None

    logger.info(f"Successfully authenticated user: {record.user_display_name} ({record.user_login})")

    try:
        await coordinator.restart()
    except ToasterError as e:
        logger.error(f"Failed to start listeners after authorization: {e}")

    return RedirectResponse(url="/?auth=success", status_code=302)


@router.get("/status")
async def auth_status(auth: CredentialManager = Depends(get_auth_manager)) -> dict:
    return auth.status()


@router.post("/logout")
async def logout(
    auth: CredentialManager = Depends(get_auth_manager),
    coordinator: ListenerCoordinator = Depends(get_coordinator),
) -> dict:
    """Stop ingestion and forget the stored token."""
    await coordinator.stop()
    await auth.logout()
    return {"success": True}

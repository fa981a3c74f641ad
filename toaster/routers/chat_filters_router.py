"""Chat filter configuration API routes"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from toaster.core.dependencies import get_chat_filter
from toaster.services import ChatFilterService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat/filters", tags=["chat-filters"])


def _describe(error: ValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in error.errors()]


@router.get("")
async def get_filters(chat_filter: ChatFilterService = Depends(get_chat_filter)) -> dict:
    return chat_filter.config.to_document()


@router.post("")
async def update_filters(
    body: dict[str, Any] = Body(...),
    chat_filter: ChatFilterService = Depends(get_chat_filter),
):
    """Merge a partial document onto the current filters."""
    try:
        config = chat_filter.update(body)
    except ValidationError as e:
        logger.warning(f"Rejected chat filter update: {e.error_count()} errors")
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid filter configuration", "details": _describe(e)},
        )
    except OSError as e:
        logger.exception("Failed to save chat filters")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return {"success": True, "filters": config.to_document()}


@router.post("/reset")
async def reset_filters(chat_filter: ChatFilterService = Depends(get_chat_filter)):
    try:
        config = chat_filter.reset()
    except OSError as e:
        logger.exception("Failed to save chat filters")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return {"success": True, "filters": config.to_document()}

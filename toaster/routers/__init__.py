from . import (
    auth_router,
    chat_filters_router,
    events_router,
    listeners_router,
    overlay_router,
    test_events_router,
)

__all__ = [
    "auth_router",
    "chat_filters_router",
    "events_router",
    "listeners_router",
    "overlay_router",
    "test_events_router",
]

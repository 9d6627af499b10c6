"""API Routers package

Routers are organized by feature domain.
"""

from . import auth_router, eventsub_router, overlay_router, webhook_router

__all__ = [
    "auth_router",
    "eventsub_router",
    "overlay_router",
    "webhook_router",
]

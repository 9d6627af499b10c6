"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from streamalerts import __version__
from streamalerts.core.config import get_settings
from streamalerts.core.dependencies import (
    close_services,
    get_broadcaster,
    get_credential_manager,
    get_database_manager,
    get_live_state,
    init_credential_store,
)
from streamalerts.core.logging import setup_logging
from streamalerts.core.state import LiveState
from streamalerts.routers import auth_router, eventsub_router, overlay_router, webhook_router
from streamalerts.services import Broadcaster, CredentialManager

logger = logging.getLogger(__name__)

# Track server start time
_start_time: float = time.time()
_renewal_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    global _start_time, _renewal_task
    _start_time = time.time()

    settings = get_settings()
    logger.info("Starting stream alerts server")
    logger.info(f"Environment: {settings.environment}")

    if not settings.webhook_secret:
        logger.warning("WEBHOOK_SECRET not set; webhook deliveries will be answered with 500")

    await init_credential_store()
    manager = get_credential_manager()
    await manager.load()

    # Renewal runs independently of request handling
    if settings.client_id and settings.client_secret:
        _renewal_task = asyncio.create_task(manager.run_renewal_loop(settings.renewal_interval))
    else:
        logger.warning("CLIENT_ID / CLIENT_SECRET not set, credential renewal disabled")

    yield

    logger.info("Shutting down stream alerts server")
    if _renewal_task:
        _renewal_task.cancel()
        _renewal_task = None
    try:
        await close_services()
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    settings = get_settings()

    setup_logging(settings)

    app = FastAPI(
        title="Stream Alerts",
        description="Twitch EventSub webhook ingestion and overlay alert fan-out",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(webhook_router.router)
    app.include_router(eventsub_router.router)
    app.include_router(auth_router.router)
    app.include_router(overlay_router.router)

    @app.get("/")
    async def root():
        """Root endpoint - minimal service info"""
        return {"service": "streamalerts", "status": "running"}

    @app.get("/health")
    async def health():
        """Liveness check, no external dependency"""
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - _start_time),
        }

    @app.get("/status")
    async def status(
        manager: CredentialManager = Depends(get_credential_manager),
        broadcaster: Broadcaster = Depends(get_broadcaster),
        live_state: LiveState = Depends(get_live_state),
    ):
        """Readiness / status endpoint"""
        db_manager = get_database_manager()
        return {
            "service": "streamalerts",
            "version": __version__,
            "uptime_seconds": int(time.time() - _start_time),
            "live": live_state.get(),
            "overlay_clients": broadcaster.client_count,
            "eventsub_configured": bool(settings.webhook_secret and settings.public_url),
            "db_connected": await db_manager.check_health() if db_manager else False,
            "credentials": {
                tier: {"available": info["access"] != "Not available", **info}
                for tier, info in manager.status().items()
            },
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        """Ping endpoint"""
        return "pong"

    logger.info("FastAPI application configured")

    return app

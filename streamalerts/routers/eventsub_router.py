"""EventSub subscription management routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from streamalerts.core.config import Settings, get_settings
from streamalerts.core.dependencies import get_registrar
from streamalerts.core.errors import ConfigError, UpstreamAPIError
from streamalerts.models import SubscriptionType
from streamalerts.services import RegistrationStatus, SubscriptionRegistrar

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/eventsub", tags=["eventsub"])


# ============================================
# Request Models
# ============================================


class SetupRequest(BaseModel):
    channel_login: str | None = None
    subject_id: str | None = None


class EnsureRequest(BaseModel):
    type: str
    subject_id: str


# ============================================
# Helpers
# ============================================


async def _resolve_subject_id(
    registrar: SubscriptionRegistrar, settings: Settings, body: SetupRequest | None
) -> str:
    if body and body.subject_id:
        return body.subject_id
    login = (body.channel_login if body else None) or settings.channel_login
    if not login and settings.broadcaster_id:
        return settings.broadcaster_id
    if not login:
        raise HTTPException(
            status_code=400, detail="TWITCH_CHANNEL / CHANNEL_LOGIN not set and no subject_id given"
        )

    try:
        subject_id = await registrar.resolve_subject_id(login)
    except ConfigError as e:
        raise HTTPException(status_code=500, detail=str(e)) from None
    except UpstreamAPIError as e:
        raise HTTPException(status_code=502, detail=f"User lookup failed: {e}") from None
    if not subject_id:
        raise HTTPException(status_code=404, detail=f"User not found: {login}")
    return subject_id


# ============================================
# Endpoints
# ============================================


@router.get("/status")
async def eventsub_status(
    registrar: SubscriptionRegistrar = Depends(get_registrar),
) -> dict:
    """List remote subscriptions alongside the local registry."""
    try:
        remote = await registrar.list_remote()
    except ConfigError as e:
        raise HTTPException(status_code=500, detail=str(e)) from None
    except UpstreamAPIError as e:
        logger.error(f"Failed to list EventSub subscriptions: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from None

    return {
        "total": len(remote),
        "subscriptions": [s.to_dict() for s in remote],
        "local": [s.to_dict() for s in registrar.registry.all()],
    }


@router.post("/setup")
async def eventsub_setup(
    body: SetupRequest | None = None,
    registrar: SubscriptionRegistrar = Depends(get_registrar),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Ensure every alert subscription for the configured (or given) channel."""
    subject_id = await _resolve_subject_id(registrar, settings, body)
    logger.info(f"Setting up EventSub for {subject_id}")

    results = await registrar.setup_all(subject_id)
    return {
        "subject_id": subject_id,
        "success": all(r.success for r in results.values()),
        "results": {name: r.to_dict() for name, r in results.items()},
    }


@router.post("/subscriptions")
async def ensure_subscription(
    body: EnsureRequest,
    response: Response,
    registrar: SubscriptionRegistrar = Depends(get_registrar),
) -> dict:
    """Ensure a single subscription type for a subject id."""
    try:
        sub_type = SubscriptionType.parse(body.type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    result = await registrar.ensure_subscription(sub_type, body.subject_id)
    if result.status == RegistrationStatus.CREATED:
        response.status_code = 201
    elif result.status == RegistrationStatus.FAILED:
        response.status_code = 502
    return result.to_dict()

"""Operator-facing credential routes: OAuth flow, token status, manual refresh"""

import base64
import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from streamalerts.core.config import CHAT_SCOPES, USER_SCOPES, Settings, get_settings
from streamalerts.core.dependencies import get_credential_manager, get_registrar
from streamalerts.core.errors import ConfigError, CredentialAuthorizationError, UpstreamAPIError
from streamalerts.models import CredentialTier, SubscriptionType
from streamalerts.services import CredentialManager, SubscriptionRegistrar

logger = logging.getLogger(__name__)

router = APIRouter(tags=["authentication"])

TIER_SCOPES = {
    CredentialTier.USER: USER_SCOPES,
    CredentialTier.CHAT: CHAT_SCOPES,
}


# ============================================
# Helpers
# ============================================


def _parse_tier(tier: str) -> CredentialTier:
    try:
        return CredentialTier(tier)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown credential tier: {tier}") from None


def _encode_oauth_state(tier: CredentialTier) -> str:
    """Encode OAuth state as base64 JSON."""
    return base64.urlsafe_b64encode(json.dumps({"tier": tier.value}).encode()).decode()


def _decode_oauth_state(state: str | None) -> CredentialTier:
    """Decode the tier from OAuth state. Falls back to the user tier."""
    if not state:
        return CredentialTier.USER
    try:
        data = json.loads(base64.urlsafe_b64decode(state.encode()).decode())
        tier = CredentialTier(data.get("tier", "user"))
    except (ValueError, AttributeError):
        return CredentialTier.USER
    return tier if tier in TIER_SCOPES else CredentialTier.USER


def _reauthorize_hint(tier: CredentialTier) -> str:
    if tier == CredentialTier.APP:
        return "Reacquire it with POST /api/refresh-token/app"
    return f"Re-authorize at /auth/{tier.value}/oauth"


# ============================================
# Endpoints
# ============================================


@router.get("/auth/{tier}/oauth")
async def start_oauth(
    tier: str,
    manager: CredentialManager = Depends(get_credential_manager),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Redirect to Twitch to authorize the user or chat tier."""
    credential_tier = _parse_tier(tier)
    if credential_tier not in TIER_SCOPES:
        raise HTTPException(status_code=400, detail="The app tier does not use the OAuth flow")
    if not settings.client_id or not settings.public_url:
        raise HTTPException(status_code=500, detail="CLIENT_ID and PUBLIC_URL must be set")

    url = manager.api.generate_oauth_url(
        settings.oauth_redirect_uri,
        TIER_SCOPES[credential_tier],
        state=_encode_oauth_state(credential_tier),
    )
    logger.info(f"Redirecting to Twitch auth for tier '{credential_tier}'")
    return RedirectResponse(url)


@router.get("/auth/twitch/callback")
async def oauth_callback(
    code: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    state: str | None = None,
    manager: CredentialManager = Depends(get_credential_manager),
    registrar: SubscriptionRegistrar = Depends(get_registrar),
) -> dict:
    """Exchange the authorization code and, for the user tier, ensure the follow subscription."""
    if error:
        raise HTTPException(
            status_code=400, detail=f"{error}: {error_description or 'No description provided'}"
        )
    if not code:
        raise HTTPException(status_code=400, detail="Authorization code not provided")

    tier = _decode_oauth_state(state)
    try:
        user = await manager.exchange_authorization_code(tier, code)
    except ConfigError as e:
        raise HTTPException(status_code=500, detail=str(e)) from None
    except CredentialAuthorizationError as e:
        raise HTTPException(
            status_code=401, detail=f"Authorization code rejected. {_reauthorize_hint(tier)}"
        ) from e
    except UpstreamAPIError as e:
        logger.error(f"OAuth callback failed: {e}")
        raise HTTPException(status_code=502, detail=f"Token exchange failed: {e}") from None

    response: dict = {
        "tier": tier.value,
        "authenticated_as": user.get("display_name") or user.get("login"),
        "user_id": user.get("id"),
    }
    if tier == CredentialTier.USER:
        result = await registrar.ensure_subscription(SubscriptionType.FOLLOW, user["id"])
        response["follow_subscription"] = result.to_dict()
    return response


@router.get("/api/token-status")
async def token_status(
    manager: CredentialManager = Depends(get_credential_manager),
) -> dict:
    """Per-tier credential status with masked values."""
    return manager.status()


@router.get("/api/token-scopes/{tier}")
async def token_scopes(
    tier: str,
    manager: CredentialManager = Depends(get_credential_manager),
) -> dict:
    """Validate a tier's token with Twitch and compare its scopes to the ones required."""
    credential_tier = _parse_tier(tier)
    token = manager.current_token(credential_tier)
    if not token:
        raise HTTPException(
            status_code=404,
            detail=f"No '{credential_tier}' token. {_reauthorize_hint(credential_tier)}",
        )

    try:
        info = await manager.api.validate_token(token)
    except UpstreamAPIError as e:
        logger.error(f"Token validation failed for '{credential_tier}': {e}")
        raise HTTPException(status_code=502, detail=f"Token validation failed: {e}") from None
    if info is None:
        raise HTTPException(
            status_code=401,
            detail=f"Token is no longer valid. {_reauthorize_hint(credential_tier)}",
        )

    scopes = info.get("scopes") or []
    required = TIER_SCOPES.get(credential_tier, [])
    return {
        "tier": credential_tier.value,
        "login": info.get("login"),
        "user_id": info.get("user_id"),
        "expires_in": info.get("expires_in"),
        "scopes": scopes,
        "required": {scope: scope in scopes for scope in required},
        "missing": [scope for scope in required if scope not in scopes],
    }


@router.post("/api/refresh-token/{tier}")
async def refresh_token(
    tier: str,
    manager: CredentialManager = Depends(get_credential_manager),
) -> dict:
    """Manually renew a tier."""
    credential_tier = _parse_tier(tier)
    try:
        result = await manager.renew(credential_tier)
    except CredentialAuthorizationError:
        raise HTTPException(
            status_code=401,
            detail=f"Refresh value rejected. {_reauthorize_hint(credential_tier)}",
        ) from None

    if result.error:
        raise HTTPException(status_code=502, detail=f"Refresh failed: {result.error}")
    return {"tier": credential_tier.value, "status": result.status.value}


@router.delete("/api/tokens/{tier}")
async def revoke_token(
    tier: str,
    manager: CredentialManager = Depends(get_credential_manager),
) -> dict:
    """Drop a tier's cached credential."""
    credential_tier = _parse_tier(tier)
    removed = manager.revoke(credential_tier)
    return {"tier": credential_tier.value, "revoked": removed}

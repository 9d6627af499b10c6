"""Overlay client channel and manual alert triggers"""

import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from streamalerts.core.dependencies import get_broadcaster
from streamalerts.models import AlertEvent, AlertKind
from streamalerts.services import Broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["overlay"])


@router.websocket("/ws/alerts")
async def alerts_socket(
    websocket: WebSocket,
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> None:
    """Server-to-client alert stream; inbound client messages are ignored."""
    await websocket.accept()
    broadcaster.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)


@router.api_route("/test/{kind}", methods=["GET", "POST"])
async def trigger_test_alert(
    kind: str,
    username: str = "TestUser",
    months: int = 1,
    tier: str = "Tier 1",
    gift: bool = False,
    viewers: int = 5,
    bits: int = 100,
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> dict:
    """Publish a synthetic alert to connected overlays."""
    try:
        alert_kind = AlertKind(kind)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown alert kind: {kind}") from None

    attributes: dict = {
        AlertKind.FOLLOW: {"followedAt": None},
        AlertKind.SUBSCRIPTION: {"tierLabel": tier, "monthCount": months, "isGift": gift},
        AlertKind.RAID: {"viewerCount": viewers},
        AlertKind.CHEER: {"bitCount": bits},
    }[alert_kind]

    event = AlertEvent(kind=alert_kind, actor=username, attributes=attributes)
    delivered = broadcaster.publish(event)
    logger.info(f"Test {alert_kind} triggered for {username}")
    return {"event": event.to_payload(), "clients": delivered}

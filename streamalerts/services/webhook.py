"""EventSub webhook delivery handling.

One delivery moves received -> verifying -> accepted | rejected. Accepted
deliveries branch on the message-type header. Notification processing never
turns into an error response: Twitch redelivers anything that is not a fast
2xx, so internal failures are logged and the delivery is still acknowledged.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum

from cachetools import TTLCache  # type: ignore[import-untyped]

from streamalerts.core.errors import ConfigError, SignatureError
from streamalerts.core.state import LiveState
from streamalerts.services.broadcaster import Broadcaster
from streamalerts.services.normalizer import normalize
from streamalerts.services.signature import (
    MESSAGE_ID_HEADER,
    MESSAGE_SIGNATURE_HEADER,
    MESSAGE_TIMESTAMP_HEADER,
    MESSAGE_TYPE_HEADER,
    verify_signature,
)
from streamalerts.services.subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)

MESSAGE_TYPE_VERIFICATION = "webhook_callback_verification"
MESSAGE_TYPE_NOTIFICATION = "notification"
MESSAGE_TYPE_REVOCATION = "revocation"

STREAM_ONLINE = "stream.online"
STREAM_OFFLINE = "stream.offline"


class DeliveryState(StrEnum):
    RECEIVED = "received"
    VERIFYING = "verifying"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass
class WebhookResponse:
    """Transport-neutral response for one delivery."""

    status_code: int
    body: str = ""
    media_type: str = "text/plain"
    state: DeliveryState = DeliveryState.ACCEPTED


class WebhookDispatcher:
    """Verifies a delivery and routes it to challenge, notification, or revocation handling."""

    def __init__(
        self,
        secret: str,
        broadcaster: Broadcaster,
        registry: SubscriptionRegistry,
        *,
        live_state: LiveState | None = None,
        dedupe_ttl: float = 600,
    ):
        self.secret = secret
        self.broadcaster = broadcaster
        self.registry = registry
        self.live_state = live_state or LiveState()
        self._seen: TTLCache | None = (
            TTLCache(maxsize=4096, ttl=dedupe_ttl) if dedupe_ttl > 0 else None
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def _verify(self, headers: Mapping[str, str], raw_body: bytes) -> None:
        if not self.secret:
            raise ConfigError("Webhook secret not configured")
        authentic = verify_signature(
            self.secret,
            headers.get(MESSAGE_ID_HEADER),
            headers.get(MESSAGE_TIMESTAMP_HEADER),
            raw_body,
            headers.get(MESSAGE_SIGNATURE_HEADER),
        )
        if not authentic:
            raise SignatureError("Invalid signature, possible forgery attempt")

    def _is_duplicate(self, message_id: str | None) -> bool:
        if self._seen is None or not message_id:
            return False
        if message_id in self._seen:
            return True
        self._seen[message_id] = True
        return False

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle(self, headers: Mapping[str, str], raw_body: bytes) -> WebhookResponse:
        """Process one delivery. *headers* lookups must be case-insensitive."""
        try:
            self._verify(headers, raw_body)
        except ConfigError as e:
            logger.error(str(e))
            return WebhookResponse(500, str(e), state=DeliveryState.REJECTED)
        except SignatureError as e:
            logger.warning(str(e))
            return WebhookResponse(403, "Invalid signature", state=DeliveryState.REJECTED)

        message_type = headers.get(MESSAGE_TYPE_HEADER)
        try:
            body = json.loads(raw_body) if raw_body else {}
        except ValueError:
            logger.warning(f"Authentic {message_type} delivery with unparseable body")
            body = {}
        if not isinstance(body, dict):
            body = {}

        if message_type == MESSAGE_TYPE_VERIFICATION:
            challenge = str(body.get("challenge", ""))
            subscription = body.get("subscription")
            if not isinstance(subscription, dict):
                subscription = {}
            logger.info(f"Verification challenge for {subscription.get('type', 'unknown')}")
            return WebhookResponse(200, challenge)

        if self._is_duplicate(headers.get(MESSAGE_ID_HEADER)):
            logger.info(f"Duplicate {message_type} delivery ignored")
            return WebhookResponse(204)

        if message_type == MESSAGE_TYPE_NOTIFICATION:
            self._handle_notification(body)
        elif message_type == MESSAGE_TYPE_REVOCATION:
            self._handle_revocation(body)
        else:
            logger.warning(f"Unknown message type: {message_type}")
        return WebhookResponse(204)

    # ------------------------------------------------------------------
    # Message types
    # ------------------------------------------------------------------

    def _handle_notification(self, body: dict) -> None:
        try:
            sub_type = (body.get("subscription") or {}).get("type")
            logger.debug(f"Received event: {sub_type}")

            if sub_type == STREAM_ONLINE:
                self.live_state.set(True)
                return
            if sub_type == STREAM_OFFLINE:
                self.live_state.set(False)
                return

            event = normalize(body)
            if event is not None:
                self.broadcaster.publish(event)
        except Exception as e:
            logger.exception(f"Notification handling failed: {e}")

    def _handle_revocation(self, body: dict) -> None:
        try:
            data = body.get("subscription") or {}
            subscription = self.registry.mark_revoked(data)
            logger.warning(
                f"Subscription revoked: {subscription.type} "
                f"(reason: {data.get('status')}, id: {data.get('id')})"
            )
        except Exception as e:
            logger.exception(f"Revocation handling failed: {e}")

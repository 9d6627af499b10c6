"""Map EventSub notification bodies to canonical AlertEvents.

Dispatch is on ``subscription.type``; event payload shapes vary by version
but the type decides the meaning. Missing numeric fields fall back to
defaults so a partial payload still produces an alert.
"""

import logging
from collections.abc import Callable

from streamalerts.models.alert import ANONYMOUS, AlertEvent, AlertKind
from streamalerts.models.subscription import SubscriptionType

logger = logging.getLogger(__name__)

TIER_LABELS = {
    "1000": "Tier 1",
    "2000": "Tier 2",
    "3000": "Tier 3",
}
DEFAULT_TIER_LABEL = "Tier 1"


def _display_name(event: dict, prefix: str = "") -> str:
    """Human display name first, machine login second."""
    return event.get(f"{prefix}user_name") or event.get(f"{prefix}user_login") or ""


def _int_field(event: dict, key: str, default: int) -> int:
    value = event.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug(f"Non-numeric {key}={value!r}, using {default}")
        return default


def _tier_label(event: dict) -> str:
    return TIER_LABELS.get(str(event.get("tier") or ""), DEFAULT_TIER_LABEL)


def _follow(event: dict) -> AlertEvent:
    return AlertEvent(
        kind=AlertKind.FOLLOW,
        actor=_display_name(event),
        attributes={"followedAt": event.get("followed_at")},
    )


def _subscribe(event: dict) -> AlertEvent:
    return AlertEvent(
        kind=AlertKind.SUBSCRIPTION,
        actor=_display_name(event),
        attributes={"tierLabel": _tier_label(event), "monthCount": 1, "isGift": False},
    )


def _subscription_gift(event: dict) -> AlertEvent:
    actor = ANONYMOUS if event.get("is_anonymous") else _display_name(event)
    return AlertEvent(
        kind=AlertKind.SUBSCRIPTION,
        actor=actor,
        attributes={"tierLabel": _tier_label(event), "monthCount": 1, "isGift": True},
    )


def _subscription_message(event: dict) -> AlertEvent:
    months = _int_field(event, "cumulative_months", 1)
    return AlertEvent(
        kind=AlertKind.SUBSCRIPTION,
        actor=_display_name(event),
        attributes={
            "tierLabel": _tier_label(event),
            "monthCount": months if months > 0 else 1,
            "isGift": False,
        },
    )


def _raid(event: dict) -> AlertEvent:
    return AlertEvent(
        kind=AlertKind.RAID,
        actor=_display_name(event, prefix="from_broadcaster_"),
        attributes={"viewerCount": _int_field(event, "viewers", 0)},
    )


def _cheer(event: dict) -> AlertEvent:
    actor = ANONYMOUS if event.get("is_anonymous") else _display_name(event)
    return AlertEvent(
        kind=AlertKind.CHEER,
        actor=actor,
        attributes={"bitCount": _int_field(event, "bits", 0)},
    )


HANDLERS: dict[str, Callable[[dict], AlertEvent]] = {
    SubscriptionType.FOLLOW: _follow,
    SubscriptionType.SUBSCRIBE: _subscribe,
    SubscriptionType.SUBSCRIPTION_GIFT: _subscription_gift,
    SubscriptionType.SUBSCRIPTION_MESSAGE: _subscription_message,
    SubscriptionType.RAID: _raid,
    SubscriptionType.CHEER: _cheer,
}


def normalize(body: dict) -> AlertEvent | None:
    """Return the AlertEvent for a notification body, or None for unhandled types."""
    subscription = body.get("subscription") or {}
    sub_type = subscription.get("type")
    handler = HANDLERS.get(sub_type) if sub_type else None
    if handler is None:
        logger.debug(f"Event type '{sub_type}' not handled")
        return None

    event = body.get("event")
    if not isinstance(event, dict):
        event = {}
    return handler(event)

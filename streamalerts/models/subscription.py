"""EventSub subscription models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class SubscriptionType(StrEnum):
    """EventSub subscription types handled by the alert pipeline."""

    FOLLOW = "channel.follow"
    SUBSCRIBE = "channel.subscribe"
    SUBSCRIPTION_GIFT = "channel.subscription.gift"
    SUBSCRIPTION_MESSAGE = "channel.subscription.message"
    RAID = "channel.raid"
    CHEER = "channel.cheer"

    @classmethod
    def parse(cls, value: str) -> SubscriptionType:
        """Accept wire names (channel.raid) as well as short names (raid, subscription-gift)."""
        try:
            return cls(value)
        except ValueError:
            pass
        short = value.strip().lower().replace("_", "-")
        for member in cls:
            if member.name.lower().replace("_", "-") == short:
                return member
        raise ValueError(f"Unknown subscription type: {value}")


class SubscriptionStatus(StrEnum):
    PENDING = "pending"
    ENABLED = "enabled"
    FAILED = "failed"
    REVOKED = "revoked"

    @classmethod
    def from_remote(cls, value: str | None) -> SubscriptionStatus:
        """Map Helix status strings (webhook_callback_verification_pending, ...) to ours."""
        if not value:
            return cls.PENDING
        if value == "enabled":
            return cls.ENABLED
        if value.endswith("_pending"):
            return cls.PENDING
        if value in ("webhook_callback_verification_failed", "notification_failures_exceeded"):
            return cls.FAILED
        return cls.REVOKED


@dataclass
class Subscription:
    """Local record of one remote EventSub subscription."""

    type: str
    version: str
    condition: dict[str, str]
    status: SubscriptionStatus = SubscriptionStatus.PENDING
    id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_remote(cls, data: dict) -> Subscription:
        created_at = None
        raw_created = data.get("created_at")
        if raw_created:
            try:
                created_at = datetime.fromisoformat(raw_created.replace("Z", "+00:00"))
            except ValueError:
                created_at = None
        return cls(
            type=data.get("type", ""),
            version=str(data.get("version", "")),
            condition={k: str(v) for k, v in (data.get("condition") or {}).items() if v},
            status=SubscriptionStatus.from_remote(data.get("status")),
            id=data.get("id"),
            created_at=created_at,
        )

    @property
    def key(self) -> tuple[str, tuple[tuple[str, str], ...]]:
        """Identity used for the one-enabled-per-(type, condition) rule."""
        return self.type, tuple(sorted(self.condition.items()))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "version": self.version,
            "condition": dict(self.condition),
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

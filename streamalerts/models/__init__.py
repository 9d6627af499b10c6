"""Data models for credentials, subscriptions, and alerts."""

from .alert import ANONYMOUS, AlertEvent, AlertKind
from .credential import Credential, CredentialTier
from .subscription import Subscription, SubscriptionStatus, SubscriptionType

__all__ = [
    "ANONYMOUS",
    "AlertEvent",
    "AlertKind",
    "Credential",
    "CredentialTier",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionType",
]

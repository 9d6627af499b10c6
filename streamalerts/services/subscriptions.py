"""Idempotent EventSub subscription registration.

Remote creation is not idempotent, so every ``ensure_subscription`` lists the
existing subscriptions of that type first and only creates when no enabled or
pending equivalent exists.
Version negotiation is a declarative candidate table walked by one loop.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from streamalerts.core.errors import ConfigError, UpstreamAPIError
from streamalerts.models.credential import CredentialTier
from streamalerts.models.subscription import (
    Subscription,
    SubscriptionStatus,
    SubscriptionType,
)
from streamalerts.services.credentials import CredentialManager
from streamalerts.services.twitch_api import TwitchAPIClient

logger = logging.getLogger(__name__)

ConditionBuilder = Callable[[str], dict[str, str]]


@dataclass(frozen=True)
class Candidate:
    """One (version, condition-shape) pair to try when creating a subscription."""

    version: str
    condition: ConditionBuilder
    # Condition key that identifies the logical target when matching existing subscriptions
    subject_key: str


def _broadcaster(subject_id: str) -> dict[str, str]:
    return {"broadcaster_user_id": subject_id}


def _broadcaster_and_moderator(subject_id: str) -> dict[str, str]:
    # The bot account moderates its own channel, so both ids are the same
    return {"broadcaster_user_id": subject_id, "moderator_user_id": subject_id}


def _raid_target(subject_id: str) -> dict[str, str]:
    # Raids into the channel, not raids the channel sends out
    return {"to_broadcaster_user_id": subject_id}


_BROADCASTER_V1 = Candidate("1", _broadcaster, "broadcaster_user_id")

# Only channel.follow has more than one candidate; other failures are terminal
CANDIDATES: dict[SubscriptionType, list[Candidate]] = {
    SubscriptionType.FOLLOW: [
        _BROADCASTER_V1,
        Candidate("2", _broadcaster_and_moderator, "broadcaster_user_id"),
    ],
    SubscriptionType.SUBSCRIBE: [_BROADCASTER_V1],
    SubscriptionType.SUBSCRIPTION_GIFT: [_BROADCASTER_V1],
    SubscriptionType.SUBSCRIPTION_MESSAGE: [_BROADCASTER_V1],
    SubscriptionType.RAID: [Candidate("1", _raid_target, "to_broadcaster_user_id")],
    SubscriptionType.CHEER: [_BROADCASTER_V1],
}


class RegistrationStatus(StrEnum):
    ALREADY_PRESENT = "already-present"
    CREATED = "created"
    FAILED = "failed"


@dataclass
class RegistrationResult:
    type: str
    status: RegistrationStatus
    subscription: Subscription | None = None
    error: str | None = None
    attempts: list[dict] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status != RegistrationStatus.FAILED

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "status": self.status.value,
            "subscription": self.subscription.to_dict() if self.subscription else None,
            "error": self.error,
            "attempts": self.attempts,
        }


class SubscriptionRegistry:
    """Local view of subscriptions, keyed by (type, condition)."""

    def __init__(self) -> None:
        self._items: dict[tuple, Subscription] = {}

    def record(self, subscription: Subscription) -> None:
        self._items[subscription.key] = subscription

    def get(self, sub_type: str, condition: dict[str, str]) -> Subscription | None:
        lookup = Subscription(type=sub_type, version="", condition=condition)
        return self._items.get(lookup.key)

    def mark_revoked(self, data: dict) -> Subscription:
        """Mark the subscription described by a revocation payload as revoked. Idempotent."""
        incoming = Subscription.from_remote(data)
        existing = self._items.get(incoming.key)
        if existing is None:
            existing = incoming
            self._items[existing.key] = existing
        existing.status = SubscriptionStatus.REVOKED
        return existing

    def all(self) -> list[Subscription]:
        return list(self._items.values())


class SubscriptionRegistrar:
    """Creates and verifies remote EventSub subscriptions using the app credential."""

    def __init__(
        self,
        api: TwitchAPIClient,
        credentials: CredentialManager,
        *,
        callback_url: str,
        webhook_secret: str,
        registry: SubscriptionRegistry | None = None,
    ):
        self.api = api
        self.credentials = credentials
        self.callback_url = callback_url
        self.webhook_secret = webhook_secret
        self.registry = registry or SubscriptionRegistry()

    def _app_token(self) -> str:
        if not self.api.client_id:
            raise ConfigError("Missing Twitch client ID")
        token = self.credentials.current_token(CredentialTier.APP)
        if not token:
            raise ConfigError("No app access token available")
        return token

    def _check_transport_config(self) -> None:
        if not self.webhook_secret:
            raise ConfigError("Webhook secret is not configured")
        if not self.callback_url or not self.callback_url.startswith("https://"):
            raise ConfigError("PUBLIC_URL must be an https URL for webhook delivery")

    @staticmethod
    def _matches(existing: dict, sub_type: SubscriptionType, subject_id: str) -> bool:
        if existing.get("type") != sub_type.value:
            return False
        # A freshly created subscription stays pending until the challenge is answered
        status = SubscriptionStatus.from_remote(existing.get("status"))
        if status not in (SubscriptionStatus.ENABLED, SubscriptionStatus.PENDING):
            return False
        condition = existing.get("condition") or {}
        return any(
            condition.get(candidate.subject_key) == subject_id
            for candidate in CANDIDATES[sub_type]
        )

    async def list_remote(self, status: str | None = None) -> list[Subscription]:
        """Remote subscriptions as local records. Raises ConfigError / UpstreamAPIError."""
        token = self._app_token()
        remote = await self.api.list_eventsub_subscriptions(token, status=status)
        return [Subscription.from_remote(item) for item in remote]

    async def ensure_subscription(
        self, sub_type: SubscriptionType | str, subject_id: str
    ) -> RegistrationResult:
        """Make sure an enabled subscription exists for (*sub_type*, *subject_id*)."""
        sub_type = SubscriptionType.parse(sub_type)
        if not subject_id:
            return RegistrationResult(
                sub_type.value, RegistrationStatus.FAILED, error="No subject id provided"
            )

        try:
            token = self._app_token()
            self._check_transport_config()
        except ConfigError as e:
            logger.error(f"Cannot register {sub_type}: {e}")
            return RegistrationResult(sub_type.value, RegistrationStatus.FAILED, error=str(e))

        # 1-2. Existence check is mandatory; never create blind
        try:
            existing = await self.api.list_eventsub_subscriptions(token, sub_type=sub_type.value)
        except UpstreamAPIError as e:
            logger.error(f"Could not list subscriptions before creating {sub_type}: {e}")
            return RegistrationResult(sub_type.value, RegistrationStatus.FAILED, error=str(e))

        for item in existing:
            if self._matches(item, sub_type, subject_id):
                subscription = Subscription.from_remote(item)
                self.registry.record(subscription)
                logger.info(f"{sub_type} already registered for {subject_id}")
                return RegistrationResult(
                    sub_type.value, RegistrationStatus.ALREADY_PRESENT, subscription
                )

        # 3-5. Walk the candidates in order
        attempts: list[dict] = []
        for candidate in CANDIDATES[sub_type]:
            condition = candidate.condition(subject_id)
            try:
                created = await self.api.create_eventsub_subscription(
                    token,
                    sub_type=sub_type.value,
                    version=candidate.version,
                    condition=condition,
                    callback=self.callback_url,
                    secret=self.webhook_secret,
                )
            except UpstreamAPIError as e:
                if e.status_code == 409:
                    # Twitch already holds this exact subscription
                    subscription = Subscription(
                        type=sub_type.value,
                        version=candidate.version,
                        condition=condition,
                        status=SubscriptionStatus.ENABLED,
                    )
                    self.registry.record(subscription)
                    return RegistrationResult(
                        sub_type.value, RegistrationStatus.ALREADY_PRESENT, subscription
                    )
                logger.warning(f"Creating {sub_type} v{candidate.version} failed: {e.detail or e}")
                attempts.append(
                    {"version": candidate.version, "status_code": e.status_code, "error": e.detail}
                )
                continue

            if created:
                subscription = Subscription.from_remote(created)
            else:
                subscription = Subscription(
                    type=sub_type.value, version=candidate.version, condition=condition
                )
            self.registry.record(subscription)
            logger.info(f"Registered {sub_type} v{candidate.version} for {subject_id}")
            return RegistrationResult(
                sub_type.value, RegistrationStatus.CREATED, subscription, attempts=attempts
            )

        versions = ", ".join(f"v{a['version']}" for a in attempts)
        failed = Subscription(
            type=sub_type.value,
            version=CANDIDATES[sub_type][-1].version,
            condition=CANDIDATES[sub_type][-1].condition(subject_id),
            status=SubscriptionStatus.FAILED,
        )
        return RegistrationResult(
            sub_type.value,
            RegistrationStatus.FAILED,
            failed,
            error=f"Creation failed ({versions})",
            attempts=attempts,
        )

    async def setup_all(self, subject_id: str) -> dict[str, RegistrationResult]:
        """Ensure every alert subscription type for *subject_id*."""
        results: dict[str, RegistrationResult] = {}
        for sub_type in SubscriptionType:
            results[sub_type.value] = await self.ensure_subscription(sub_type, subject_id)
        return results

    async def resolve_subject_id(self, login: str) -> str | None:
        """Channel login -> user id. Raises ConfigError / UpstreamAPIError."""
        user = await self.api.get_user(self._app_token(), login=login)
        return user["id"] if user else None

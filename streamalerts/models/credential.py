"""Credential tier and record models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum


class CredentialTier(StrEnum):
    """Authorization purpose a credential is scoped to."""

    APP = "app"
    USER = "user"
    CHAT = "chat"


@dataclass
class Credential:
    """OAuth credential record for one tier."""

    name: CredentialTier
    access: str
    refresh: str | None = None
    expires_at: datetime | None = None
    obtained_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    subject_id: str | None = None
    login: str | None = None

    @classmethod
    def from_token_response(
        cls,
        name: CredentialTier,
        data: dict,
        *,
        previous_refresh: str | None = None,
        now: datetime | None = None,
    ) -> Credential:
        """Build a credential from an identity-provider token response."""
        now = now or datetime.now(UTC)
        expires_in = data.get("expires_in")
        expires_at = now + timedelta(seconds=int(expires_in)) if expires_in else None
        return cls(
            name=name,
            access=data["access_token"],
            refresh=data.get("refresh_token") or previous_refresh,
            expires_at=expires_at,
            obtained_at=now,
        )

    def renewal_due_at(self, fraction: float) -> datetime | None:
        """Instant after which the credential should be renewed, if its expiry is known."""
        if self.expires_at is None:
            return None
        lifetime = self.expires_at - self.obtained_at
        return self.obtained_at + lifetime * fraction

    def is_renewal_due(self, fraction: float, now: datetime | None = None) -> bool:
        due_at = self.renewal_due_at(fraction)
        if due_at is None:
            return True
        return (now or datetime.now(UTC)) >= due_at

    def with_identity(self, subject_id: str | None, login: str | None) -> Credential:
        return replace(self, subject_id=subject_id, login=login)

"""Credential lifecycle for the app, user, and chat tiers.

- app:  client-credentials token, reacquired wholesale (it has no refresh value).
- user: broadcaster token from the OAuth flow, renewed with its refresh value.
- chat: bot chat-session token from the OAuth flow, renewed the same way.

The in-memory cache is authoritative for which tiers exist; the store is
written through on every change. Nothing here takes a lock: each refresh reads
the stored refresh value (the newer of store and cache) and replaces the cached
record, last write wins.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from streamalerts.core.errors import (
    ConfigError,
    CredentialAuthorizationError,
    StorageError,
    UpstreamAPIError,
)
from streamalerts.core.logging import mask_secret
from streamalerts.models.credential import Credential, CredentialTier
from streamalerts.services.credential_store import CredentialStore
from streamalerts.services.twitch_api import TwitchAPIClient

logger = logging.getLogger(__name__)


class RefreshStatus(StrEnum):
    REFRESHED = "refreshed"
    NOTHING_TO_REFRESH = "nothing_to_refresh"
    FAILED = "failed"


@dataclass
class RefreshResult:
    """Result of a refresh or reacquire operation."""

    tier: CredentialTier
    status: RefreshStatus
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == RefreshStatus.REFRESHED


class CredentialManager:
    """Owns acquisition, renewal, and lookup of the three credential tiers."""

    def __init__(
        self,
        api: TwitchAPIClient,
        store: CredentialStore,
        *,
        redirect_uri: str = "",
        renewal_fraction: float = 0.75,
    ):
        self.api = api
        self.store = store
        self.redirect_uri = redirect_uri
        self.renewal_fraction = renewal_fraction
        self._cache: dict[CredentialTier, Credential] = {}
        self._needs_reauth: set[CredentialTier] = set()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """Populate the cache from the store. Returns the number of credentials loaded."""
        try:
            credentials = await self.store.list()
        except StorageError as e:
            logger.error(f"Could not load stored credentials: {e}")
            return 0

        for credential in credentials:
            self._cache[credential.name] = credential
        logger.info(f"Loaded {len(credentials)} credential(s) from store")
        return len(credentials)

    def current_token(self, tier: CredentialTier | str) -> str | None:
        """Cached access value for *tier*; never touches the network."""
        credential = self._cache.get(CredentialTier(tier))
        return credential.access if credential else None

    def get(self, tier: CredentialTier | str) -> Credential | None:
        return self._cache.get(CredentialTier(tier))

    def needs_reauthorization(self, tier: CredentialTier | str) -> bool:
        return CredentialTier(tier) in self._needs_reauth

    async def _save(self, credential: Credential) -> None:
        self._cache[credential.name] = credential
        self._needs_reauth.discard(credential.name)
        try:
            await self.store.put(credential.name.value, credential)
        except StorageError as e:
            # Cache stays authoritative; durability is at risk until the next write
            logger.error(f"Credential '{credential.name}' not persisted: {e}")

    async def _latest(self, cached: Credential) -> Credential:
        """The newer of the cached and stored record; the refresh value may have rotated."""
        try:
            stored = await self.store.get(cached.name.value)
        except StorageError as e:
            logger.warning(f"Stored credential '{cached.name}' unreadable, using cache: {e}")
            return cached
        if stored is None or stored.obtained_at < cached.obtained_at:
            return cached
        self._cache[cached.name] = stored
        return stored

    def revoke(self, tier: CredentialTier | str) -> bool:
        """Drop the cached credential and flag the tier for re-authorization."""
        tier = CredentialTier(tier)
        removed = self._cache.pop(tier, None) is not None
        if tier != CredentialTier.APP:
            self._needs_reauth.add(tier)
        logger.warning(f"Credential '{tier}' revoked")
        return removed

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    async def acquire_app_token(self) -> RefreshResult:
        """Reacquire the app tier through the client-credentials grant."""
        tier = CredentialTier.APP
        if not self.api.client_id or not self.api.client_secret:
            return RefreshResult(tier, RefreshStatus.FAILED, "Missing Twitch client credentials")

        try:
            payload = await self.api.request_app_token()
        except UpstreamAPIError as e:
            logger.error(f"App token request failed: {e} ({e.status_code})")
            return RefreshResult(tier, RefreshStatus.FAILED, str(e))

        await self._save(Credential.from_token_response(tier, payload))
        logger.info(f"App token acquired: {mask_secret(payload['access_token'])}")
        return RefreshResult(tier, RefreshStatus.REFRESHED)

    async def exchange_authorization_code(self, tier: CredentialTier | str, code: str) -> dict:
        """One-time code exchange for the user or chat tier.

        Returns the authenticated identity (id, login, display_name).
        Raises ConfigError / CredentialAuthorizationError / UpstreamAPIError.
        """
        tier = CredentialTier(tier)
        if tier == CredentialTier.APP:
            raise ConfigError("The app tier uses client credentials, not an authorization code")
        if not self.api.client_id or not self.api.client_secret:
            raise ConfigError("Missing Twitch client credentials")
        if not self.redirect_uri:
            raise ConfigError("PUBLIC_URL is not configured; no OAuth redirect URI")

        payload = await self.api.exchange_code(code, self.redirect_uri)
        credential = Credential.from_token_response(tier, payload)

        user = await self.api.get_user(credential.access)
        if not user:
            raise UpstreamAPIError("Authorized token has no associated user")

        await self._save(credential.with_identity(user["id"], user["login"]))
        logger.info(
            f"Token '{tier}' stored for {user['login']} ({user['id']}): "
            f"{mask_secret(credential.access)}"
        )
        return user

    # ------------------------------------------------------------------
    # Renewal
    # ------------------------------------------------------------------

    async def refresh(self, tier: CredentialTier | str) -> RefreshResult:
        """Exchange the stored refresh value for a new access value.

        No refresh value is a no-op, not an error. A rejected refresh value
        raises CredentialAuthorizationError; any other failure keeps the
        previous access value and reports FAILED.
        """
        tier = CredentialTier(tier)
        current = self._cache.get(tier)
        if current is None:
            return RefreshResult(tier, RefreshStatus.NOTHING_TO_REFRESH)
        current = await self._latest(current)
        if not current.refresh:
            return RefreshResult(tier, RefreshStatus.NOTHING_TO_REFRESH)

        try:
            payload = await self.api.refresh_token(current.refresh)
        except CredentialAuthorizationError:
            self._needs_reauth.add(tier)
            logger.error(f"Refresh value for '{tier}' rejected; re-authorization required")
            raise
        except UpstreamAPIError as e:
            logger.warning(f"Refresh for '{tier}' failed, keeping current token: {e}")
            return RefreshResult(tier, RefreshStatus.FAILED, str(e))

        credential = Credential.from_token_response(
            tier, payload, previous_refresh=current.refresh
        ).with_identity(current.subject_id, current.login)
        await self._save(credential)
        logger.info(f"Token '{tier}' refreshed: {mask_secret(credential.access)}")
        return RefreshResult(tier, RefreshStatus.REFRESHED)

    async def renew(self, tier: CredentialTier | str) -> RefreshResult:
        """Renew *tier* the way that tier supports."""
        tier = CredentialTier(tier)
        if tier == CredentialTier.APP:
            return await self.acquire_app_token()
        return await self.refresh(tier)

    def due_tiers(self, now: datetime | None = None) -> list[CredentialTier]:
        """Tiers whose renewal is due at *now*."""
        now = now or datetime.now(UTC)
        due: list[CredentialTier] = []
        for tier in CredentialTier:
            if tier in self._needs_reauth:
                continue
            credential = self._cache.get(tier)
            if credential is None:
                # Only the app tier can be obtained without an operator
                if tier == CredentialTier.APP:
                    due.append(tier)
                continue
            if credential.is_renewal_due(self.renewal_fraction, now):
                due.append(tier)
        return due

    async def renew_due(self, now: datetime | None = None) -> list[RefreshResult]:
        """One renewal tick. Failures never escape; they wait for the next tick."""
        results: list[RefreshResult] = []
        for tier in self.due_tiers(now):
            try:
                result = await self.renew(tier)
            except CredentialAuthorizationError as e:
                result = RefreshResult(tier, RefreshStatus.FAILED, str(e))
            except Exception as e:
                logger.exception(f"Unexpected error renewing '{tier}': {e}")
                result = RefreshResult(tier, RefreshStatus.FAILED, str(e))
            results.append(result)
        return results

    async def run_renewal_loop(self, interval: float) -> None:
        """Renew due tiers every *interval* seconds until cancelled."""
        logger.info(f"Credential renewal loop started (interval={interval}s)")
        while True:
            for result in await self.renew_due():
                if result.status == RefreshStatus.FAILED:
                    logger.warning(f"Renewal of '{result.tier}' failed: {result.error}")
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def status(self) -> dict[str, dict]:
        """Per-tier diagnostics; values only as bounded prefixes."""
        report: dict[str, dict] = {}
        for tier in CredentialTier:
            credential = self._cache.get(tier)
            report[tier.value] = {
                "access": mask_secret(credential.access if credential else None),
                "refresh": mask_secret(credential.refresh if credential else None),
                "expires_at": (
                    credential.expires_at.isoformat()
                    if credential and credential.expires_at
                    else None
                ),
                "login": credential.login if credential else None,
                "needs_reauthorization": tier in self._needs_reauth,
            }
        return report

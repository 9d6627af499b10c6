"""Dependency injection utilities for FastAPI

Services are process-wide singletons created on first use. Tests replace them
through ``app.dependency_overrides`` or ``reset_services()``.
"""

import logging

from streamalerts.core.config import get_settings
from streamalerts.core.database import DatabaseManager
from streamalerts.core.state import LiveState
from streamalerts.services import (
    Broadcaster,
    CredentialManager,
    CredentialStore,
    MemoryCredentialStore,
    PostgresCredentialStore,
    SubscriptionRegistrar,
    SubscriptionRegistry,
    TwitchAPIClient,
    WebhookDispatcher,
)

logger = logging.getLogger(__name__)

_twitch_api: TwitchAPIClient | None = None
_db_manager: DatabaseManager | None = None
_credential_store: CredentialStore | None = None
_credential_manager: CredentialManager | None = None
_registry: SubscriptionRegistry | None = None
_registrar: SubscriptionRegistrar | None = None
_broadcaster: Broadcaster | None = None
_live_state: LiveState | None = None
_dispatcher: WebhookDispatcher | None = None


# ============================================
# Service Dependencies
# ============================================


def get_twitch_api() -> TwitchAPIClient:
    """Get shared TwitchAPIClient singleton (connection reuse)."""
    global _twitch_api
    if _twitch_api is None:
        settings = get_settings()
        _twitch_api = TwitchAPIClient(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
        )
    return _twitch_api


def get_credential_store() -> CredentialStore:
    global _credential_store
    if _credential_store is None:
        _credential_store = MemoryCredentialStore()
    return _credential_store


def get_credential_manager() -> CredentialManager:
    global _credential_manager
    if _credential_manager is None:
        settings = get_settings()
        _credential_manager = CredentialManager(
            get_twitch_api(),
            get_credential_store(),
            redirect_uri=settings.oauth_redirect_uri if settings.public_url else "",
            renewal_fraction=settings.renewal_fraction,
        )
    return _credential_manager


def get_subscription_registry() -> SubscriptionRegistry:
    global _registry
    if _registry is None:
        _registry = SubscriptionRegistry()
    return _registry


def get_registrar() -> SubscriptionRegistrar:
    global _registrar
    if _registrar is None:
        settings = get_settings()
        _registrar = SubscriptionRegistrar(
            get_twitch_api(),
            get_credential_manager(),
            callback_url=settings.callback_url if settings.public_url else "",
            webhook_secret=settings.webhook_secret,
            registry=get_subscription_registry(),
        )
    return _registrar


def get_broadcaster() -> Broadcaster:
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = Broadcaster()
    return _broadcaster


def get_live_state() -> LiveState:
    global _live_state
    if _live_state is None:
        _live_state = LiveState()
    return _live_state


def get_webhook_dispatcher() -> WebhookDispatcher:
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        _dispatcher = WebhookDispatcher(
            settings.webhook_secret,
            get_broadcaster(),
            get_subscription_registry(),
            live_state=get_live_state(),
            dedupe_ttl=settings.message_dedupe_ttl,
        )
    return _dispatcher


def get_database_manager() -> DatabaseManager | None:
    return _db_manager


# ============================================
# Lifecycle
# ============================================


async def init_credential_store() -> CredentialStore:
    """Connect the configured store. A database that cannot be reached degrades to memory."""
    global _credential_store, _db_manager
    settings = get_settings()

    if not settings.database_url:
        logger.info("DATABASE_URL not set, credentials kept in memory only")
        return get_credential_store()

    _db_manager = DatabaseManager(settings.database_url, ssl=settings.database_ssl)
    try:
        await _db_manager.connect()
    except Exception as e:
        logger.error(f"Credential database unavailable ({type(e).__name__}), using memory store")
        _db_manager = None
        return get_credential_store()

    _credential_store = PostgresCredentialStore(_db_manager.pool)
    return _credential_store


async def close_services() -> None:
    """Close network resources. Call on app shutdown."""
    global _twitch_api, _db_manager
    if _broadcaster is not None:
        await _broadcaster.drain()
    if _twitch_api is not None:
        await _twitch_api.close()
        _twitch_api = None
    if _db_manager is not None:
        await _db_manager.disconnect()
        _db_manager = None


def reset_services() -> None:
    """Forget every singleton (tests and settings reloads)."""
    global _twitch_api, _db_manager, _credential_store, _credential_manager
    global _registry, _registrar, _broadcaster, _live_state, _dispatcher
    _twitch_api = None
    _db_manager = None
    _credential_store = None
    _credential_manager = None
    _registry = None
    _registrar = None
    _broadcaster = None
    _live_state = None
    _dispatcher = None

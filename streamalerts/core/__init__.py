"""Core modules: settings, logging, errors, and shared state."""

from .config import CHAT_SCOPES, USER_SCOPES, Settings, get_settings
from .errors import (
    ConfigError,
    CredentialAuthorizationError,
    SignatureError,
    StorageError,
    StreamAlertsError,
    UpstreamAPIError,
)
from .logging import mask_secret, setup_logging
from .state import LiveState, StateHolder

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "USER_SCOPES",
    "CHAT_SCOPES",
    # Errors
    "StreamAlertsError",
    "SignatureError",
    "ConfigError",
    "UpstreamAPIError",
    "CredentialAuthorizationError",
    "StorageError",
    # Logging
    "setup_logging",
    "mask_secret",
    # State
    "LiveState",
    "StateHolder",
]

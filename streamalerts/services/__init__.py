"""Services layer

Each service is constructed with its collaborators and shared through the
dependency functions in ``streamalerts.core.dependencies``.
"""

from .broadcaster import Broadcaster
from .credential_store import CredentialStore, MemoryCredentialStore, PostgresCredentialStore
from .credentials import CredentialManager, RefreshResult, RefreshStatus
from .normalizer import normalize
from .signature import compute_signature, verify_signature
from .subscriptions import (
    RegistrationResult,
    RegistrationStatus,
    SubscriptionRegistrar,
    SubscriptionRegistry,
)
from .twitch_api import TwitchAPIClient
from .webhook import WebhookDispatcher, WebhookResponse

__all__ = [
    "Broadcaster",
    "CredentialManager",
    "CredentialStore",
    "MemoryCredentialStore",
    "PostgresCredentialStore",
    "RefreshResult",
    "RefreshStatus",
    "RegistrationResult",
    "RegistrationStatus",
    "SubscriptionRegistrar",
    "SubscriptionRegistry",
    "TwitchAPIClient",
    "WebhookDispatcher",
    "WebhookResponse",
    "compute_signature",
    "normalize",
    "verify_signature",
]

"""Error taxonomy shared by the webhook and credential paths."""


class StreamAlertsError(Exception):
    """Base class for all service errors."""


class SignatureError(StreamAlertsError):
    """Inbound delivery failed the authenticity check."""


class ConfigError(StreamAlertsError):
    """A required secret, credential, or endpoint is not configured."""


class UpstreamAPIError(StreamAlertsError):
    """A call to the identity provider or Helix API failed."""

    def __init__(self, message: str, status_code: int | None = None, detail: object = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    @property
    def is_transient(self) -> bool:
        """Network errors and 5xx/429 responses are worth another attempt."""
        return self.status_code is None or self.status_code >= 500 or self.status_code == 429


class CredentialAuthorizationError(UpstreamAPIError):
    """Refresh value or authorization code rejected; the operator must re-authorize."""


class StorageError(StreamAlertsError):
    """The credential store failed to read or persist."""

"""EventSub webhook signature verification.

Twitch signs ``message_id + timestamp + raw_body`` with HMAC-SHA256 using the
secret given at subscription time and sends ``sha256=<hex>``. The digest must
be taken over the exact bytes received; a re-serialized JSON body can differ
in key order, whitespace, or unicode escaping.
"""

import hashlib
import hmac

# Header names as delivered (Starlette header lookups are case-insensitive)
MESSAGE_ID_HEADER = "Twitch-Eventsub-Message-Id"
MESSAGE_TIMESTAMP_HEADER = "Twitch-Eventsub-Message-Timestamp"
MESSAGE_SIGNATURE_HEADER = "Twitch-Eventsub-Message-Signature"
MESSAGE_TYPE_HEADER = "Twitch-Eventsub-Message-Type"

SIGNATURE_PREFIX = "sha256="


def _as_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def compute_signature(
    secret: str, message_id: str, timestamp: str, body: bytes | str
) -> str:
    """Return the ``sha256=``-prefixed signature Twitch would send for these inputs."""
    digest = hmac.new(
        _as_bytes(secret),
        _as_bytes(message_id) + _as_bytes(timestamp) + _as_bytes(body),
        hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    secret: str | None,
    message_id: str | None,
    timestamp: str | None,
    body: bytes | None,
    signature: str | None,
) -> bool:
    """True only when every input is present and the signature matches. Fails closed."""
    if not secret or not message_id or not timestamp or not signature or body is None:
        return False

    expected = compute_signature(secret, message_id, timestamp, body)
    return hmac.compare_digest(_as_bytes(expected), _as_bytes(signature))

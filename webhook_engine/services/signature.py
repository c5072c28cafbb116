"""HMAC-SHA256 signing and verification for outbound webhook requests.

The signed message is ``f"{timestamp}.{payload}"`` so a captured request
cannot be replayed with a fresh timestamp. Receivers recompute the signature
over the raw request body and the ``X-Webhook-Timestamp`` header, compare in
constant time, and reject timestamps outside the tolerance window.
"""
import hashlib
import hmac
import secrets
import string
import time
from typing import Dict, Optional

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_ID_HEADER = "X-Webhook-Id"

DEFAULT_TOLERANCE_SECONDS = 300
SECRET_LENGTH = 64

_SECRET_ALPHABET = string.ascii_letters + string.digits


def generate_secret() -> str:
    """Return a 64-character signing secret from the OS CSPRNG."""
    return "".join(secrets.choice(_SECRET_ALPHABET) for _ in range(SECRET_LENGTH))


def sign(payload: str, secret: str, timestamp: int) -> str:
    """
    Sign a payload for a given timestamp.

    Args:
        payload: Raw JSON body exactly as it will be sent
        secret: Endpoint signing secret
        timestamp: Unix seconds placed in the X-Webhook-Timestamp header

    Returns:
        Lowercase hex HMAC-SHA256 digest (64 characters)
    """
    message = f"{timestamp}.{payload}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def is_timestamp_valid(
    timestamp: int,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[int] = None,
) -> bool:
    """Check that ``timestamp`` is within ``tolerance`` seconds of now, either side."""
    current = int(time.time()) if now is None else now
    return abs(current - timestamp) <= tolerance


def verify_signature_only(
    payload: str, signature: str, secret: str, timestamp: int
) -> bool:
    """Constant-time signature check without the replay window."""
    expected = sign(payload, secret, timestamp)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8", "replace"))


def verify(
    payload: str,
    signature: str,
    secret: str,
    timestamp: int,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[int] = None,
) -> bool:
    """
    Verify a signed payload, rejecting stale timestamps first.

    The timestamp window is checked before any HMAC work so replayed
    requests are dropped cheaply.

    Args:
        payload: Raw request body
        signature: Hex signature from X-Webhook-Signature
        secret: Shared endpoint secret
        timestamp: Unix seconds from X-Webhook-Timestamp
        tolerance: Maximum allowed clock distance in seconds
        now: Current unix time override (tests)

    Returns:
        True only when the timestamp is fresh and the signature matches
    """
    if not is_timestamp_valid(timestamp, tolerance, now):
        return False
    return verify_signature_only(payload, signature, secret, timestamp)


def build_headers(
    payload: str,
    secret: str,
    timestamp: int,
    delivery_id: str,
    event_type: str,
) -> Dict[str, str]:
    """Headers for one outbound attempt; the signature covers ``payload`` verbatim."""
    return {
        "Content-Type": "application/json",
        DELIVERY_ID_HEADER: delivery_id,
        EVENT_HEADER: event_type,
        TIMESTAMP_HEADER: str(timestamp),
        SIGNATURE_HEADER: sign(payload, secret, timestamp),
    }

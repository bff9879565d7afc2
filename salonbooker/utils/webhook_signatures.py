"""
Outbound webhook signing - lets receivers verify that a delivery is authentic.

Signature scheme (HMAC-SHA256):
    X-Webhook-Timestamp: <unix seconds>
    X-Webhook-Signature: sha256=<hex(HMAC(secret, "<timestamp>.<body>"))>

The timestamp is part of the signed message so a captured request cannot be
replayed later with a fresh timestamp.
"""
import hashlib
import hmac
import logging
import secrets
import time
from typing import Optional, Union

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="
SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_HEADER = "X-Webhook-Event"
ID_HEADER = "X-Webhook-Id"
DEFAULT_TOLERANCE_SECONDS = 300


def generate_secret() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def _to_bytes(body: Union[str, bytes]) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else body


def compute_signature(secret: str, body: Union[str, bytes], timestamp: Union[int, str]) -> str:
    """HMAC-SHA256 hex digest over "<timestamp>.<body>"."""
    message = f"{timestamp}.".encode("utf-8") + _to_bytes(body)
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def build_signature_headers(
    secret: str,
    body: Union[str, bytes],
    event_type: str,
    event_id: str,
    user_agent: str,
    timestamp: Optional[int] = None,
) -> dict[str, str]:
    """Headers for one outbound attempt. Timestamp defaults to now."""
    ts = int(time.time()) if timestamp is None else timestamp
    return {
        "Content-Type": "application/json",
        "User-Agent": user_agent,
        ID_HEADER: event_id,
        EVENT_HEADER: event_type,
        TIMESTAMP_HEADER: str(ts),
        SIGNATURE_HEADER: SIGNATURE_PREFIX + compute_signature(secret, body, ts),
    }


def verify_signature(
    secret: str,
    body: Union[str, bytes],
    timestamp: str,
    signature: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """
    Receiver-side check of a delivery signature.
    Returns False for a bad signature, a malformed timestamp or one outside
    the tolerance window.
    """
    if not secret or not signature or not timestamp:
        return False

    try:
        ts = int(timestamp)
    except (TypeError, ValueError):
        logger.warning("Malformed webhook timestamp: %s", timestamp)
        return False

    current = time.time() if now is None else now
    if abs(current - ts) > tolerance:
        return False

    sig = signature
    if sig.startswith(SIGNATURE_PREFIX):
        sig = sig[len(SIGNATURE_PREFIX):]

    expected = compute_signature(secret, body, ts)
    return hmac.compare_digest(expected, sig.lower())

"""HMAC signatures, secrets and correlation ids for webhook deliveries."""

from __future__ import annotations

import hashlib
import hmac
import secrets


def compute_signature(payload: str, secret: str) -> str:
    """Compute the HMAC-SHA256 signature of a webhook body.

    Args:
        payload: Exact JSON body that will be sent.
        secret: Subscription secret.

    Returns:
        Lowercase hex digest, sent as ``X-Signet-Signature``.
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=payload.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(payload: str, secret: str, signature: str) -> bool:
    """Check a received signature in constant time.

    Receivers call this with the raw request body and the
    ``X-Signet-Signature`` header value. Any header that is not the
    expected hex digest, non-ASCII input included, returns False.
    """
    expected = compute_signature(payload, secret).encode("ascii")
    received = signature.strip().lower().encode("utf-8", "surrogatepass")
    return hmac.compare_digest(expected, received)


def generate_secret() -> str:
    """Generate a subscription secret (64 hex characters)."""
    return secrets.token_hex(32)


def generate_delivery_id() -> str:
    """Generate a correlation id shared by every attempt of one event."""
    return f"wh_{secrets.token_hex(16)}"


__all__ = ["compute_signature", "generate_delivery_id", "generate_secret", "verify_signature"]

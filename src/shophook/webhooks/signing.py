"""HMAC-SHA256 request signing.

Receivers recompute the HMAC of the raw request body with their copy of
the endpoint secret and compare it to the ``X-Webhook-Signature`` header.
"""

from __future__ import annotations

import hashlib
import hmac
import time

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"


def compute_signature(payload: str, secret: str) -> str:
    """Compute HMAC-SHA256 signature for a webhook payload.

    Args:
        payload: JSON string payload to sign, exactly as sent.
        secret: Shared secret for HMAC.

    Returns:
        Lowercase hex digest (64 characters).
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=payload.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(payload: str, secret: str, signature: str) -> bool:
    """Verify HMAC-SHA256 signature for a webhook payload.

    Args:
        payload: JSON string payload that was signed.
        secret: Shared secret for HMAC.
        signature: Hex digest received in the signature header.

    Returns:
        True if signature is valid, False otherwise.
    """
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


def signature_headers(payload: str, secret: str | None, now_ms: int | None = None) -> dict[str, str]:
    """Signature and timestamp headers for a request body.

    Returns an empty dict when no secret is configured.
    """
    if not secret or not secret.strip():
        return {}
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return {
        SIGNATURE_HEADER: compute_signature(payload, secret),
        TIMESTAMP_HEADER: str(timestamp),
    }

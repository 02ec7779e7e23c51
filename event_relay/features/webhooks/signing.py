"""HMAC-SHA256 signing of webhook payloads.

The signed message is ``"<timestamp>.<json body>"``. The timestamp is fresh
per attempt and travels in its own header, so receivers must verify against
the timestamp carried by the same request.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Any

from event_relay.utils.canonical import canonical_json


def sign(secret: str, timestamp: str, payload: str) -> str:
    """Hex HMAC-SHA256 of ``timestamp + "." + payload`` keyed by ``secret``."""
    message = f"{timestamp}.{payload}"
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(secret: str, timestamp: str, payload: str | bytes, signature: str) -> bool:
    """Check a received signature in constant time.

    Example:
        ok = verify_signature(
            secret,
            request.headers["X-Webhook-Timestamp"],
            await request.body(),
            request.headers["X-Webhook-Signature"],
        )
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    expected = sign(secret, timestamp, payload)
    return hmac.compare_digest(expected, signature)


def generate_secret() -> str:
    """64 hex characters (32 random bytes)."""
    return secrets.token_hex(32)


def build_envelope(event: str, data: Any) -> str:
    """Canonical JSON body ``{"data": ..., "event": ...}`` sent to subscribers."""
    return canonical_json({"event": event, "data": data})


__all__ = ["build_envelope", "generate_secret", "sign", "verify_signature"]

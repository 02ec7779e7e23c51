"""Request fingerprinting for the idempotency guard.

The fingerprint covers method, path and body only. JSON bodies are
canonicalized first, so key order and whitespace do not matter; other
bodies are hashed as raw bytes. Headers never take part, so volatile values
like trace ids or timestamps cannot cause false conflicts.
"""

from __future__ import annotations

import hashlib
import json
from urllib.parse import parse_qsl, urlencode

from event_relay.utils.canonical import canonical_json


def canonical_body(body: bytes) -> bytes:
    """JSON bodies re-serialized canonically; anything else unchanged."""
    if not body:
        return b""
    try:
        return canonical_json(json.loads(body)).encode("utf-8")
    except ValueError:
        return body


def canonical_query(query_string: str | bytes) -> str:
    """Query parameters sorted by name then value."""
    if isinstance(query_string, bytes):
        query_string = query_string.decode("latin-1")
    pairs = parse_qsl(query_string, keep_blank_values=True)
    return urlencode(sorted(pairs))


def compute_request_hash(
    method: str,
    path: str,
    body: bytes,
    *,
    query_string: str | bytes | None = None,
) -> str:
    """SHA-256 hex digest of ``METHOD|path|canonical body``.

    Args:
        method: HTTP method (case-insensitive).
        path: Request path without query string.
        body: Raw request body.
        query_string: Included when given, after canonical sorting.
    """
    digest = hashlib.sha256()
    digest.update(f"{method.upper()}|{path}|".encode())
    digest.update(canonical_body(body))
    if query_string:
        digest.update(b"?")
        digest.update(canonical_query(query_string).encode("utf-8"))
    return digest.hexdigest()


__all__ = ["canonical_body", "canonical_query", "compute_request_hash"]

"""Idempotency feature: request fingerprints and record stores."""

from .hashing import compute_request_hash
from .store import (
    IdempotencyEntry,
    IdempotencyStore,
    InMemoryIdempotencyStore,
    SqlAlchemyIdempotencyStore,
    StoredResponse,
)

__all__ = [
    "IdempotencyEntry",
    "IdempotencyStore",
    "InMemoryIdempotencyStore",
    "SqlAlchemyIdempotencyStore",
    "StoredResponse",
    "compute_request_hash",
]

"""Database models, column types and repository base classes."""

from event_relay.core.database.base import (
    NAMING_CONVENTION,
    Base,
    TenantMixin,
    TimestampMixin,
    UUIDPKMixin,
    UUIDTimestampedBase,
)
from event_relay.core.database.exceptions import NotFoundError, RepositoryError
from event_relay.core.database.repository import BaseRepository, SearchResult
from event_relay.core.database.types import StringArray, UTCDateTime

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "BaseRepository",
    "NotFoundError",
    "RepositoryError",
    "SearchResult",
    "StringArray",
    "TenantMixin",
    "TimestampMixin",
    "UUIDPKMixin",
    "UUIDTimestampedBase",
    "UTCDateTime",
]

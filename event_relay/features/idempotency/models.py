"""SQLAlchemy model for idempotency records."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Index, Integer, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from event_relay.core.database import UTCDateTime, UUIDTimestampedBase


class IdempotencyRecord(UUIDTimestampedBase):
    """One Idempotency-Key within one tenant namespace.

    The unique constraint on (key, tenant_id) is the synchronization point
    for concurrent requests carrying the same key: exactly one insert wins.
    ``tenant_id`` is the empty string for requests without a tenant so the
    constraint also holds for them (NULLs never collide).
    """

    __tablename__ = "idempotency_records"
    __table_args__ = (
        UniqueConstraint("key", "tenant_id", name="uq_idempotency_records_key_tenant_id"),
        Index("ix_idempotency_records_expires_at", "expires_at"),
    )

    key: Mapped[str] = mapped_column(String(255), nullable=False, comment="Idempotency-Key value")
    tenant_id: Mapped[str] = mapped_column(
        String(255), nullable=False, default="", comment="Tenant namespace ('' when unscoped)"
    )
    request_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="SHA-256 fingerprint of method, path and body"
    )
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    path: Mapped[str] = mapped_column(String(2048), nullable=False)
    status_code: Mapped[int | None] = mapped_column(
        Integer(), nullable=True, comment="Cached response status; NULL while in flight"
    )
    response_body: Mapped[bytes | None] = mapped_column(
        LargeBinary(), nullable=True, comment="Cached response body bytes"
    )
    response_headers: Mapped[dict[str, Any] | None] = mapped_column(
        JSON(), nullable=True, comment="Cached replayable response headers"
    )
    expires_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, comment="When the key may be forgotten"
    )


__all__ = ["IdempotencyRecord"]

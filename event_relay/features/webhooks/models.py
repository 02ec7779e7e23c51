"""SQLAlchemy models for webhook subscriptions and the delivery log."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from event_relay.core.database import StringArray, TenantMixin, UTCDateTime, UUIDTimestampedBase


class WebhookSubscription(UUIDTimestampedBase, TenantMixin):
    """A tenant's registration of a URL for one or more named events.

    The secret is generated (or accepted) once at creation and is never
    returned by read endpoints afterwards.
    """

    __tablename__ = "webhook_subscriptions"

    name: Mapped[str] = mapped_column(
        String(200), nullable=False, comment="Human-readable subscription name"
    )
    url: Mapped[str] = mapped_column(
        String(2048), nullable=False, comment="Target URL for webhook delivery"
    )
    secret: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="HMAC secret for signing payloads"
    )
    events: Mapped[list[str]] = mapped_column(
        StringArray(),
        nullable=False,
        default=list,
        comment="Event names this subscription receives",
    )
    active: Mapped[bool] = mapped_column(
        Boolean(), default=True, nullable=False, index=True, comment="Whether deliveries are sent"
    )
    max_attempts: Mapped[int | None] = mapped_column(
        Integer(),
        nullable=True,
        comment="Per-subscription attempt limit; NULL uses the process default",
    )

    def subscribes_to(self, event: str) -> bool:
        return self.active and event in (self.events or [])


class WebhookDelivery(UUIDTimestampedBase, TenantMixin):
    """One (subscription, event) delivery and its latest attempt outcome.

    Created as ``pending`` with ``attempt=0`` and mutated in place by each
    attempt. ``subscription_id`` is deliberately not a foreign key so deleting
    a subscription keeps its delivery history.
    """

    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        Index("ix_webhook_deliveries_status_next_attempt_at", "status", "next_attempt_at"),
    )

    subscription_id: Mapped[UUID] = mapped_column(
        nullable=False, index=True, comment="Subscription this delivery targets"
    )
    event: Mapped[str] = mapped_column(
        String(200), nullable=False, index=True, comment="Event name being delivered"
    )
    payload: Mapped[Any] = mapped_column(
        JSONB().with_variant(JSON(), "sqlite"), nullable=True, comment="Event data"
    )
    attempt: Mapped[int] = mapped_column(
        Integer(), default=0, nullable=False, comment="Attempts made so far"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="pending, retrying, delivered or failed",
    )
    response_status: Mapped[int | None] = mapped_column(
        Integer(), nullable=True, comment="HTTP status of the latest attempt"
    )
    error: Mapped[str | None] = mapped_column(
        Text(), nullable=True, comment="Error of the latest failed attempt"
    )
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, comment="When the scheduled retry is due"
    )
    delivered_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, comment="When a 2xx response was received"
    )


__all__ = ["WebhookDelivery", "WebhookSubscription"]

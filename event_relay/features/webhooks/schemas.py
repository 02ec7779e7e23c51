"""Pydantic schemas for the webhooks feature."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from event_relay.core.validators import validate_event_names, validate_event_names_optional


class DeliveryStatus(str, Enum):
    """Delivery log status. ``delivered`` and ``failed`` are terminal."""

    PENDING = "pending"
    RETRYING = "retrying"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)


class SubscriptionCreate(BaseModel):
    """Payload used when creating a subscription."""

    name: str = Field(..., min_length=1, max_length=200, description="Human-readable name")
    url: str = Field(..., min_length=1, max_length=2048, description="Target URL for deliveries")
    events: list[str] = Field(..., min_length=1, description="Event names to subscribe to")
    active: bool = Field(default=True, description="Whether deliveries are sent")
    max_attempts: int | None = Field(
        default=None, ge=1, le=20, description="Attempt limit; omitted uses the server default"
    )
    secret: str | None = Field(
        default=None,
        min_length=16,
        max_length=255,
        description="HMAC secret; generated when omitted",
    )

    @field_validator("events")
    @classmethod
    def check_events(cls, v: list[str]) -> list[str]:
        return validate_event_names(v)


class SubscriptionRegister(BaseModel):
    """Single-event registration shorthand: ``{"url": ..., "event": ...}``."""

    url: str = Field(..., min_length=1, max_length=2048)
    event: str = Field(..., min_length=1, max_length=200)
    name: str | None = Field(default=None, max_length=200)

    def to_create(self) -> SubscriptionCreate:
        return SubscriptionCreate(
            name=self.name or f"{self.event} -> {self.url}"[:200],
            url=self.url,
            events=[self.event],
        )


class SubscriptionUpdate(BaseModel):
    """Partial update. The secret cannot be changed."""

    name: str | None = Field(None, min_length=1, max_length=200)
    url: str | None = Field(None, min_length=1, max_length=2048)
    events: list[str] | None = Field(None, min_length=1)
    active: bool | None = None
    max_attempts: int | None = Field(None, ge=1, le=20)

    @field_validator("events")
    @classmethod
    def check_events(cls, v: list[str] | None) -> list[str] | None:
        return validate_event_names_optional(v)


class SubscriptionRead(BaseModel):
    """Subscription as returned by read endpoints (no secret)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str | None
    name: str
    url: str
    events: list[str]
    active: bool
    max_attempts: int | None
    created_at: datetime
    updated_at: datetime


class SubscriptionCreated(SubscriptionRead):
    """Creation response; the only place the secret is ever returned."""

    secret: str = Field(..., description="HMAC secret for verifying deliveries")


class SubscriptionList(BaseModel):
    items: list[SubscriptionRead]
    total: int
    limit: int
    offset: int


class DeliveryRead(BaseModel):
    """A delivery log record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    subscription_id: UUID
    tenant_id: str | None
    event: str
    payload: Any
    attempt: int
    status: DeliveryStatus
    response_status: int | None
    error: str | None
    next_attempt_at: datetime | None
    delivered_at: datetime | None
    created_at: datetime
    updated_at: datetime


class DeliveryList(BaseModel):
    items: list[DeliveryRead]
    total: int
    limit: int
    offset: int


class EventPublish(BaseModel):
    """Event ingestion payload."""

    event: str = Field(..., min_length=1, max_length=200, description="Event name")
    payload: Any = Field(default=None, description="Event data delivered as ``data``")

    @field_validator("event")
    @classmethod
    def strip_event(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Event name cannot be blank")
        return v


class EventAccepted(BaseModel):
    """Response to an accepted event: the deliveries it fanned out to."""

    event: str
    delivery_ids: list[UUID]

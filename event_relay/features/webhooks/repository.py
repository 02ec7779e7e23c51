"""Repositories for subscriptions and the delivery log."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import TYPE_CHECKING

from sqlalchemy import String, Text, and_, or_, select, type_coerce, update
from sqlalchemy.dialects.postgresql import ARRAY

from event_relay.core.database import BaseRepository, NotFoundError, SearchResult
from event_relay.features.webhooks.models import WebhookDelivery, WebhookSubscription
from event_relay.features.webhooks.schemas import DeliveryStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession


def _tenant_clause(column, tenant_id: str | None):
    return column.is_(None) if tenant_id is None else column == tenant_id


class SubscriptionRepository(BaseRepository[WebhookSubscription]):
    """Repository for WebhookSubscription.

    Inherits get/get_or_raise/search/create/delete from BaseRepository.
    """

    def __init__(self) -> None:
        super().__init__(WebhookSubscription)

    async def get_for_tenant(
        self,
        session: AsyncSession,
        subscription_id: UUID,
        tenant_id: str | None,
    ) -> WebhookSubscription:
        """Fetch a subscription owned by ``tenant_id``.

        Raises:
            NotFoundError: If it does not exist or belongs to another tenant.
        """
        subscription = await self.get(session, subscription_id)
        if subscription is None or subscription.tenant_id != tenant_id:
            raise NotFoundError("WebhookSubscription", {"id": subscription_id})
        return subscription

    async def find_active_by_event(
        self,
        session: AsyncSession,
        event: str,
        *,
        tenant_id: str | None = None,
        all_tenants: bool = True,
    ) -> Sequence[WebhookSubscription]:
        """Active subscriptions whose event set contains ``event``.

        The event set is a StringArray. On PostgreSQL it is a native ARRAY
        and membership is the ``@>`` operator. Elsewhere it is JSON text, so
        a LIKE on the encoded name narrows the rows and exact membership is
        confirmed on the loaded objects. Never raises on an empty result.
        """
        native_array = session.get_bind().dialect.name == "postgresql"
        stmt = select(WebhookSubscription).where(WebhookSubscription.active.is_(True))
        if native_array:
            stmt = stmt.where(
                type_coerce(WebhookSubscription.events, ARRAY(String())).contains([event])
            )
        else:
            stmt = stmt.where(
                type_coerce(WebhookSubscription.events, Text()).contains(
                    json.dumps(event), autoescape=True
                )
            )
        if not all_tenants:
            stmt = stmt.where(_tenant_clause(WebhookSubscription.tenant_id, tenant_id))
        stmt = stmt.order_by(WebhookSubscription.created_at.asc())

        result = await session.execute(stmt)
        rows = result.scalars().all()
        items = list(rows) if native_array else [sub for sub in rows if sub.subscribes_to(event)]

        self._lazy.debug(
            lambda: f"db.find_active_by_event: event={event!r}, tenant={tenant_id!r} -> {len(items)} items"
        )
        return items

    async def search_subscriptions(
        self,
        session: AsyncSession,
        tenant_id: str | None,
        *,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[WebhookSubscription]:
        """List a tenant's subscriptions, newest first."""
        stmt = select(WebhookSubscription).where(
            _tenant_clause(WebhookSubscription.tenant_id, tenant_id)
        )
        if active is not None:
            stmt = stmt.where(WebhookSubscription.active.is_(active))
        stmt = stmt.order_by(WebhookSubscription.created_at.desc())
        return await self.search(session, stmt, limit=limit, offset=offset)


class DeliveryRepository(BaseRepository[WebhookDelivery]):
    """Repository for the WebhookDelivery log.

    Mutations go through mark_* so every status transition keeps the
    record's invariants: ``attempt`` never decreases and ``next_attempt_at``
    is only set while retrying.
    """

    def __init__(self) -> None:
        super().__init__(WebhookDelivery)

    async def get_for_tenant(
        self,
        session: AsyncSession,
        delivery_id: UUID,
        tenant_id: str | None,
    ) -> WebhookDelivery:
        delivery = await self.get(session, delivery_id)
        if delivery is None or delivery.tenant_id != tenant_id:
            raise NotFoundError("WebhookDelivery", {"id": delivery_id})
        return delivery

    async def find_by_subscription(
        self,
        session: AsyncSession,
        subscription_id: UUID,
        *,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[WebhookDelivery]:
        """Delivery log of one subscription, newest first."""
        stmt = select(WebhookDelivery).where(WebhookDelivery.subscription_id == subscription_id)
        if status is not None:
            stmt = stmt.where(WebhookDelivery.status == status.value)
        stmt = stmt.order_by(WebhookDelivery.created_at.desc())

        search_result = await self.search(session, stmt, limit=limit, offset=offset)
        self._lazy.debug(
            lambda: f"db.find_by_subscription: subscription_id={subscription_id} -> {len(search_result.items)}/{search_result.total}"
        )
        return search_result

    async def find_due(
        self,
        session: AsyncSession,
        *,
        as_of: datetime,
        grace: timedelta = timedelta(0),
        limit: int = 100,
    ) -> Sequence[WebhookDelivery]:
        """Deliveries a restart may have orphaned.

        Retrying records whose ``next_attempt_at`` has passed, and pending
        records created before ``as_of`` that were never attempted. Both
        must be overdue by more than ``grace`` so a chain whose attempt is
        still queued or in flight is not picked up.
        """
        cutoff = as_of - grace
        stmt = (
            select(WebhookDelivery)
            .where(
                or_(
                    and_(
                        WebhookDelivery.status == DeliveryStatus.RETRYING.value,
                        WebhookDelivery.next_attempt_at.is_not(None),
                        WebhookDelivery.next_attempt_at <= cutoff,
                    ),
                    and_(
                        WebhookDelivery.status == DeliveryStatus.PENDING.value,
                        WebhookDelivery.created_at <= cutoff,
                    ),
                )
            )
            .order_by(WebhookDelivery.created_at.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        items = result.scalars().all()

        if items:
            self._logger.info(
                "Found deliveries due for reconciliation",
                extra={"count": len(items), "as_of": as_of.isoformat(), "operation": "db.find_due"},
            )
        return items

    async def claim_attempt(
        self,
        session: AsyncSession,
        delivery_id: UUID,
        attempt: int,
    ) -> bool:
        """Atomically advance a delivery from ``attempt - 1`` to ``attempt``.

        Only one caller can win a given attempt number, so duplicate queued
        runs of the same attempt (for example after reconciliation) send at
        most one request. Terminal records are never claimed.

        Returns:
            True if this caller owns the attempt.
        """
        stmt = (
            update(WebhookDelivery)
            .where(
                WebhookDelivery.id == delivery_id,
                WebhookDelivery.attempt == attempt - 1,
                WebhookDelivery.status.in_(
                    [DeliveryStatus.PENDING.value, DeliveryStatus.RETRYING.value]
                ),
            )
            .values(attempt=attempt)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        claimed = result.rowcount == 1
        self._lazy.debug(
            lambda: f"db.claim_attempt({delivery_id}, attempt={attempt}) -> {claimed}"
        )
        return claimed

    async def mark_delivered(
        self,
        session: AsyncSession,
        delivery: WebhookDelivery,
        *,
        attempt: int,
        response_status: int,
        delivered_at: datetime,
    ) -> WebhookDelivery:
        delivery.attempt = max(delivery.attempt, attempt)
        delivery.status = DeliveryStatus.DELIVERED.value
        delivery.response_status = response_status
        delivery.error = None
        delivery.delivered_at = delivered_at
        delivery.next_attempt_at = None
        await session.flush()
        self._lazy.debug(lambda: f"db.mark_delivered({delivery.id}) attempt={delivery.attempt}")
        return delivery

    async def mark_retrying(
        self,
        session: AsyncSession,
        delivery: WebhookDelivery,
        *,
        attempt: int,
        response_status: int | None,
        error: str | None,
        next_attempt_at: datetime,
    ) -> WebhookDelivery:
        delivery.attempt = max(delivery.attempt, attempt)
        delivery.status = DeliveryStatus.RETRYING.value
        delivery.response_status = response_status
        delivery.error = error
        delivery.next_attempt_at = next_attempt_at
        await session.flush()
        self._lazy.debug(
            lambda: f"db.mark_retrying({delivery.id}) attempt={delivery.attempt} next={next_attempt_at.isoformat()}"
        )
        return delivery

    async def mark_failed(
        self,
        session: AsyncSession,
        delivery: WebhookDelivery,
        *,
        attempt: int,
        response_status: int | None,
        error: str | None,
    ) -> WebhookDelivery:
        delivery.attempt = max(delivery.attempt, attempt)
        delivery.status = DeliveryStatus.FAILED.value
        delivery.response_status = response_status
        delivery.error = error
        delivery.next_attempt_at = None
        await session.flush()
        self._lazy.debug(lambda: f"db.mark_failed({delivery.id}) attempt={delivery.attempt}")
        return delivery


# Factory functions for dependency injection
_subscription_repository: SubscriptionRepository | None = None
_delivery_repository: DeliveryRepository | None = None


def get_subscription_repository() -> SubscriptionRepository:
    """Get the shared SubscriptionRepository instance."""
    global _subscription_repository
    if _subscription_repository is None:
        _subscription_repository = SubscriptionRepository()
    return _subscription_repository


def get_delivery_repository() -> DeliveryRepository:
    """Get the shared DeliveryRepository instance."""
    global _delivery_repository
    if _delivery_repository is None:
        _delivery_repository = DeliveryRepository()
    return _delivery_repository


__all__ = [
    "DeliveryRepository",
    "SubscriptionRepository",
    "get_delivery_repository",
    "get_subscription_repository",
]

"""Event dispatcher for webhooks.

``dispatch_event`` fans an event out to every active subscription that lists
it: one pending delivery record per subscription, then one queued executor
run each. It returns as soon as the records are committed; delivery outcomes
are only visible through the delivery log.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from event_relay.features.webhooks.executor import DeliveryExecutor, DeliveryTarget
from event_relay.features.webhooks.models import WebhookDelivery
from event_relay.features.webhooks.repository import (
    DeliveryRepository,
    SubscriptionRepository,
    get_delivery_repository,
    get_subscription_repository,
)
from event_relay.features.webhooks.schemas import DeliveryStatus
from event_relay.infra.logging import get_lazy_logger
from event_relay.infra.metrics.prometheus import (
    webhook_deliveries_terminal_total,
    webhook_events_dispatched_total,
)
from event_relay.utils.canonical import utcnow

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


class EventDispatcher:
    """Resolves subscriptions for an event and starts their delivery chains."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        executor: DeliveryExecutor,
        *,
        subscription_repository: SubscriptionRepository | None = None,
        delivery_repository: DeliveryRepository | None = None,
        reconcile_grace_seconds: float = 300.0,
    ) -> None:
        self._session_factory = session_factory
        self.executor = executor
        self.reconcile_grace = timedelta(seconds=reconcile_grace_seconds)
        self._subscriptions = subscription_repository or get_subscription_repository()
        self._deliveries = delivery_repository or get_delivery_repository()

    async def dispatch_event(
        self,
        event: str,
        data: Any,
        *,
        tenant_id: str | None = None,
    ) -> list[UUID]:
        """Create one pending delivery per matching subscription and queue it.

        Args:
            event: Event name, matched exactly against subscription event sets.
            data: JSON-serializable payload sent as ``data``.
            tenant_id: Restrict fan-out to one tenant's subscriptions. When
                omitted every tenant's matching subscriptions receive it.

        Returns:
            Ids of the created delivery records (empty when nothing matched).
        """
        async with self._session_factory() as session:
            subscriptions = await self._subscriptions.find_active_by_event(
                session,
                event,
                tenant_id=tenant_id,
                all_tenants=tenant_id is None,
            )
            if not subscriptions:
                lazy_logger.debug(
                    lambda: f"dispatcher.dispatch_event: event={event!r} tenant={tenant_id!r} -> no subscriptions"
                )
                return []

            planned: list[tuple[WebhookDelivery, DeliveryTarget]] = []
            for subscription in subscriptions:
                delivery = WebhookDelivery(
                    subscription_id=subscription.id,
                    tenant_id=subscription.tenant_id,
                    event=event,
                    payload=data,
                    attempt=0,
                    status=DeliveryStatus.PENDING.value,
                )
                session.add(delivery)
                planned.append(
                    (
                        delivery,
                        DeliveryTarget.from_subscription(
                            subscription, self.executor.default_max_attempts
                        ),
                    )
                )
            await session.flush()
            await session.commit()

        for delivery, target in planned:
            self.executor.schedule(delivery.id, target, 1)

        webhook_events_dispatched_total.labels(event=event).inc()
        logger.info(
            "Event dispatched to webhooks",
            extra={
                "event": event,
                "tenant_id": tenant_id,
                "delivery_count": len(planned),
                "operation": "dispatcher.dispatch_event",
            },
        )
        return [delivery.id for delivery, _ in planned]

    async def resume_due_deliveries(
        self,
        *,
        as_of: datetime | None = None,
        grace: timedelta | None = None,
        limit: int = 100,
    ) -> int:
        """Re-queue deliveries whose scheduled attempt was lost.

        Picks up retrying records whose ``next_attempt_at`` has passed and
        pending records never attempted, once they are overdue by more than
        ``grace`` (``reconcile_grace`` by default). A record whose
        subscription was deleted or revoked, or whose attempts are already
        exhausted, is marked failed instead.

        Returns:
            Number of delivery attempts queued.
        """
        now = as_of or utcnow()
        scheduled: list[tuple[UUID, DeliveryTarget, int]] = []
        failed = 0

        async with self._session_factory() as session:
            deliveries = await self._deliveries.find_due(
                session,
                as_of=now,
                grace=self.reconcile_grace if grace is None else grace,
                limit=limit,
            )
            for delivery in deliveries:
                subscription = await self._subscriptions.get(session, delivery.subscription_id)
                if subscription is None or not subscription.active:
                    reason = "Subscription deleted" if subscription is None else "Subscription revoked"
                    await self._deliveries.mark_failed(
                        session,
                        delivery,
                        attempt=delivery.attempt,
                        response_status=delivery.response_status,
                        error=reason,
                    )
                    failed += 1
                    continue

                target = DeliveryTarget.from_subscription(
                    subscription, self.executor.default_max_attempts
                )
                if delivery.attempt >= target.max_attempts:
                    await self._deliveries.mark_failed(
                        session,
                        delivery,
                        attempt=delivery.attempt,
                        response_status=delivery.response_status,
                        error=delivery.error or "Attempts exhausted",
                    )
                    failed += 1
                    continue
                scheduled.append((delivery.id, target, delivery.attempt + 1))
            await session.commit()

        for delivery_id, target, attempt in scheduled:
            self.executor.schedule(delivery_id, target, attempt)

        if failed:
            webhook_deliveries_terminal_total.labels(status="failed").inc(failed)
        if scheduled or failed:
            logger.info(
                "Reconciled webhook deliveries",
                extra={
                    "rescheduled": len(scheduled),
                    "failed": failed,
                    "as_of": now.isoformat(),
                    "operation": "dispatcher.resume_due_deliveries",
                },
            )
        else:
            lazy_logger.debug(lambda: "dispatcher.resume_due_deliveries: nothing due")
        return len(scheduled)


_dispatcher: EventDispatcher | None = None


def set_event_dispatcher(dispatcher: EventDispatcher | None) -> None:
    """Install the process-wide dispatcher used by ``dispatch_event``."""
    global _dispatcher
    _dispatcher = dispatcher


def get_event_dispatcher() -> EventDispatcher:
    """Return the process-wide dispatcher.

    Raises:
        RuntimeError: If the application has not installed one yet.
    """
    if _dispatcher is None:
        msg = "Event dispatcher is not configured; create the app or call set_event_dispatcher()"
        raise RuntimeError(msg)
    return _dispatcher


async def dispatch_event(event: str, data: Any, *, tenant_id: str | None = None) -> list[UUID]:
    """Dispatch ``event`` through the process-wide dispatcher.

    Entry point for business code:

        await dispatch_event("wo.created", {"id": work_order.id}, tenant_id=tenant)
    """
    return await get_event_dispatcher().dispatch_event(event, data, tenant_id=tenant_id)


__all__ = [
    "EventDispatcher",
    "dispatch_event",
    "get_event_dispatcher",
    "set_event_dispatcher",
]

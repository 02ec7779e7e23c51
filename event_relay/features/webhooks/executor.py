"""Delivery executor: one HTTP attempt, then decide what happens next.

Each run reads the delivery record, sends one signed POST, records the
outcome and, when the attempt failed and attempts remain, queues the next
run on the delayed-task queue after ``base_delay * 2 ** (attempt - 1)``
seconds. Attempts of one delivery are therefore strictly sequential, while
deliveries to different subscriptions never wait on each other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from event_relay.features.webhooks.repository import (
    DeliveryRepository,
    get_delivery_repository,
)
from event_relay.features.webhooks.schemas import DeliveryStatus
from event_relay.features.webhooks.signing import build_envelope
from event_relay.infra.logging import get_lazy_logger
from event_relay.infra.metrics.prometheus import webhook_deliveries_terminal_total
from event_relay.utils.canonical import isoformat_ms, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from event_relay.features.webhooks.client import WebhookClient
    from event_relay.features.webhooks.models import WebhookSubscription
    from event_relay.infra.tasks import DelayedTaskQueue, ScheduledTask

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


@dataclass(slots=True, frozen=True)
class DeliveryTarget:
    """Where and how a delivery chain sends its attempts.

    Captured when the event is dispatched so later edits to the subscription
    do not change a chain that is already running.
    """

    subscription_id: UUID
    url: str
    secret: str
    max_attempts: int

    @classmethod
    def from_subscription(
        cls, subscription: WebhookSubscription, default_max_attempts: int
    ) -> DeliveryTarget:
        return cls(
            subscription_id=subscription.id,
            url=subscription.url,
            secret=subscription.secret,
            max_attempts=subscription.max_attempts or default_max_attempts,
        )


class DeliveryExecutor:
    """Runs delivery attempts and schedules retries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: WebhookClient,
        queue: DelayedTaskQueue,
        *,
        base_delay: float,
        default_max_attempts: int,
        clock: Callable[[], datetime] = utcnow,
        delivery_repository: DeliveryRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._client = client
        self._queue = queue
        self.base_delay = base_delay
        self.default_max_attempts = default_max_attempts
        self._clock = clock
        self._deliveries = delivery_repository or get_delivery_repository()

    def retry_delay(self, attempt: int) -> float:
        """Delay before the attempt that follows ``attempt``."""
        return self.base_delay * 2 ** (attempt - 1)

    def schedule(
        self,
        delivery_id: UUID,
        target: DeliveryTarget,
        attempt: int,
        delay: float = 0.0,
    ) -> ScheduledTask:
        """Queue ``run(delivery_id, target, attempt)`` after ``delay`` seconds."""
        return self._queue.run_after(
            delay,
            self.run,
            delivery_id,
            target,
            attempt,
            name=f"webhook-delivery:{delivery_id}:{attempt}",
        )

    async def run(
        self,
        delivery_id: UUID,
        target: DeliveryTarget,
        attempt: int,
    ) -> DeliveryStatus | None:
        """Perform attempt number ``attempt`` of one delivery.

        The attempt is claimed on the record before anything is sent; a run
        whose attempt number was already claimed, or whose record is
        terminal, sends nothing.

        Returns:
            The status the record was moved to, the current status if the
            attempt could not be claimed, or None if the record no longer
            exists.
        """
        async with self._session_factory() as session:
            claimed = await self._deliveries.claim_attempt(session, delivery_id, attempt)
            if claimed:
                await session.commit()
            delivery = await self._deliveries.get(session, delivery_id)
            if delivery is None:
                logger.warning(
                    "Delivery record disappeared before attempt",
                    extra={"delivery_id": str(delivery_id), "attempt": attempt},
                )
                return None
            if not claimed:
                current = DeliveryStatus(delivery.status)
                lazy_logger.debug(
                    lambda: f"executor.run: delivery {delivery_id} is {current.value} at attempt {delivery.attempt}, skipping attempt {attempt}"
                )
                return current
            event = delivery.event
            body = build_envelope(event, delivery.payload)

        # No session is held open across the HTTP call
        result = await self._client.deliver(
            target.url,
            target.secret,
            body,
            timestamp=isoformat_ms(self._clock()),
            event=event,
            delivery_id=str(delivery_id),
        )

        async with self._session_factory() as session:
            delivery = await self._deliveries.get_or_raise(session, delivery_id)
            now = self._clock()

            if result.success:
                await self._deliveries.mark_delivered(
                    session,
                    delivery,
                    attempt=attempt,
                    response_status=result.status_code or 200,
                    delivered_at=now,
                )
                await session.commit()
                webhook_deliveries_terminal_total.labels(status="delivered").inc()
                logger.info(
                    "Webhook delivered",
                    extra={
                        "delivery_id": str(delivery_id),
                        "subscription_id": str(target.subscription_id),
                        "event": event,
                        "attempt": attempt,
                        "status_code": result.status_code,
                        "operation": "executor.run",
                    },
                )
                return DeliveryStatus.DELIVERED

            if attempt < target.max_attempts:
                delay = self.retry_delay(attempt)
                await self._deliveries.mark_retrying(
                    session,
                    delivery,
                    attempt=attempt,
                    response_status=result.status_code,
                    error=result.error_message,
                    next_attempt_at=now + timedelta(seconds=delay),
                )
                await session.commit()
                self.schedule(delivery_id, target, attempt + 1, delay)
                logger.info(
                    "Webhook delivery failed, retry scheduled",
                    extra={
                        "delivery_id": str(delivery_id),
                        "event": event,
                        "attempt": attempt,
                        "max_attempts": target.max_attempts,
                        "retry_in_seconds": delay,
                        "error": result.error_message,
                        "operation": "executor.run",
                    },
                )
                return DeliveryStatus.RETRYING

            await self._deliveries.mark_failed(
                session,
                delivery,
                attempt=attempt,
                response_status=result.status_code,
                error=result.error_message,
            )
            await session.commit()
            webhook_deliveries_terminal_total.labels(status="failed").inc()
            logger.warning(
                "Webhook delivery failed permanently",
                extra={
                    "delivery_id": str(delivery_id),
                    "subscription_id": str(target.subscription_id),
                    "event": event,
                    "attempt": attempt,
                    "error": result.error_message,
                    "operation": "executor.run",
                },
            )
            return DeliveryStatus.FAILED


__all__ = ["DeliveryExecutor", "DeliveryTarget"]

"""Tests for the delivery executor and its retry schedule."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from event_relay.features.webhooks.executor import DeliveryExecutor, DeliveryTarget
from event_relay.features.webhooks.models import WebhookDelivery, WebhookSubscription
from event_relay.features.webhooks.schemas import DeliveryStatus
from event_relay.features.webhooks.signing import verify_signature
from event_relay.infra.metrics.prometheus import REGISTRY

SECRET = "0123456789abcdef0123456789abcdef"


def _terminal(status: str) -> float:
    return REGISTRY.get_sample_value("webhook_deliveries_terminal_total", {"status": status}) or 0.0


@pytest.fixture
async def subscription(db_session) -> WebhookSubscription:
    sub = WebhookSubscription(
        tenant_id="t1",
        name="orders",
        url="https://hooks.example.com/orders",
        secret=SECRET,
        events=["wo.created"],
        active=True,
    )
    db_session.add(sub)
    await db_session.commit()
    return sub


@pytest.fixture
async def delivery(db_session, subscription: WebhookSubscription) -> WebhookDelivery:
    record = WebhookDelivery(
        subscription_id=subscription.id,
        tenant_id=subscription.tenant_id,
        event="wo.created",
        payload={"id": 42},
        attempt=0,
        status=DeliveryStatus.PENDING.value,
    )
    db_session.add(record)
    await db_session.commit()
    return record


@pytest.fixture
def target(subscription: WebhookSubscription) -> DeliveryTarget:
    return DeliveryTarget.from_subscription(subscription, default_max_attempts=3)


async def _reload(session_factory, delivery_id) -> WebhookDelivery:
    async with session_factory() as session:
        return await session.get(WebhookDelivery, delivery_id)


class TestRetryDelay:
    def test_doubles_per_attempt(self, executor: DeliveryExecutor) -> None:
        assert [executor.retry_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]


class TestDeliveryTarget:
    def test_uses_subscription_override(self, subscription: WebhookSubscription) -> None:
        subscription.max_attempts = 5
        assert DeliveryTarget.from_subscription(subscription, 3).max_attempts == 5

    def test_falls_back_to_default(self, subscription: WebhookSubscription) -> None:
        assert DeliveryTarget.from_subscription(subscription, 3).max_attempts == 3


class TestDeliveryExecutor:
    async def test_first_attempt_success(
        self, executor, task_queue, receiver, session_factory, delivery, target
    ) -> None:
        before = _terminal("delivered")

        status = await executor.run(delivery.id, target, 1)

        assert status is DeliveryStatus.DELIVERED
        record = await _reload(session_factory, delivery.id)
        assert record.status == "delivered"
        assert record.attempt == 1
        assert record.response_status == 200
        assert record.delivered_at == task_queue.clock()
        assert record.next_attempt_at is None
        assert task_queue.pending() == []
        assert _terminal("delivered") == before + 1

    async def test_request_is_signed_envelope(
        self, executor, receiver, delivery, target
    ) -> None:
        await executor.run(delivery.id, target, 1)

        request = receiver.requests[0]
        assert json.loads(request.content) == {"event": "wo.created", "data": {"id": 42}}
        assert request.headers["X-Webhook-Timestamp"] == "2026-01-01T12:00:00.000Z"
        assert request.headers["X-Webhook-Delivery"] == str(delivery.id)
        assert verify_signature(
            SECRET,
            request.headers["X-Webhook-Timestamp"],
            request.content,
            request.headers["X-Webhook-Signature"],
        )

    async def test_retries_with_backoff_until_success(
        self, executor, task_queue, receiver, session_factory, delivery, target
    ) -> None:
        receiver.statuses = [500, 500, 200]
        start = task_queue.clock()

        assert await executor.run(delivery.id, target, 1) is DeliveryStatus.RETRYING
        record = await _reload(session_factory, delivery.id)
        assert record.status == "retrying"
        assert record.attempt == 1
        assert record.response_status == 500
        assert record.error == "HTTP 500"
        assert record.next_attempt_at == start + timedelta(seconds=1)

        # The retry is not due before the base delay has elapsed
        assert await task_queue.advance(0.9) == 0
        assert await task_queue.advance(0.1) == 1
        record = await _reload(session_factory, delivery.id)
        assert record.attempt == 2
        assert record.next_attempt_at == task_queue.clock() + timedelta(seconds=2)

        assert await task_queue.advance(2) == 1
        record = await _reload(session_factory, delivery.id)
        assert record.status == "delivered"
        assert record.attempt == 3
        assert record.error is None
        assert len(receiver.requests) == 3
        assert [t.delay for t in task_queue.history] == [1.0, 2.0]

    async def test_each_attempt_gets_fresh_timestamp(
        self, executor, task_queue, receiver, delivery, target
    ) -> None:
        receiver.statuses = [500]

        await executor.run(delivery.id, target, 1)
        await task_queue.drain()

        timestamps = [r.headers["X-Webhook-Timestamp"] for r in receiver.requests]
        assert timestamps == ["2026-01-01T12:00:00.000Z", "2026-01-01T12:00:01.000Z"]

    async def test_gives_up_after_max_attempts(
        self, executor, task_queue, receiver, session_factory, delivery, target
    ) -> None:
        receiver.default_status = 503
        before = _terminal("failed")

        await executor.run(delivery.id, target, 1)
        await task_queue.drain()

        record = await _reload(session_factory, delivery.id)
        assert record.status == "failed"
        assert record.attempt == 3
        assert record.response_status == 503
        assert record.next_attempt_at is None
        assert len(receiver.requests) == target.max_attempts
        assert _terminal("failed") == before + 1

    async def test_single_attempt_subscription_fails_immediately(
        self, executor, task_queue, receiver, session_factory, delivery, subscription
    ) -> None:
        receiver.statuses = [500]
        target = DeliveryTarget.from_subscription(subscription, default_max_attempts=1)

        assert await executor.run(delivery.id, target, 1) is DeliveryStatus.FAILED
        assert task_queue.pending() == []

    async def test_terminal_delivery_is_not_retried(
        self, executor, receiver, session_factory, delivery, target
    ) -> None:
        await executor.run(delivery.id, target, 1)

        status = await executor.run(delivery.id, target, 2)

        assert status is DeliveryStatus.DELIVERED
        assert len(receiver.requests) == 1
        record = await _reload(session_factory, delivery.id)
        assert record.attempt == 1

    async def test_duplicate_run_of_same_attempt_sends_once(
        self, executor, task_queue, receiver, session_factory, delivery, target
    ) -> None:
        receiver.statuses = [500]

        assert await executor.run(delivery.id, target, 1) is DeliveryStatus.RETRYING
        assert await executor.run(delivery.id, target, 1) is DeliveryStatus.RETRYING

        assert len(receiver.requests) == 1
        assert len(task_queue.pending()) == 1
        record = await _reload(session_factory, delivery.id)
        assert record.attempt == 1

    async def test_out_of_order_attempt_is_not_claimed(
        self, executor, receiver, session_factory, delivery, target
    ) -> None:
        assert await executor.run(delivery.id, target, 2) is DeliveryStatus.PENDING

        assert receiver.requests == []
        record = await _reload(session_factory, delivery.id)
        assert record.attempt == 0

    async def test_missing_delivery_returns_none(self, executor, receiver, target) -> None:
        from uuid import uuid4

        assert await executor.run(uuid4(), target, 1) is None
        assert receiver.requests == []

    async def test_schedule_uses_queue(self, executor, task_queue, delivery, target) -> None:
        task = executor.schedule(delivery.id, target, 1)

        assert task.delay == 0.0
        assert task.name == f"webhook-delivery:{delivery.id}:1"
        assert task_queue.pending() == [task]

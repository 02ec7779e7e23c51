"""Tests for event fan-out and delivery reconciliation."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from event_relay.features.webhooks.dispatcher import (
    dispatch_event,
    get_event_dispatcher,
    set_event_dispatcher,
)
from event_relay.features.webhooks.models import WebhookDelivery, WebhookSubscription
from event_relay.features.webhooks.schemas import DeliveryStatus
from event_relay.utils.canonical import utcnow


async def _add_subscription(session, **overrides) -> WebhookSubscription:
    values = {
        "tenant_id": "t1",
        "name": "orders",
        "url": "https://hooks.example.com/orders",
        "secret": "0123456789abcdef0123456789abcdef",
        "events": ["wo.created"],
        "active": True,
    }
    values.update(overrides)
    sub = WebhookSubscription(**values)
    session.add(sub)
    await session.commit()
    return sub


async def _deliveries(session_factory) -> list[WebhookDelivery]:
    async with session_factory() as session:
        result = await session.execute(select(WebhookDelivery))
        return list(result.scalars().all())


class TestDispatchEvent:
    async def test_creates_pending_delivery_per_matching_subscription(
        self, dispatcher, db_session, session_factory, task_queue, receiver
    ) -> None:
        first = await _add_subscription(db_session, url="https://a.example.com/hook")
        second = await _add_subscription(
            db_session, url="https://b.example.com/hook", events=["wo.created", "wo.closed"]
        )
        await _add_subscription(db_session, events=["wo.closed"])
        await _add_subscription(db_session, active=False)

        ids = await dispatcher.dispatch_event("wo.created", {"id": 1}, tenant_id="t1")

        assert len(ids) == 2
        records = await _deliveries(session_factory)
        assert {r.subscription_id for r in records} == {first.id, second.id}
        assert all(r.status == "pending" and r.attempt == 0 for r in records)
        assert all(r.payload == {"id": 1} for r in records)
        # Nothing is sent until the queued attempts run
        assert receiver.requests == []
        assert len(task_queue.pending()) == 2

    async def test_queued_attempts_deliver(
        self, dispatcher, db_session, session_factory, task_queue, receiver
    ) -> None:
        await _add_subscription(db_session, url="https://a.example.com/hook")
        await _add_subscription(db_session, url="https://b.example.com/hook")

        await dispatcher.dispatch_event("wo.created", {"id": 1}, tenant_id="t1")
        await task_queue.drain()

        records = await _deliveries(session_factory)
        assert [r.status for r in records] == ["delivered", "delivered"]
        assert {str(r.url) for r in receiver.requests} == {
            "https://a.example.com/hook",
            "https://b.example.com/hook",
        }

    async def test_no_matching_subscription_is_noop(
        self, dispatcher, db_session, session_factory, task_queue
    ) -> None:
        await _add_subscription(db_session, events=["wo.closed"])

        assert await dispatcher.dispatch_event("wo.created", {"id": 1}, tenant_id="t1") == []
        assert await _deliveries(session_factory) == []
        assert task_queue.pending() == []

    async def test_tenant_scoping(self, dispatcher, db_session, session_factory) -> None:
        mine = await _add_subscription(db_session, tenant_id="t1")
        await _add_subscription(db_session, tenant_id="t2")

        ids = await dispatcher.dispatch_event("wo.created", {}, tenant_id="t1")

        records = await _deliveries(session_factory)
        assert len(ids) == 1
        assert records[0].subscription_id == mine.id
        assert records[0].tenant_id == "t1"

    async def test_without_tenant_fans_out_to_all_tenants(self, dispatcher, db_session) -> None:
        await _add_subscription(db_session, tenant_id="t1")
        await _add_subscription(db_session, tenant_id="t2")
        await _add_subscription(db_session, tenant_id=None)

        ids = await dispatcher.dispatch_event("wo.created", {})

        assert len(ids) == 3

    async def test_failing_subscription_does_not_block_others(
        self, dispatcher, db_session, session_factory, task_queue, receiver
    ) -> None:
        bad = await _add_subscription(db_session, url="https://down.example.com/hook")
        good = await _add_subscription(db_session, url="https://up.example.com/hook")
        receiver.host_statuses = {"down.example.com": 500}

        await dispatcher.dispatch_event("wo.created", {"id": 1}, tenant_id="t1")
        await task_queue.advance(0)

        by_sub = {r.subscription_id: r for r in await _deliveries(session_factory)}
        assert by_sub[good.id].status == "delivered"
        assert by_sub[bad.id].status == "retrying"

        await task_queue.drain()
        by_sub = {r.subscription_id: r for r in await _deliveries(session_factory)}
        assert by_sub[bad.id].status == "failed"
        assert by_sub[bad.id].attempt == 3
        assert by_sub[good.id].attempt == 1


class TestResumeDueDeliveries:
    async def _record(self, session, subscription, **overrides) -> WebhookDelivery:
        values = {
            "subscription_id": subscription.id,
            "tenant_id": subscription.tenant_id,
            "event": "wo.created",
            "payload": {"id": 9},
            "attempt": 0,
            "status": DeliveryStatus.PENDING.value,
        }
        values.update(overrides)
        record = WebhookDelivery(**values)
        session.add(record)
        await session.commit()
        return record

    async def test_requeues_orphaned_pending_and_due_retrying(
        self, dispatcher, db_session, session_factory, task_queue, receiver
    ) -> None:
        sub = await _add_subscription(db_session)
        pending = await self._record(db_session, sub)
        retrying = await self._record(
            db_session,
            sub,
            status="retrying",
            attempt=1,
            next_attempt_at=task_queue.clock() - timedelta(seconds=5),
        )

        count = await dispatcher.resume_due_deliveries(as_of=utcnow() + timedelta(hours=1))

        assert count == 2
        await task_queue.drain()
        records = {r.id: r for r in await _deliveries(session_factory)}
        assert records[pending.id].status == "delivered"
        assert records[pending.id].attempt == 1
        assert records[retrying.id].status == "delivered"
        assert records[retrying.id].attempt == 2

    async def test_requeued_live_chain_stays_within_max_attempts(
        self, dispatcher, db_session, session_factory, task_queue, receiver
    ) -> None:
        await _add_subscription(db_session)
        receiver.default_status = 500
        [delivery_id] = await dispatcher.dispatch_event("wo.created", {"id": 1}, tenant_id="t1")

        # The first attempt is still queued when reconciliation picks the record up
        assert await dispatcher.resume_due_deliveries(as_of=utcnow() + timedelta(hours=1)) == 1
        await task_queue.drain()

        assert len(receiver.requests) == 3
        [record] = await _deliveries(session_factory)
        assert record.id == delivery_id
        assert record.status == "failed"
        assert record.attempt == 3

    async def test_recent_pending_is_left_within_grace(
        self, dispatcher, db_session, task_queue
    ) -> None:
        await _add_subscription(db_session)
        await dispatcher.dispatch_event("wo.created", {"id": 1}, tenant_id="t1")

        assert await dispatcher.resume_due_deliveries(as_of=utcnow()) == 0
        assert len(task_queue.pending()) == 1

    async def test_explicit_grace_overrides_default(
        self, dispatcher, db_session, task_queue
    ) -> None:
        await _add_subscription(db_session)
        await dispatcher.dispatch_event("wo.created", {"id": 1}, tenant_id="t1")

        requeued = await dispatcher.resume_due_deliveries(
            as_of=utcnow() + timedelta(seconds=1), grace=timedelta(0)
        )

        assert requeued == 1
        assert len(task_queue.pending()) == 2

    async def test_future_retry_is_left_alone(
        self, dispatcher, db_session, task_queue
    ) -> None:
        sub = await _add_subscription(db_session)
        await self._record(
            db_session,
            sub,
            status="retrying",
            attempt=1,
            next_attempt_at=utcnow() + timedelta(hours=1),
        )

        assert await dispatcher.resume_due_deliveries(as_of=utcnow()) == 0
        assert task_queue.pending() == []

    async def test_revoked_or_deleted_subscription_fails_delivery(
        self, dispatcher, db_session, session_factory, task_queue
    ) -> None:
        revoked = await _add_subscription(db_session, active=False)
        gone = await _add_subscription(db_session)
        on_revoked = await self._record(db_session, revoked)
        on_gone = await self._record(db_session, gone)
        await db_session.delete(gone)
        await db_session.commit()

        assert await dispatcher.resume_due_deliveries(as_of=utcnow() + timedelta(hours=1)) == 0

        records = {r.id: r for r in await _deliveries(session_factory)}
        assert records[on_revoked.id].status == "failed"
        assert records[on_revoked.id].error == "Subscription revoked"
        assert records[on_gone.id].status == "failed"
        assert records[on_gone.id].error == "Subscription deleted"
        assert task_queue.pending() == []

    async def test_exhausted_attempts_are_failed(
        self, dispatcher, db_session, session_factory
    ) -> None:
        sub = await _add_subscription(db_session)
        record = await self._record(
            db_session,
            sub,
            status="retrying",
            attempt=3,
            error="HTTP 500",
            next_attempt_at=utcnow() - timedelta(hours=1),
        )

        assert await dispatcher.resume_due_deliveries(as_of=utcnow()) == 0

        records = {r.id: r for r in await _deliveries(session_factory)}
        assert records[record.id].status == "failed"
        assert records[record.id].error == "HTTP 500"


class TestProcessDispatcher:
    async def test_dispatch_event_requires_configuration(self) -> None:
        set_event_dispatcher(None)
        with pytest.raises(RuntimeError):
            await dispatch_event("wo.created", {})

    async def test_dispatch_event_uses_installed_dispatcher(
        self, dispatcher, db_session
    ) -> None:
        await _add_subscription(db_session)
        set_event_dispatcher(dispatcher)
        try:
            assert get_event_dispatcher() is dispatcher
            ids = await dispatch_event("wo.created", {"id": 3}, tenant_id="t1")
        finally:
            set_event_dispatcher(None)

        assert len(ids) == 1

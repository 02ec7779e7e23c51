"""Tests for the subscription and delivery repositories."""

from __future__ import annotations

from datetime import timedelta

import pytest

from event_relay.features.webhooks.models import WebhookDelivery, WebhookSubscription
from event_relay.features.webhooks.repository import (
    get_delivery_repository,
    get_subscription_repository,
)
from event_relay.features.webhooks.schemas import DeliveryStatus
from event_relay.utils.canonical import utcnow


async def _subscription(session, events: list[str], **overrides) -> WebhookSubscription:
    values = {
        "tenant_id": "t1",
        "name": "orders",
        "url": "https://hooks.example.com/orders",
        "secret": "0123456789abcdef0123456789abcdef",
        "events": events,
        "active": True,
    }
    values.update(overrides)
    sub = WebhookSubscription(**values)
    session.add(sub)
    await session.commit()
    return sub


class TestSubscribesTo:
    def test_requires_active_and_exact_event(self) -> None:
        sub = WebhookSubscription(events=["wo.created"], active=True)

        assert sub.subscribes_to("wo.created") is True
        assert sub.subscribes_to("wo.created.v2") is False

        sub.active = False
        assert sub.subscribes_to("wo.created") is False


class TestFindActiveByEvent:
    async def test_matches_whole_event_names_only(self, db_session) -> None:
        exact = await _subscription(db_session, ["wo.created"])
        await _subscription(db_session, ["wo.created.v2"])
        await _subscription(db_session, ["prefix-wo.created"])

        found = await get_subscription_repository().find_active_by_event(db_session, "wo.created")

        assert [s.id for s in found] == [exact.id]

    @pytest.mark.parametrize("event", ['say "hi"', "100%_done", "café.opened"])
    async def test_event_names_with_special_characters(self, db_session, event: str) -> None:
        sub = await _subscription(db_session, ["other", event])
        await _subscription(db_session, ["other"])

        found = await get_subscription_repository().find_active_by_event(db_session, event)

        assert [s.id for s in found] == [sub.id]

    async def test_skips_inactive_and_other_tenants(self, db_session) -> None:
        mine = await _subscription(db_session, ["a"])
        await _subscription(db_session, ["a"], active=False)
        await _subscription(db_session, ["a"], tenant_id="t2")

        found = await get_subscription_repository().find_active_by_event(
            db_session, "a", tenant_id="t1", all_tenants=False
        )

        assert [s.id for s in found] == [mine.id]


class TestClaimAttempt:
    @pytest.fixture
    async def delivery(self, db_session) -> WebhookDelivery:
        sub = await _subscription(db_session, ["a"])
        record = WebhookDelivery(
            subscription_id=sub.id,
            tenant_id="t1",
            event="a",
            payload={},
            attempt=0,
            status=DeliveryStatus.PENDING.value,
        )
        db_session.add(record)
        await db_session.commit()
        return record

    async def test_each_attempt_number_is_claimed_once(self, session_factory, delivery) -> None:
        repo = get_delivery_repository()

        async with session_factory() as session:
            assert await repo.claim_attempt(session, delivery.id, 1) is True
            await session.commit()
        async with session_factory() as session:
            assert await repo.claim_attempt(session, delivery.id, 1) is False
            assert await repo.claim_attempt(session, delivery.id, 3) is False
            assert await repo.claim_attempt(session, delivery.id, 2) is True
            await session.commit()

        async with session_factory() as session:
            record = await session.get(WebhookDelivery, delivery.id)
            assert record.attempt == 2

    async def test_terminal_record_is_never_claimed(self, session_factory, delivery) -> None:
        repo = get_delivery_repository()
        async with session_factory() as session:
            record = await session.get(WebhookDelivery, delivery.id)
            await repo.mark_failed(
                session, record, attempt=0, response_status=None, error="Subscription revoked"
            )
            await session.commit()

        async with session_factory() as session:
            assert await repo.claim_attempt(session, delivery.id, 1) is False


class TestFindDue:
    async def test_grace_hides_recent_records(self, db_session) -> None:
        sub = await _subscription(db_session, ["a"])
        db_session.add(
            WebhookDelivery(
                subscription_id=sub.id,
                tenant_id="t1",
                event="a",
                payload={},
                attempt=1,
                status=DeliveryStatus.RETRYING.value,
                next_attempt_at=utcnow() - timedelta(seconds=30),
            )
        )
        await db_session.commit()
        repo = get_delivery_repository()

        assert await repo.find_due(db_session, as_of=utcnow(), grace=timedelta(minutes=5)) == []
        assert len(await repo.find_due(db_session, as_of=utcnow())) == 1

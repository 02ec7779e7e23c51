"""Tests for create_app() wiring and the application lifespan."""

from __future__ import annotations

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from event_relay.app.lifespan import lifespan
from event_relay.app.main import create_app
from event_relay.app.middleware.idempotency import REPLAYED_HEADER
from event_relay.features.idempotency.models import IdempotencyRecord
from event_relay.features.idempotency.store import (
    InMemoryIdempotencyStore,
    SqlAlchemyIdempotencyStore,
)
from event_relay.features.webhooks.dispatcher import get_event_dispatcher
from event_relay.features.webhooks.models import WebhookDelivery, WebhookSubscription
from event_relay.infra.tasks import ManualTaskQueue


class TestCreateApp:
    def test_state_is_wired(self, app, session_factory, task_queue) -> None:
        assert app.state.session_factory is session_factory
        assert app.state.task_queue is task_queue
        assert app.state.owns_database is False
        assert app.state.owns_http_client is False
        assert isinstance(app.state.idempotency_store, SqlAlchemyIdempotencyStore)
        assert get_event_dispatcher() is app.state.dispatcher

    def test_memory_backend(self, settings, session_factory, task_queue, http_client) -> None:
        settings = settings.model_copy(
            update={"idempotency": settings.idempotency.model_copy(update={"backend": "memory"})}
        )

        app = create_app(
            settings, session_factory=session_factory, task_queue=task_queue, http_client=http_client
        )

        assert isinstance(app.state.idempotency_store, InMemoryIdempotencyStore)

    def test_executor_uses_settings(self, app, settings) -> None:
        executor = app.state.executor
        assert executor.base_delay == settings.webhooks.retry_base_delay_seconds
        assert executor.default_max_attempts == settings.webhooks.default_max_attempts


class TestIdempotentSubscriptionCreate:
    async def test_retried_create_makes_one_subscription(
        self, client: AsyncClient, api_prefix: str, db_session
    ) -> None:
        headers = {"Idempotency-Key": "create-1", "X-Tenant-ID": "t1"}
        payload = {"name": "orders", "url": "https://hooks.example.com/o", "events": ["wo.created"]}

        first = await client.post(f"{api_prefix}/webhooks", json=payload, headers=headers)
        second = await client.post(f"{api_prefix}/webhooks", json=payload, headers=headers)

        assert first.status_code == second.status_code == 201
        assert second.json()["id"] == first.json()["id"]
        assert second.headers[REPLAYED_HEADER] == "true"
        assert first.headers["x-request-id"] != second.headers["x-request-id"]

        count = await db_session.scalar(select(func.count()).select_from(WebhookSubscription))
        assert count == 1
        record = await db_session.scalar(select(IdempotencyRecord))
        assert record.tenant_id == "t1"
        assert record.status_code == 201

    async def test_retried_event_publish_fans_out_once(
        self, client: AsyncClient, api_prefix: str, db_session
    ) -> None:
        tenant = {"X-Tenant-ID": "t1"}
        await client.post(
            f"{api_prefix}/webhooks",
            json={"name": "o", "url": "https://hooks.example.com/o", "events": ["wo.created"]},
            headers=tenant,
        )
        headers = {**tenant, "Idempotency-Key": "evt-1"}

        for _ in range(3):
            response = await client.post(
                f"{api_prefix}/webhooks/events", json={"event": "wo.created"}, headers=headers
            )
            assert response.status_code == 202

        count = await db_session.scalar(select(func.count()).select_from(WebhookDelivery))
        assert count == 1

    async def test_same_key_other_payload_conflicts(
        self, client: AsyncClient, api_prefix: str
    ) -> None:
        headers = {"Idempotency-Key": "k", "X-Tenant-ID": "t1"}

        await client.post(f"{api_prefix}/webhooks/events", json={"event": "a"}, headers=headers)
        response = await client.post(
            f"{api_prefix}/webhooks/events", json={"event": "b"}, headers=headers
        )

        assert response.status_code == 409
        assert response.json()["type"] == "idempotency-key-conflict"

    async def test_key_expires_after_ttl(
        self, client: AsyncClient, api_prefix: str, task_queue: ManualTaskQueue, settings
    ) -> None:
        headers = {"Idempotency-Key": "k", "X-Tenant-ID": "t1"}
        await client.post(f"{api_prefix}/webhooks/events", json={"event": "a"}, headers=headers)

        await task_queue.advance(settings.idempotency.ttl_seconds + 1)
        response = await client.post(
            f"{api_prefix}/webhooks/events", json={"event": "b"}, headers=headers
        )

        assert response.status_code == 202
        assert REPLAYED_HEADER not in response.headers

    async def test_record_expiry_follows_injected_clock(
        self, app, client: AsyncClient, api_prefix: str, task_queue: ManualTaskQueue, settings
    ) -> None:
        await client.post(
            f"{api_prefix}/webhooks/events",
            json={"event": "a"},
            headers={"Idempotency-Key": "clocked", "X-Tenant-ID": "t1"},
        )

        entry = await app.state.idempotency_store.get("clocked", "t1")

        assert entry is not None
        assert entry.expires_at == task_queue.clock() + timedelta(
            seconds=settings.idempotency.ttl_seconds
        )


class TestLifespan:
    async def test_starts_and_stops_injected_services(
        self, settings, session_factory, http_client
    ) -> None:
        class RecordingQueue(ManualTaskQueue):
            def __init__(self) -> None:
                super().__init__()
                self.events: list[str] = []

            def start(self) -> None:
                self.events.append("start")

            def shutdown(self, *, wait: bool = False) -> None:
                self.events.append("shutdown")

        queue = RecordingQueue()
        app = create_app(
            settings, session_factory=session_factory, task_queue=queue, http_client=http_client
        )

        async with lifespan(app):
            assert queue.events == ["start"]

        assert queue.events == ["start", "shutdown"]
        # Injected client stays open for its owner
        assert http_client.is_closed is False
        with pytest.raises(RuntimeError):
            get_event_dispatcher()

    async def test_reconciles_on_startup(
        self, settings, session_factory, http_client, db_session
    ) -> None:
        settings = settings.model_copy(
            update={
                "webhooks": settings.webhooks.model_copy(update={"reconcile_on_startup": True})
            }
        )
        sub = WebhookSubscription(
            tenant_id="t1",
            name="o",
            url="https://hooks.example.com/o",
            secret="0123456789abcdef0123456789abcdef",
            events=["wo.created"],
        )
        db_session.add(sub)
        await db_session.flush()
        db_session.add(
            WebhookDelivery(
                subscription_id=sub.id,
                tenant_id="t1",
                event="wo.created",
                payload={},
                attempt=1,
                status="retrying",
                next_attempt_at=sub.created_at - timedelta(hours=1),
            )
        )
        await db_session.commit()

        queue = ManualTaskQueue()
        app = create_app(
            settings, session_factory=session_factory, task_queue=queue, http_client=http_client
        )

        async with lifespan(app):
            assert len(queue.pending()) == 1

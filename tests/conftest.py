"""Pytest configuration and shared fixtures.

Organization:
    - Settings Fixtures: isolated settings per test
    - Database Fixtures: temporary SQLite file with every table created
    - Delivery Fixtures: virtual-time task queue, scripted webhook receiver
    - Application Fixtures: FastAPI app wired to the fixtures above

Delivery tests never sleep: retries are queued on a ManualTaskQueue and run
by advancing its virtual clock.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from event_relay.core.settings import (
    AppSettings,
    DatabaseSettings,
    IdempotencySettings,
    LoggingSettings,
    Settings,
    WebhookSettings,
)
from event_relay.infra.database import build_engine, build_session_factory, create_all_tables
from event_relay.infra.tasks import ManualTaskQueue

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from event_relay.features.webhooks.dispatcher import EventDispatcher
    from event_relay.features.webhooks.executor import DeliveryExecutor


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def webhook_settings() -> WebhookSettings:
    """Webhook settings with a 1 second retry base and 3 attempts."""
    return WebhookSettings(
        retry_base_delay_seconds=1.0,
        default_max_attempts=3,
        reconcile_on_startup=False,
    )


@pytest.fixture
def idempotency_settings() -> IdempotencySettings:
    return IdempotencySettings(backend="database", ttl_seconds=3600)


@pytest.fixture
def settings(
    tmp_path, webhook_settings: WebhookSettings, idempotency_settings: IdempotencySettings
) -> Settings:
    """Unified settings pointing at a per-test SQLite file."""
    return Settings(
        app=AppSettings(),
        db=DatabaseSettings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}"),
        logging=LoggingSettings(json_logs=False),
        webhooks=webhook_settings,
        idempotency=idempotency_settings,
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Async engine on a temporary SQLite file with all tables created."""
    engine = build_engine(settings.db)
    await create_all_tables(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


# ============================================================================
# Delivery Fixtures
# ============================================================================


@dataclass
class Receiver:
    """Scripted webhook receiver for httpx.MockTransport.

    ``statuses`` is consumed one entry per request; once exhausted every
    request gets ``default_status``. An entry may also be an exception
    instance, which is raised instead of answering. Hosts listed in
    ``host_statuses`` always get their fixed status.
    """

    statuses: list[int | Exception] = field(default_factory=list)
    default_status: int = 200
    host_statuses: dict[str, int] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.host_statuses:
            outcome: int | Exception = self.host_statuses[request.url.host]
        else:
            outcome = self.statuses.pop(0) if self.statuses else self.default_status
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"ok": 200 <= outcome < 300})

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def receiver() -> Receiver:
    return Receiver()


@pytest.fixture
async def http_client(
    webhook_settings: WebhookSettings, receiver: Receiver
) -> AsyncGenerator[httpx.AsyncClient]:
    from event_relay.features.webhooks.client import build_http_client

    client = build_http_client(webhook_settings, transport=httpx.MockTransport(receiver))
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def task_queue() -> ManualTaskQueue:
    """Virtual-time queue starting at a fixed instant."""
    return ManualTaskQueue(start=datetime(2026, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def executor(
    session_factory: async_sessionmaker[AsyncSession],
    http_client: httpx.AsyncClient,
    task_queue: ManualTaskQueue,
    webhook_settings: WebhookSettings,
) -> DeliveryExecutor:
    from event_relay.features.webhooks.client import WebhookClient
    from event_relay.features.webhooks.executor import DeliveryExecutor

    return DeliveryExecutor(
        session_factory,
        WebhookClient(http_client, webhook_settings),
        task_queue,
        base_delay=webhook_settings.retry_base_delay_seconds,
        default_max_attempts=webhook_settings.default_max_attempts,
        clock=task_queue.clock,
    )


@pytest.fixture
def dispatcher(
    session_factory: async_sessionmaker[AsyncSession], executor: DeliveryExecutor
) -> EventDispatcher:
    from event_relay.features.webhooks.dispatcher import EventDispatcher

    return EventDispatcher(session_factory, executor)


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
def app(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    task_queue: ManualTaskQueue,
    http_client: httpx.AsyncClient,
):
    """FastAPI application wired to the test database, queue and receiver."""
    from event_relay.app.main import create_app
    from event_relay.features.webhooks.dispatcher import set_event_dispatcher

    application = create_app(
        settings,
        session_factory=session_factory,
        task_queue=task_queue,
        http_client=http_client,
        clock=task_queue.clock,
    )
    yield application
    set_event_dispatcher(None)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client talking to the app in-process."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def api_prefix(settings: Settings) -> str:
    return settings.app.api_prefix

"""FastAPI application factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI

from event_relay.app.exception_handlers import configure_exception_handlers
from event_relay.app.lifespan import lifespan
from event_relay.app.middleware import configure_middleware
from event_relay.app.router import setup_routers
from event_relay.core.settings import get_settings
from event_relay.features.idempotency.store import (
    InMemoryIdempotencyStore,
    SqlAlchemyIdempotencyStore,
)
from event_relay.features.webhooks.client import WebhookClient, build_http_client
from event_relay.features.webhooks.dispatcher import EventDispatcher, set_event_dispatcher
from event_relay.features.webhooks.executor import DeliveryExecutor
from event_relay.infra.database import configure_database
from event_relay.infra.tasks import APSchedulerTaskQueue
from event_relay.utils.canonical import utcnow

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from event_relay.core.settings import Settings
    from event_relay.features.idempotency.store import IdempotencyStore
    from event_relay.infra.tasks import DelayedTaskQueue


def _build_idempotency_store(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    clock: Callable[[], datetime],
) -> IdempotencyStore:
    if settings.idempotency.backend == "memory":
        return InMemoryIdempotencyStore(scope_by_tenant=True, enforce_ttl=True, clock=clock)
    return SqlAlchemyIdempotencyStore(session_factory, clock=clock)


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    task_queue: DelayedTaskQueue | None = None,
    http_client: httpx.AsyncClient | None = None,
    idempotency_store: IdempotencyStore | None = None,
    fallback_store: IdempotencyStore | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Every collaborator can be injected; anything not supplied is built from
    ``settings``. Resources the factory builds itself (engine, HTTP client)
    are closed by the lifespan, injected ones are left to the caller.

    Args:
        settings: Unified settings (defaults to get_settings()).
        session_factory: Async session factory for the delivery log and
            idempotency records.
        task_queue: Delayed task queue running delivery attempts.
        http_client: httpx client used for webhook POSTs.
        idempotency_store: Primary idempotency record store.
        fallback_store: Store used while the primary store is unreachable.
        clock: Time source for delivery timestamps and idempotency TTLs.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()
    app_settings = settings.app
    clock = clock or utcnow

    owns_database = session_factory is None
    if session_factory is None:
        session_factory = configure_database(settings.db)

    owns_http_client = http_client is None
    if http_client is None:
        http_client = build_http_client(settings.webhooks)

    if task_queue is None:
        task_queue = APSchedulerTaskQueue()

    executor = DeliveryExecutor(
        session_factory,
        WebhookClient(http_client, settings.webhooks),
        task_queue,
        base_delay=settings.webhooks.retry_base_delay_seconds,
        default_max_attempts=settings.webhooks.default_max_attempts,
        clock=clock,
    )
    dispatcher = EventDispatcher(
        session_factory,
        executor,
        reconcile_grace_seconds=settings.webhooks.reconcile_grace_seconds,
    )
    set_event_dispatcher(dispatcher)

    if idempotency_store is None:
        idempotency_store = _build_idempotency_store(settings, session_factory, clock)
    if fallback_store is None:
        fallback_store = InMemoryIdempotencyStore(clock=clock)

    app = FastAPI(
        title=app_settings.title,
        version=app_settings.version,
        debug=app_settings.debug,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.owns_database = owns_database
    app.state.http_client = http_client
    app.state.owns_http_client = owns_http_client
    app.state.task_queue = task_queue
    app.state.executor = executor
    app.state.dispatcher = dispatcher
    app.state.idempotency_store = idempotency_store

    # Configure exception handlers (must be before middleware)
    configure_exception_handlers(app)

    configure_middleware(
        app,
        settings,
        idempotency_store=idempotency_store,
        fallback_store=fallback_store,
        clock=clock,
    )

    setup_routers(app, app_settings)

    return app


__all__ = ["create_app"]

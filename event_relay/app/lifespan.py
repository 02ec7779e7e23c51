"""Application lifespan management.

Startup Order:
1. Core (logging)
2. Database - connectivity check, optional table creation
3. Delayed task scheduler - runs delivery attempts and retries
4. Delivery reconciliation - re-queue attempts lost in a restart (optional)

Shutdown Order: Reverse of startup. Pending retries that have not fired yet
stay in the delivery log as ``retrying`` and are picked up by the next
reconciliation.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from event_relay.features.webhooks.dispatcher import set_event_dispatcher
from event_relay.infra.database import close_database, init_database
from event_relay.infra.logging.config import setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

    from event_relay.core.settings import Settings

logger = logging.getLogger(__name__)


async def _startup_core(settings: Settings) -> None:
    setup_logging(log_settings=settings.logging, force=True)
    logger.info(
        "Application starting",
        extra={"service": settings.logging.service_name, "version": settings.app.version},
    )


async def _startup_database(app: FastAPI, settings: Settings) -> None:
    """Verify the database the app owns; injected session factories are left alone."""
    if not app.state.owns_database:
        return
    await init_database(settings.db)


async def _startup_tasks(app: FastAPI) -> None:
    queue = app.state.task_queue
    start = getattr(queue, "start", None)
    if callable(start):
        start()
        logger.info("Delayed task scheduler started")


async def _startup_reconcile(app: FastAPI, settings: Settings) -> None:
    webhooks = settings.webhooks
    if not webhooks.reconcile_on_startup:
        return
    rescheduled = await app.state.dispatcher.resume_due_deliveries(
        limit=webhooks.reconcile_batch_size
    )
    logger.info(
        "Startup delivery reconciliation finished",
        extra={"rescheduled": rescheduled, "batch_size": webhooks.reconcile_batch_size},
    )


async def _shutdown_tasks(app: FastAPI) -> None:
    queue = app.state.task_queue
    shutdown = getattr(queue, "shutdown", None)
    if callable(shutdown):
        shutdown(wait=False)
        logger.info("Delayed task scheduler stopped")


async def _shutdown_http_client(app: FastAPI) -> None:
    if app.state.owns_http_client:
        await app.state.http_client.aclose()
        logger.info("Webhook HTTP client closed")


async def _shutdown_database(app: FastAPI) -> None:
    if app.state.owns_database:
        await close_database()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start and stop the services create_app() attached to ``app.state``."""
    settings: Settings = app.state.settings

    # 1. Core
    await _startup_core(settings)

    # 2. Database
    await _startup_database(app, settings)

    # 3. Scheduler
    await _startup_tasks(app)

    # 4. Reconciliation (needs the scheduler running)
    await _startup_reconcile(app, settings)

    logger.info(
        "Application is LIVE and ready to serve requests on http://%s:%s",
        settings.app.host,
        settings.app.port,
        extra={
            "service": settings.logging.service_name,
            "version": settings.app.version,
            "idempotency_backend": settings.idempotency.backend,
            "idempotency_enabled": settings.idempotency.enabled,
        },
    )

    yield

    logger.info("Application shutting down", extra={"service": settings.logging.service_name})

    await _shutdown_tasks(app)
    await _shutdown_http_client(app)
    await _shutdown_database(app)
    set_event_dispatcher(None)

    logger.info("Application shutdown complete")


__all__ = ["lifespan"]

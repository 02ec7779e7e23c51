"""Middleware configuration for the FastAPI application.

Execution order, outermost to innermost:

1. RequestIDMiddleware: request id in state, logs and response headers
2. MetricsMiddleware: request count and latency per route template
3. TenantMiddleware: tenant id from the tenant header into request state
4. IdempotencyMiddleware: Idempotency-Key guard for mutating requests

The tenant must be resolved before the idempotency guard runs because keys
are namespaced by tenant.

Example Usage:
    from event_relay.app.middleware import configure_middleware

    configure_middleware(app, settings, idempotency_store=store)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from event_relay.app.middleware.base import HeaderContextMiddleware
from event_relay.app.middleware.idempotency import REPLAYED_HEADER, IdempotencyMiddleware
from event_relay.app.middleware.metrics import MetricsMiddleware
from event_relay.app.middleware.request_id import RequestIDMiddleware
from event_relay.app.middleware.tenant import TenantMiddleware
from event_relay.utils.canonical import utcnow

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from fastapi import FastAPI

    from event_relay.core.settings import Settings
    from event_relay.features.idempotency.store import IdempotencyStore

logger = logging.getLogger(__name__)

__all__ = [
    "REPLAYED_HEADER",
    "HeaderContextMiddleware",
    "IdempotencyMiddleware",
    "MetricsMiddleware",
    "RequestIDMiddleware",
    "TenantMiddleware",
    "configure_middleware",
]


def configure_middleware(
    app: FastAPI,
    settings: Settings,
    *,
    idempotency_store: IdempotencyStore | None = None,
    fallback_store: IdempotencyStore | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> None:
    """Configure the middleware stack.

    Middleware is applied in REVERSE order (last added = first to execute),
    so the innermost middleware is added first.

    Args:
        app: FastAPI application instance
        settings: Unified settings
        idempotency_store: Primary idempotency record store. The guard is
            skipped when None or when IDEMPOTENCY_ENABLED=false.
        fallback_store: Process-local store used while the primary store is
            unreachable (honoured only when IDEMPOTENCY_FALLBACK_ENABLED=true)
        clock: Time source for idempotency record expiry; must match the
            clock the stores check expiry against
    """
    idempotency = settings.idempotency

    # 4. Idempotency guard (innermost, sees the resolved tenant)
    if idempotency.enabled and idempotency_store is not None:
        app.add_middleware(
            IdempotencyMiddleware,
            store=idempotency_store,
            fallback_store=fallback_store,
            settings=idempotency,
            tenant_header=settings.app.tenant_header,
            clock=clock,
        )
        logger.info(
            "IdempotencyMiddleware enabled",
            extra={
                "header": idempotency.header_name,
                "ttl_seconds": idempotency.ttl_seconds,
                "methods": sorted(idempotency.methods),
                "backend": idempotency.backend,
                "fallback_enabled": idempotency.fallback_enabled,
            },
        )
    else:
        logger.info("IdempotencyMiddleware disabled")

    # 3. Tenant resolution
    app.add_middleware(TenantMiddleware, header_name=settings.app.tenant_header)

    # 2. Metrics
    app.add_middleware(MetricsMiddleware)

    # 1. Request ID (outermost so every log line carries it)
    app.add_middleware(RequestIDMiddleware)

    logger.info(
        "All middleware configured successfully",
        extra={"middleware_count": len(app.user_middleware)},
    )

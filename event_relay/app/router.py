"""Router registry and setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from event_relay.features.health.router import router as health_router
from event_relay.features.metrics.router import router as metrics_router
from event_relay.features.webhooks.router import router as webhooks_router

if TYPE_CHECKING:
    from fastapi import FastAPI

    from event_relay.core.settings.app import AppSettings

logger = logging.getLogger(__name__)


def setup_routers(app: FastAPI, app_settings: AppSettings) -> None:
    """Register all feature routers with the application.

    Args:
        app: FastAPI application instance.
        app_settings: Application settings providing the API prefix.
    """
    api_prefix = app_settings.api_prefix

    # Metrics endpoint has no prefix so scrapers find it at /metrics
    app.include_router(metrics_router, tags=["observability"])

    app.include_router(health_router, prefix=api_prefix, tags=["health"])
    app.include_router(webhooks_router, prefix=api_prefix, tags=["webhooks"])

    logger.info(
        "Router setup complete",
        extra={"api_prefix": api_prefix, "route_count": len(app.routes)},
    )


__all__ = ["setup_routers"]

"""Prometheus metrics endpoint.

Endpoints:
    GET /metrics - Prometheus scrape endpoint

Metrics Exposed:
    HTTP:
        - http_requests_total, http_request_duration_seconds
        - app_errors_total
    Webhooks:
        - webhook_events_dispatched_total
        - webhook_delivery_attempts_total, webhook_delivery_duration_seconds
        - webhook_deliveries_terminal_total, webhook_retries_scheduled
    Idempotency:
        - idempotency_requests_total, idempotency_store_fallbacks_total
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from event_relay.infra.metrics.prometheus import REGISTRY

router = APIRouter(tags=["observability"])


@router.get("/metrics")
async def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(
        content=data,
        media_type=CONTENT_TYPE_LATEST,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )

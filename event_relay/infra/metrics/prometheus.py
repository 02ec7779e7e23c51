"""Prometheus metrics for webhook delivery and the idempotency guard."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Custom registry so tests and multiple app instances don't collide with
# the process-global default registry
REGISTRY = CollectorRegistry()

DEFAULT_LATENCY_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)

# HTTP metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=REGISTRY,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

app_errors_total = Counter(
    "app_errors_total",
    "Application errors rendered as problem details",
    ["error_type", "status_code"],
    registry=REGISTRY,
)

# Webhook delivery metrics
webhook_events_dispatched_total = Counter(
    "webhook_events_dispatched_total",
    "Events dispatched to the webhook fan-out",
    ["event"],
    registry=REGISTRY,
)

webhook_delivery_attempts_total = Counter(
    "webhook_delivery_attempts_total",
    "Webhook HTTP delivery attempts by outcome",
    ["outcome"],
    registry=REGISTRY,
)

webhook_delivery_duration_seconds = Histogram(
    "webhook_delivery_duration_seconds",
    "Duration of one webhook HTTP attempt",
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

webhook_deliveries_terminal_total = Counter(
    "webhook_deliveries_terminal_total",
    "Deliveries reaching a terminal status",
    ["status"],
    registry=REGISTRY,
)

webhook_retries_scheduled = Gauge(
    "webhook_retries_scheduled",
    "Delivery attempts currently waiting in the delayed-task queue",
    registry=REGISTRY,
)

# Idempotency guard metrics
idempotency_requests_total = Counter(
    "idempotency_requests_total",
    "Guarded requests by outcome (new, replayed, conflict, in_flight, reused, bypass, too_large)",
    ["outcome"],
    registry=REGISTRY,
)

idempotency_store_fallbacks_total = Counter(
    "idempotency_store_fallbacks_total",
    "Times the guard degraded to the process-local store",
    registry=REGISTRY,
)


__all__ = [
    "REGISTRY",
    "app_errors_total",
    "http_request_duration_seconds",
    "http_requests_total",
    "idempotency_requests_total",
    "idempotency_store_fallbacks_total",
    "webhook_deliveries_terminal_total",
    "webhook_delivery_attempts_total",
    "webhook_delivery_duration_seconds",
    "webhook_events_dispatched_total",
    "webhook_retries_scheduled",
]

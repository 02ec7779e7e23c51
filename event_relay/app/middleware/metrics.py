"""Metrics middleware for HTTP request instrumentation."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from opentelemetry import trace
from starlette.routing import replace_params

from event_relay.infra.metrics.prometheus import (
    http_request_duration_seconds,
    http_requests_total,
)

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send


class MetricsMiddleware:
    """Record request counts and latency per route template.

    Uses the matched route path (``/api/v1/webhooks/{subscription_id}``)
    rather than the raw URL to keep label cardinality low, and attaches the
    current trace ID as an exemplar when a span is active.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        status_code = 500
        start_time = time.perf_counter()

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.perf_counter() - start_time
            endpoint = _route_template(scope)

            span_context = trace.get_current_span().get_span_context()
            exemplar = (
                {"trace_id": format(span_context.trace_id, "032x")}
                if span_context.is_valid
                else None
            )
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                duration, exemplar=exemplar
            )
            http_requests_total.labels(
                method=method, endpoint=endpoint, status=status_code
            ).inc(exemplar=exemplar)


def _route_template(scope: Scope) -> str:
    """Full path template of the matched route, router prefixes included.

    Routes from included routers may report only their own path, so the
    prefix is recovered from the request path by substituting the matched
    path params back into the route's template.
    """
    path = scope.get("path", "")
    route = scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if not template:
        return path

    convertors = getattr(route, "param_convertors", {})
    try:
        concrete, _ = replace_params(template, convertors, dict(scope.get("path_params", {})))
    except (KeyError, TypeError, ValueError, AssertionError):
        return template
    if concrete and path.endswith(concrete):
        return path[: len(path) - len(concrete)] + template
    return template

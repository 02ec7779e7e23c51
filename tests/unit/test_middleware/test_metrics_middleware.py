"""Tests for the route label used by MetricsMiddleware."""

from __future__ import annotations

import pytest
from starlette.routing import Route

from event_relay.app.middleware.metrics import _route_template


def _endpoint(request):  # pragma: no cover - never called
    return None


class TestRouteTemplate:
    def test_restores_router_prefix_missing_from_route(self) -> None:
        route = Route("/webhooks/{subscription_id}", _endpoint)
        scope = {
            "path": "/api/v1/webhooks/abc",
            "route": route,
            "path_params": {"subscription_id": "abc"},
        }

        assert _route_template(scope) == "/api/v1/webhooks/{subscription_id}"

    def test_route_with_full_path_is_unchanged(self) -> None:
        route = Route("/api/v1/webhooks/{subscription_id}", _endpoint)
        scope = {
            "path": "/api/v1/webhooks/abc",
            "route": route,
            "path_params": {"subscription_id": "abc"},
        }

        assert _route_template(scope) == "/api/v1/webhooks/{subscription_id}"

    @pytest.mark.parametrize("path", ["/metrics", "/api/v1/health"])
    def test_static_routes(self, path: str) -> None:
        scope = {"path": path, "route": Route(path.removeprefix("/api/v1"), _endpoint)}

        assert _route_template(scope) == path

    def test_unmatched_request_uses_raw_path(self) -> None:
        assert _route_template({"path": "/nope"}) == "/nope"

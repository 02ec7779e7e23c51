"""Tests for health and metrics endpoints."""

from __future__ import annotations

from httpx import AsyncClient


class TestHealthEndpoints:
    async def test_liveness(self, client: AsyncClient, api_prefix: str) -> None:
        response = await client.get(f"{api_prefix}/health/live")

        assert response.status_code == 200
        body = response.json()
        assert body["alive"] is True
        assert body["service"]

    async def test_readiness(self, client: AsyncClient, api_prefix: str) -> None:
        response = await client.get(f"{api_prefix}/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"] == {"database": True, "scheduler": True}

    async def test_aggregate_health_matches_readiness(
        self, client: AsyncClient, api_prefix: str
    ) -> None:
        response = await client.get(f"{api_prefix}/health")

        assert response.status_code == 200
        assert response.json()["ready"] is True

    async def test_readiness_reports_stopped_scheduler(
        self, app, client: AsyncClient, api_prefix: str
    ) -> None:
        class StoppedQueue:
            running = False

        app.state.task_queue = StoppedQueue()

        response = await client.get(f"{api_prefix}/health/ready")

        assert response.status_code == 503
        assert response.json()["ready"] is False
        assert response.json()["checks"]["scheduler"] is False


class TestMetricsEndpoint:
    async def test_exposes_prometheus_text(self, client: AsyncClient, api_prefix: str) -> None:
        await client.get(f"{api_prefix}/health/live")

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "http_requests_total" in response.text
        assert "webhook_delivery_attempts_total" in response.text

    async def test_request_metrics_use_route_template(
        self, client: AsyncClient, api_prefix: str
    ) -> None:
        from uuid import uuid4

        from event_relay.infra.metrics.prometheus import REGISTRY

        labels = {
            "method": "GET",
            "endpoint": f"{api_prefix}/webhooks/{{subscription_id}}",
            "status": "404",
        }
        before = REGISTRY.get_sample_value("http_requests_total", labels) or 0.0

        await client.get(f"{api_prefix}/webhooks/{uuid4()}")

        assert REGISTRY.get_sample_value("http_requests_total", labels) == before + 1

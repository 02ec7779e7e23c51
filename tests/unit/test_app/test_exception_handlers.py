"""Tests for the RFC 7807 exception handlers."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from event_relay.app.exception_handlers import configure_exception_handlers
from event_relay.app.middleware.request_id import RequestIDMiddleware
from event_relay.core.database import NotFoundError
from event_relay.core.exceptions import ConflictException


class Item(BaseModel):
    name: str
    qty: int


@pytest.fixture
def app() -> FastAPI:
    app = FastAPI()
    configure_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/conflict")
    async def conflict():
        raise ConflictException("Already exists", extra={"resource": "item"})

    @app.get("/missing")
    async def missing():
        raise NotFoundError("WebhookSubscription", {"id": "abc"})

    @app.post("/items")
    async def create_item(item: Item):
        return item

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret internals")

    return app


@pytest.fixture
async def client(app: FastAPI):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestExceptionHandlers:
    async def test_app_exception(self, client: AsyncClient) -> None:
        response = await client.get("/conflict", headers={"X-Request-ID": "r-1"})

        assert response.status_code == 409
        body = response.json()
        assert body["type"] == "conflict"
        assert body["title"] == "Conflict"
        assert body["detail"] == "Already exists"
        assert body["instance"] == "/conflict"
        assert body["resource"] == "item"
        assert body["request_id"] == "r-1"

    async def test_not_found(self, client: AsyncClient) -> None:
        response = await client.get("/missing")

        assert response.status_code == 404
        assert response.json()["type"] == "not-found"
        assert response.json()["detail"] == "WebhookSubscription not found"

    async def test_request_validation(self, client: AsyncClient) -> None:
        response = await client.post("/items", json={"name": "x", "qty": "many"})

        assert response.status_code == 422
        body = response.json()
        assert body["type"] == "validation-error"
        assert [e["field"] for e in body["errors"]] == ["body.qty"]

    async def test_unexpected_exception_hides_details(self, client: AsyncClient) -> None:
        response = await client.get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert body["type"] == "internal-error"
        assert "secret internals" not in response.text


class TestErrorMetrics:
    async def test_rendered_problems_are_counted(self, client: AsyncClient) -> None:
        from event_relay.infra.metrics.prometheus import REGISTRY

        labels = {"error_type": "conflict", "status_code": "409"}
        before = REGISTRY.get_sample_value("app_errors_total", labels) or 0.0

        await client.get("/conflict")

        assert REGISTRY.get_sample_value("app_errors_total", labels) == before + 1

"""Unit tests for the request ID and tenant middleware."""

from __future__ import annotations

import uuid

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from event_relay.app.middleware.request_id import RequestIDMiddleware
from event_relay.app.middleware.tenant import TenantMiddleware
from event_relay.infra.logging.context import get_log_context


@pytest.fixture
def app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(TenantMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/whoami")
    async def whoami(request: Request):
        return {
            "tenant_id": request.state.tenant_id,
            "request_id": request.state.request_id,
            "log_context": get_log_context(),
        }

    return app


@pytest.fixture
async def client(app: FastAPI):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class TestRequestIDMiddleware:
    async def test_generates_uuid(self, client: AsyncClient) -> None:
        response = await client.get("/whoami")

        request_id = response.headers["x-request-id"]
        uuid.UUID(request_id)
        assert response.json()["request_id"] == request_id

    async def test_preserves_incoming_id(self, client: AsyncClient) -> None:
        response = await client.get("/whoami", headers={"X-Request-ID": "req-123"})

        assert response.headers["x-request-id"] == "req-123"
        assert response.json()["log_context"]["request_id"] == "req-123"

    async def test_context_cleared_after_request(self, client: AsyncClient) -> None:
        await client.get("/whoami", headers={"X-Request-ID": "req-123"})
        assert "request_id" not in get_log_context()


class TestTenantMiddleware:
    async def test_reads_tenant_header(self, client: AsyncClient) -> None:
        response = await client.get("/whoami", headers={"X-Tenant-ID": "acme"})

        assert response.json()["tenant_id"] == "acme"
        assert response.json()["log_context"]["tenant_id"] == "acme"
        assert "x-tenant-id" not in response.headers

    async def test_missing_header_is_none(self, client: AsyncClient) -> None:
        response = await client.get("/whoami")
        assert response.json()["tenant_id"] is None

    async def test_custom_header_name(self) -> None:
        app = FastAPI()
        app.add_middleware(TenantMiddleware, header_name="X-Org")

        @app.get("/t")
        async def tenant(request: Request):
            return {"tenant_id": request.state.tenant_id}

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/t", headers={"X-Org": "org-9"})

        assert response.json()["tenant_id"] == "org-9"

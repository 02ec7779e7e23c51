"""Tenant resolution for route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request


def get_tenant_id(request: Request) -> str | None:
    """Tenant of the current request.

    Set on ``request.state`` by TenantMiddleware (or by an upstream auth
    layer). None means the request is not tenant-scoped.
    """
    return getattr(request.state, "tenant_id", None)


TenantIdDep = Annotated[str | None, Depends(get_tenant_id)]

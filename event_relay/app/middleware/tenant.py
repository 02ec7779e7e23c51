"""Tenant identification middleware.

Subscriptions, deliveries and idempotency keys are scoped to the tenant named
by the tenant header. Requests without the header run unscoped: the tenant
stays None for webhooks and idempotency keys share the unscoped namespace.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from event_relay.app.middleware.base import HeaderContextMiddleware

if TYPE_CHECKING:
    from starlette.types import ASGIApp


class TenantMiddleware(HeaderContextMiddleware):
    """Store the caller's tenant in ``request.state.tenant_id``.

    Must run outside IdempotencyMiddleware so idempotency keys are namespaced
    by tenant.
    """

    state_key = "tenant_id"
    log_context_key = "tenant_id"
    should_generate_if_missing = False
    should_echo_header = False

    def __init__(self, app: ASGIApp, header_name: str = "X-Tenant-ID") -> None:
        super().__init__(app)
        self.header_name = header_name.lower()

    def generate_value(self) -> str | None:
        return None

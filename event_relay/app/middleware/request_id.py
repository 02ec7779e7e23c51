"""Request ID middleware for per-request tracking.

Takes the request ID from X-Request-ID or generates a UUID, stores it in
``request.state.request_id``, binds it to the logging context for the
duration of the request and returns it in the response headers.
"""

from __future__ import annotations

from event_relay.app.middleware.base import HeaderContextMiddleware, generate_uuid


class RequestIDMiddleware(HeaderContextMiddleware):
    """Add a unique request ID to every request.

    Usage:
        app = FastAPI()
        app.add_middleware(RequestIDMiddleware)
    """

    header_name = "x-request-id"
    state_key = "request_id"
    log_context_key = "request_id"
    should_clear_context_on_finish = True

    def generate_value(self) -> str:
        return generate_uuid()

"""Context management for structured logging.

A contextvars-backed dict of fields (tenant_id, idempotency_key, delivery_id,
...) that ContextInjectingFilter copies onto every LogRecord. Each asyncio task
sees its own copy, so a request's context never leaks into a delivery task
running concurrently.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Add fields to the logging context of the current task.

    Example:
        ```python
        set_log_context(tenant_id="t-1", idempotency_key="abc")
        logger.info("Replaying cached response")  # includes both fields
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Drop all logging context for the current task."""
    _log_context.set({})


class ContextInjectingFilter(logging.Filter):
    """Logging filter that injects the current log context into records.

    Attached to the root queue handler by configure_logging(), so every
    logger that propagates picks up the context without code changes.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            # Explicit extra= fields win over ambient context
            if not hasattr(record, key):
                setattr(record, key, value)
        return True

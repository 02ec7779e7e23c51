"""Logging infrastructure.

Basic usage:
    from event_relay.infra.logging import set_log_context
    import logging

    logger = logging.getLogger(__name__)

    set_log_context(tenant_id="t-1", delivery_id="...")
    logger.info("Attempting delivery")  # includes tenant_id and delivery_id

    from event_relay.infra.logging import get_lazy_logger

    lazy_logger = get_lazy_logger(__name__)
    lazy_logger.debug(lambda: f"payload={render(payload)}")  # only runs if DEBUG enabled
"""

from event_relay.infra.logging.config import configure_logging, setup_logging, shutdown
from event_relay.infra.logging.context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    set_log_context,
)
from event_relay.infra.logging.formatters import JSONFormatter
from event_relay.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "clear_log_context",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "set_log_context",
    "setup_logging",
    "shutdown",
]

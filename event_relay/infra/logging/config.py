"""Logging configuration setup.

Uses dictConfig for formatters and filters, then routes every record through
a QueueHandler so request handlers and delivery tasks never block on stream
I/O. All handlers hang off the root logger; application loggers propagate.
"""

from __future__ import annotations

import atexit
import logging
import logging.config
import sys
from logging.handlers import QueueHandler, QueueListener
from queue import Queue
from typing import TYPE_CHECKING, Any

from event_relay.infra.logging.context import ContextInjectingFilter

if TYPE_CHECKING:
    from event_relay.core.settings.logs import LoggingSettings

_log_queue: Queue[logging.LogRecord] | None = None
_listener: QueueListener | None = None
_LOGGING_INITIALIZED = False

logger = logging.getLogger(__name__)


def shutdown() -> None:
    """Stop the QueueListener, flushing pending records."""
    global _log_queue, _listener

    if _listener is not None:
        _listener.stop()
        _listener = None
    _log_queue = None


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **configure_kwargs: Any,
) -> None:
    """Ensure logging is configured once across entrypoints.

    Args:
        log_settings: Optional logging settings instance. If omitted, settings
            are loaded via get_logging_settings().
        force: Reconfigure logging even if it was already initialized.
        **configure_kwargs: Explicit overrides for configure_logging().
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    settings_obj = log_settings
    if settings_obj is None:
        from event_relay.core.settings import get_logging_settings

        settings_obj = get_logging_settings()

    log_config = settings_obj.to_logging_kwargs()
    if configure_kwargs:
        log_config = {**log_config, **configure_kwargs}

    configure_logging(**log_config)
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    include_context: bool = True,
    service_name: str = "event-relay",
    capture_warnings: bool = True,
    **kwargs: Any,
) -> None:
    """Configure logging with dictConfig and the QueueHandler pattern.

    Args:
        log_level: Root logger level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_logs: Emit JSON Lines instead of plain text.
        include_context: Attach ContextInjectingFilter to the root queue handler.
        service_name: Static ``service`` field added to JSON records.
        capture_warnings: Forward Python warnings to logging.
        **kwargs: Ignored extra settings, logged at DEBUG.
    """
    global _log_queue, _listener

    if kwargs:
        logger.debug("Unused logging kwargs supplied: %s", ", ".join(sorted(kwargs)))

    if capture_warnings:
        logging.captureWarnings(True)

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": _build_formatters_config(json_logs=json_logs, service_name=service_name),
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stderr,
                "formatter": "json" if json_logs else "text",
            },
        },
        "root": {
            "level": log_level.upper(),
            "handlers": [],
        },
        # Uvicorn access logs duplicate the request logging
        "loggers": {
            "uvicorn.access": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(logging_config)

    # Swap the dictConfig console handler behind a queue
    shutdown()
    console_handler = logging.getHandlerByName("console")
    _log_queue = Queue(-1)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    queue_handler = QueueHandler(_log_queue)
    if include_context:
        # Logger filters never see propagated records; handler filters do
        queue_handler.addFilter(ContextInjectingFilter())
    root.addHandler(queue_handler)
    if console_handler is not None:
        _listener = QueueListener(_log_queue, console_handler, respect_handler_level=True)
        _listener.start()


def _build_formatters_config(json_logs: bool, service_name: str) -> dict[str, Any]:
    if json_logs:
        return {
            "json": {
                "()": "event_relay.infra.logging.formatters.JSONFormatter",
                "fmt_keys": {
                    "level": "levelname",
                    "logger": "name",
                    "message": "message",
                    "module": "module",
                    "line": "lineno",
                },
                "static": {"service": service_name},
            },
        }
    return {
        "text": {
            "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
        },
    }


atexit.register(shutdown)

"""Modular Pydantic Settings v2 configuration.

Import settings via cached loaders:
    from event_relay.core.settings import get_webhook_settings

Or use unified settings for access to all domains:
    from event_relay.core.settings import get_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .app import AppSettings
from .database import DatabaseSettings
from .idempotency import IdempotencySettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_db_settings,
    get_idempotency_settings,
    get_logging_settings,
    get_webhook_settings,
)
from .logs import LoggingSettings
from .unified import Settings, get_settings
from .webhooks import WebhookSettings

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "IdempotencySettings",
    "LoggingSettings",
    "Settings",
    "WebhookSettings",
    "clear_all_caches",
    "get_app_settings",
    "get_db_settings",
    "get_idempotency_settings",
    "get_logging_settings",
    "get_settings",
    "get_webhook_settings",
]

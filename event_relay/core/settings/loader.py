"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process.

Testing:
    Clear the cache to force a reload:
    get_webhook_settings.cache_clear()

    Or construct settings directly:
    settings = WebhookSettings(retry_base_delay_seconds=0.01)
"""

from __future__ import annotations

from functools import lru_cache

from .app import AppSettings
from .database import DatabaseSettings
from .idempotency import IdempotencySettings
from .logs import LoggingSettings
from .unified import get_settings
from .webhooks import WebhookSettings


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """Get cached application settings.

    Returns:
        Validated and frozen AppSettings instance.
    """
    return AppSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen DatabaseSettings instance.
    """
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_webhook_settings() -> WebhookSettings:
    """Get cached webhook delivery settings.

    Returns:
        Validated and frozen WebhookSettings instance.
    """
    return WebhookSettings()


@lru_cache(maxsize=1)
def get_idempotency_settings() -> IdempotencySettings:
    """Get cached idempotency settings.

    Returns:
        Validated and frozen IdempotencySettings instance.
    """
    return IdempotencySettings()


def clear_all_caches() -> None:
    """Clear every cached settings instance (for tests)."""
    get_app_settings.cache_clear()
    get_db_settings.cache_clear()
    get_logging_settings.cache_clear()
    get_webhook_settings.cache_clear()
    get_idempotency_settings.cache_clear()
    get_settings.cache_clear()

"""Unified settings composition.

Composes every domain settings class into one object that create_app() and
the CLI accept. Each nested class still reads its own env prefix.

Usage:
    from event_relay.core.settings import get_settings

    settings = get_settings()
    print(settings.webhooks.retry_base_delay_seconds)
    print(settings.idempotency.ttl_seconds)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .app import AppSettings
from .database import DatabaseSettings
from .idempotency import IdempotencySettings
from .logs import LoggingSettings
from .webhooks import WebhookSettings


class Settings(BaseSettings):
    """All settings domains in one object."""

    app: AppSettings = Field(default_factory=AppSettings)
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    webhooks: WebhookSettings = Field(default_factory=WebhookSettings)
    idempotency: IdempotencySettings = Field(default_factory=IdempotencySettings)

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached unified settings."""
    return Settings()


__all__ = ["Settings", "get_settings"]

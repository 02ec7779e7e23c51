"""Database connection settings."""

from __future__ import annotations

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database settings.

    Environment variables use DB_ prefix.
    Example: DB_DATABASE_URL=postgresql+psycopg://user:pass@db/relay
    """

    database_url: str = Field(
        default="sqlite+aiosqlite:///./event_relay.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Log every SQL statement")
    pool_pre_ping: bool = Field(
        default=True,
        description="Test pooled connections before use",
    )
    create_tables: bool = Field(
        default=False,
        description="Create missing tables at startup instead of relying on Alembic",
    )

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_sqlite(self) -> bool:
        """Whether the configured URL targets SQLite."""
        return self.database_url.startswith("sqlite")


__all__ = ["DatabaseSettings"]

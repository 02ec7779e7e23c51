"""Async database engine and session factory.

The engine is created lazily from DatabaseSettings the first time it is
needed, so importing this module never opens a connection and tests can
point it at a temporary SQLite file.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from event_relay.core.settings import get_db_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from event_relay.core.settings import DatabaseSettings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(db_settings: DatabaseSettings) -> AsyncEngine:
    """Create an async engine for the configured URL.

    In-memory SQLite gets a StaticPool so every session shares the one
    connection that holds the database.
    """
    url = db_settings.database_url
    kwargs: dict[str, Any] = {"echo": db_settings.echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url.endswith("sqlite+aiosqlite://"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = db_settings.pool_pre_ping
    return create_async_engine(url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with the relay's session defaults."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Return the process engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_db_settings())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process session factory, creating it on first use."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


def configure_database(db_settings: DatabaseSettings) -> async_sessionmaker[AsyncSession]:
    """Replace the process engine with one built from explicit settings."""
    global _engine, _session_factory
    _engine = build_engine(db_settings)
    _session_factory = build_session_factory(_engine)
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get async database session.

    Example:
        async with get_async_session() as session:
            result = await session.execute(select(WebhookSubscription))
    """
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_all_tables(engine: AsyncEngine | None = None) -> None:
    """Create every mapped table that does not exist yet."""
    from event_relay.core.database import Base

    # Import models so their tables register on Base.metadata
    import event_relay.features.idempotency.models  # noqa: F401
    import event_relay.features.webhooks.models  # noqa: F401

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_database(db_settings: DatabaseSettings | None = None) -> None:
    """Verify connectivity and optionally create tables.

    Raises:
        ConnectionError: If the database cannot be reached.
    """
    settings = db_settings or get_db_settings()
    engine = get_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.exception(
            "Failed to connect to database",
            extra={"dialect": engine.dialect.name},
        )
        msg = f"Database connection failed: {e}"
        raise ConnectionError(msg) from e

    if settings.create_tables:
        await create_all_tables(engine)

    logger.info(
        "Database connection established",
        extra={"dialect": engine.dialect.name, "create_tables": settings.create_tables},
    )


async def close_database() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_factory = None


__all__ = [
    "build_engine",
    "build_session_factory",
    "close_database",
    "configure_database",
    "create_all_tables",
    "get_async_session",
    "get_engine",
    "get_session_factory",
    "init_database",
]

"""Database infrastructure: engine, sessions, lifecycle."""

from event_relay.infra.database.session import (
    build_engine,
    build_session_factory,
    close_database,
    configure_database,
    create_all_tables,
    get_async_session,
    get_engine,
    get_session_factory,
    init_database,
)

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

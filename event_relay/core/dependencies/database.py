"""Database dependencies for FastAPI route handlers.

Two session getters:

1. ``get_db_session()`` (this module): FastAPI dependency, session lifecycle
   tied to the HTTP request. Uses the session factory the app was created
   with, falling back to the process-wide one.
2. ``get_async_session()`` (infra.database): framework-agnostic context
   manager for the CLI and delivery tasks.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from event_relay.infra.database import get_session_factory


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """FastAPI dependency for a database session.

    Example:
        @router.get("/items")
        async def list_items(session: AsyncSession = Depends(get_db_session)):
            ...
    """
    factory = getattr(request.app.state, "session_factory", None) or get_session_factory()
    async with factory() as session:
        yield session

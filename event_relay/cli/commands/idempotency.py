"""Idempotency record maintenance commands."""

import click

from event_relay.cli.utils import coro, success


@click.group(name="idempotency")
def idempotency() -> None:
    """Idempotency-Key record commands."""


@idempotency.command(name="purge")
@coro
async def purge() -> None:
    """Delete idempotency records whose TTL has passed."""
    from event_relay.features.idempotency.store import SqlAlchemyIdempotencyStore
    from event_relay.infra.database import close_database, get_session_factory

    try:
        removed = await SqlAlchemyIdempotencyStore(get_session_factory()).purge_expired()
    finally:
        await close_database()
    success(f"Removed {removed} expired idempotency record(s)")

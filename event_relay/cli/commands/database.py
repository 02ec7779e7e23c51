"""Database management commands.

Example:bash
    # Verify connectivity
    event-relay db init

    # Apply all pending migrations
    event-relay db upgrade

    # Create tables directly from the models (development only)
    event-relay db create-tables
"""

import sys
from pathlib import Path

import click
from alembic import command
from alembic.config import Config
from sqlalchemy.exc import SQLAlchemyError

from event_relay.cli.utils import coro, error, info, success
from event_relay.core.settings import get_db_settings

ALEMBIC_DIR = Path(__file__).resolve().parents[3] / "alembic"


def get_alembic_config() -> Config:
    """Alembic config pointing at the configured database URL."""
    config = Config()
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    config.set_main_option("sqlalchemy.url", get_db_settings().database_url.replace("%", "%%"))
    return config


@click.group(name="db")
def db() -> None:
    """Database management commands."""


@db.command()
@coro
async def init() -> None:
    """Verify database connectivity."""
    from event_relay.infra.database import close_database, init_database

    settings = get_db_settings()
    info(f"Connecting to: {settings.database_url.split('@')[-1]}")
    try:
        await init_database(settings)
    except ConnectionError as e:
        error(str(e))
        sys.exit(1)
    finally:
        await close_database()
    success("Database connected successfully!")


@db.command(name="create-tables")
@coro
async def create_tables() -> None:
    """Create missing tables from the models without Alembic."""
    from event_relay.infra.database import close_database, create_all_tables

    try:
        await create_all_tables()
    except SQLAlchemyError as e:
        error(f"Failed to create tables: {e}")
        sys.exit(1)
    finally:
        await close_database()
    success("Tables created")


@db.command()
@click.argument("revision", default="head")
def upgrade(revision: str) -> None:
    """Apply migrations up to REVISION (default: head)."""
    info(f"Upgrading database to {revision}...")
    command.upgrade(get_alembic_config(), revision)
    success("Database upgraded")


@db.command()
@click.argument("revision", default="-1")
def downgrade(revision: str) -> None:
    """Revert migrations down to REVISION (default: one step)."""
    info(f"Downgrading database to {revision}...")
    command.downgrade(get_alembic_config(), revision)
    success("Database downgraded")


@db.command()
def current() -> None:
    """Show the current migration revision."""
    command.current(get_alembic_config(), verbose=True)

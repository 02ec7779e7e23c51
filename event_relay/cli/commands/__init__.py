"""CLI command modules."""

from event_relay.cli.commands import database, idempotency, server, webhooks

__all__ = ["database", "idempotency", "server", "webhooks"]

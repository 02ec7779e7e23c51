"""Main CLI entry point for event-relay management commands."""

import click

from event_relay.cli.commands import database, idempotency, server, webhooks
from event_relay.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="event-relay")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Event Relay CLI - management commands for the webhook relay.

    \b
    Command Groups:
      db           Database migrations and connectivity
      server       Run the API server
      webhooks     Subscriptions, delivery log and reconciliation
      idempotency  Idempotency record maintenance

    \b
    Quick Start:
      event-relay db upgrade            # Apply migrations
      event-relay server run            # Serve the API
      event-relay webhooks reconcile    # Resume deliveries after a restart
    """
    ctx.ensure_object(dict)


cli.add_command(database.db)
cli.add_command(server.server)
cli.add_command(webhooks.webhooks)
cli.add_command(idempotency.idempotency)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()

"""Webhook management CLI commands.

- List subscriptions and their delivery log
- Reconcile deliveries whose scheduled attempt was lost in a restart
- Compute signatures to check a receiver's verification code
"""

import asyncio
import sys
from typing import BinaryIO
from uuid import UUID

import click

from event_relay.cli.utils import coro, error, header, info, success, warning
from event_relay.core.database import NotFoundError
from event_relay.core.settings import get_webhook_settings
from event_relay.features.webhooks.schemas import DeliveryStatus


@click.group(name="webhooks")
def webhooks() -> None:
    """Webhook subscription and delivery commands."""


@webhooks.command(name="list")
@click.option("--tenant", default=None, help="Tenant id (default: unscoped subscriptions)")
@click.option("--active/--inactive", default=None, help="Filter by active status")
@click.option("--limit", default=50, type=int, help="Maximum subscriptions to display")
@coro
async def list_subscriptions(tenant: str | None, active: bool | None, limit: int) -> None:
    """List a tenant's subscriptions."""
    from event_relay.features.webhooks.service import SubscriptionService
    from event_relay.infra.database import close_database, get_async_session

    header("Webhook Subscriptions")
    try:
        async with get_async_session() as session:
            service = SubscriptionService(session, get_webhook_settings())
            result = await service.list_subscriptions(tenant, active=active, limit=limit)
    finally:
        await close_database()

    if not result.items:
        info("No subscriptions found")
        return

    click.echo()
    for subscription in result.items:
        status = (
            click.style("Active", fg="green")
            if subscription.active
            else click.style("Revoked", fg="red")
        )
        click.echo(f"  ID: {subscription.id}")
        click.echo(f"    Name: {subscription.name}")
        click.echo(f"    URL: {subscription.url}")
        click.echo(f"    Status: {status}")
        click.echo(f"    Events: {', '.join(subscription.events)}")
        click.echo()
    success(f"Showing {len(result.items)}/{result.total} subscriptions")


@webhooks.command(name="deliveries")
@click.argument("subscription_id")
@click.option("--tenant", default=None, help="Tenant id owning the subscription")
@click.option(
    "--status",
    type=click.Choice([s.value for s in DeliveryStatus]),
    default=None,
    help="Filter by delivery status",
)
@click.option("--limit", default=20, type=int, help="Maximum deliveries to display")
@coro
async def list_deliveries(
    subscription_id: str, tenant: str | None, status: str | None, limit: int
) -> None:
    """Show the delivery log of SUBSCRIPTION_ID."""
    try:
        subscription_uuid = UUID(subscription_id)
    except ValueError:
        error(f"Invalid subscription ID format: {subscription_id}")
        sys.exit(1)

    from event_relay.features.webhooks.service import SubscriptionService
    from event_relay.infra.database import close_database, get_async_session

    header(f"Deliveries for {subscription_id}")
    try:
        async with get_async_session() as session:
            service = SubscriptionService(session, get_webhook_settings())
            result = await service.list_deliveries(
                subscription_uuid,
                tenant,
                status=DeliveryStatus(status) if status else None,
                limit=limit,
            )
    except NotFoundError:
        error(f"Subscription not found: {subscription_id}")
        sys.exit(1)
    finally:
        await close_database()

    for delivery in result.items:
        click.echo(
            f"  {delivery.id}  {delivery.event:<30} {delivery.status:<9} "
            f"attempt={delivery.attempt} response={delivery.response_status or '-'}"
        )
        if delivery.error:
            click.echo(f"      error: {delivery.error}")
    success(f"Showing {len(result.items)}/{result.total} deliveries")


@webhooks.command(name="reconcile")
@click.option("--limit", default=None, type=int, help="Maximum deliveries to pick up")
@click.option(
    "--timeout",
    default=300.0,
    type=float,
    help="Seconds to wait for re-queued attempts and their retries to finish",
)
@coro
async def reconcile(limit: int | None, timeout: float) -> None:
    """Re-run deliveries left pending or retrying by a stopped process.

    Attempts run in this process; the command waits until the re-queued
    attempts and any retries they schedule have finished or TIMEOUT expires.
    """
    from event_relay.features.webhooks.client import WebhookClient, build_http_client
    from event_relay.features.webhooks.dispatcher import EventDispatcher
    from event_relay.features.webhooks.executor import DeliveryExecutor
    from event_relay.infra.database import close_database, get_session_factory
    from event_relay.infra.tasks import APSchedulerTaskQueue

    settings = get_webhook_settings()
    queue = APSchedulerTaskQueue()
    queue.start()
    http_client = build_http_client(settings)
    try:
        executor = DeliveryExecutor(
            get_session_factory(),
            WebhookClient(http_client, settings),
            queue,
            base_delay=settings.retry_base_delay_seconds,
            default_max_attempts=settings.default_max_attempts,
        )
        dispatcher = EventDispatcher(
            get_session_factory(),
            executor,
            reconcile_grace_seconds=settings.reconcile_grace_seconds,
        )
        rescheduled = await dispatcher.resume_due_deliveries(
            limit=limit or settings.reconcile_batch_size
        )
        info(f"Re-queued {rescheduled} delivery attempt(s)")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while queue.pending() and loop.time() < deadline:
            await asyncio.sleep(0.5)
        if queue.pending():
            warning(
                f"{len(queue.pending())} attempt(s) still scheduled after {timeout}s; "
                "they stay retrying and are picked up by the next reconcile"
            )
    finally:
        queue.shutdown(wait=False)
        await http_client.aclose()
        await close_database()
    success("Reconciliation finished")


@webhooks.command(name="sign")
@click.option("--secret", required=True, help="Subscription secret")
@click.option("--timestamp", required=True, help="Value of the timestamp header")
@click.argument("body_file", type=click.File("rb"), default="-")
def sign_body(secret: str, timestamp: str, body_file: BinaryIO) -> None:
    """Print the signature a receiver should compute for BODY_FILE (default: stdin)."""
    from event_relay.features.webhooks.signing import sign

    body = body_file.read().decode("utf-8")
    click.echo(sign(secret, timestamp, body))

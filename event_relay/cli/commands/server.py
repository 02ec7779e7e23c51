"""Server management commands."""

import click
import uvicorn

from event_relay.cli.utils import info, success, warning
from event_relay.core.settings import get_app_settings


@click.group(name="server")
def server() -> None:
    """Server management commands."""


@server.command()
@click.option("--host", default=None, help="Host to bind (default: APP_HOST)")
@click.option("--port", default=None, type=int, help="Port to bind (default: APP_PORT)")
@click.option("--reload/--no-reload", default=False, help="Enable auto-reload on code changes")
@click.option("--workers", default=1, type=int, help="Number of worker processes")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["critical", "error", "warning", "info", "debug", "trace"]),
    help="uvicorn log level",
)
def run(host: str | None, port: int | None, reload: bool, workers: int, log_level: str) -> None:
    """Run the relay API with uvicorn.

    Retries are scheduled in-process, so every worker keeps its own retry
    timers. Run reconciliation after a restart to pick up lost attempts.
    """
    settings = get_app_settings()
    host = host or settings.host
    port = port or settings.port

    if reload and workers > 1:
        warning("--reload is incompatible with --workers > 1. Setting workers to 1.")
        workers = 1

    info(f"Server will run at: http://{host}:{port}")
    success("Starting uvicorn...")
    uvicorn.run(
        "event_relay.app.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=log_level,
    )

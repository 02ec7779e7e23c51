"""Webhook delivery configuration settings.

HTTP timeouts, retry behaviour and the header names used to sign outbound
webhook requests.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebhookSettings(BaseSettings):
    """Configuration for webhook delivery.

    Retry delays grow as ``retry_base_delay_seconds * 2 ** (attempt - 1)``,
    so the first retry waits the base delay, the second twice that, and so on.
    """

    # HTTP delivery settings
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Total timeout for one webhook HTTP attempt (seconds)",
    )
    connect_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Connection timeout for webhook HTTP requests (seconds)",
    )
    user_agent: str = Field(
        default="event-relay-webhooks/0.1",
        description="User-Agent header sent with deliveries",
    )

    # Retry configuration
    default_max_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Attempts per delivery when the subscription has no override",
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Base delay before the first retry (seconds)",
    )

    # Signing
    signature_header: str = Field(
        default="X-Webhook-Signature",
        description="Header carrying the hex HMAC-SHA256 signature",
    )
    timestamp_header: str = Field(
        default="X-Webhook-Timestamp",
        description="Header carrying the timestamp that prefixes the signed payload",
    )

    # Target validation
    allow_private_targets: bool = Field(
        default=False,
        description="Allow subscription URLs that resolve to private or loopback addresses",
    )

    # Reconciliation of deliveries left behind by a restart
    reconcile_on_startup: bool = Field(
        default=False,
        description="Re-schedule due Retrying/Pending deliveries when the app starts",
    )
    reconcile_batch_size: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Maximum deliveries re-scheduled per reconciliation run",
    )
    reconcile_grace_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description=(
            "How long a delivery must be overdue before reconciliation re-queues it; "
            "keep above the HTTP timeout so in-flight attempts are left alone"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )


__all__ = ["WebhookSettings"]

"""HTTP client for webhook delivery."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from event_relay.features.webhooks.signing import sign
from event_relay.infra.logging import get_lazy_logger
from event_relay.infra.metrics.prometheus import (
    webhook_delivery_attempts_total,
    webhook_delivery_duration_seconds,
)

if TYPE_CHECKING:
    from event_relay.core.settings import WebhookSettings

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)


@dataclass(slots=True)
class WebhookDeliveryResult:
    """Result of one webhook delivery attempt."""

    success: bool
    status_code: int | None
    response_time_ms: int
    error_message: str | None


def build_http_client(
    settings: WebhookSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """AsyncClient with the delivery timeouts applied at the transport level."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout_seconds, connect=settings.connect_timeout_seconds),
        transport=transport,
        follow_redirects=False,
        headers={"User-Agent": settings.user_agent},
    )


class WebhookClient:
    """Sends one signed POST per call and reports the outcome.

    Never raises for transport problems: timeouts and connection errors come
    back as unsuccessful results so the executor treats them like a non-2xx.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: WebhookSettings) -> None:
        self._http = http_client
        self._signature_header = settings.signature_header
        self._timestamp_header = settings.timestamp_header

    async def deliver(
        self,
        url: str,
        secret: str,
        body: str,
        *,
        timestamp: str,
        event: str,
        delivery_id: str,
    ) -> WebhookDeliveryResult:
        """POST ``body`` to ``url`` signed with ``secret`` and ``timestamp``."""
        headers = {
            "Content-Type": "application/json",
            self._timestamp_header: timestamp,
            self._signature_header: sign(secret, timestamp, body),
            "X-Webhook-Event": event,
            "X-Webhook-Delivery": delivery_id,
        }
        lazy_logger.debug(
            lambda: f"client.deliver: delivery_id={delivery_id}, event={event}, url={url}"
        )

        start = time.perf_counter()
        try:
            response = await self._http.post(url, content=body.encode("utf-8"), headers=headers)
        except httpx.TimeoutException:
            elapsed = time.perf_counter() - start
            webhook_delivery_duration_seconds.observe(elapsed)
            webhook_delivery_attempts_total.labels(outcome="timeout").inc()
            logger.warning(
                "Webhook delivery timeout",
                extra={
                    "delivery_id": delivery_id,
                    "event": event,
                    "url": url,
                    "operation": "client.deliver",
                },
            )
            return WebhookDeliveryResult(
                success=False,
                status_code=None,
                response_time_ms=int(elapsed * 1000),
                error_message="Request timed out",
            )
        except httpx.RequestError as e:
            elapsed = time.perf_counter() - start
            webhook_delivery_duration_seconds.observe(elapsed)
            webhook_delivery_attempts_total.labels(outcome="error").inc()
            logger.error(
                "Webhook delivery request error",
                extra={
                    "delivery_id": delivery_id,
                    "event": event,
                    "url": url,
                    "error": str(e),
                    "operation": "client.deliver",
                },
            )
            return WebhookDeliveryResult(
                success=False,
                status_code=None,
                response_time_ms=int(elapsed * 1000),
                error_message=f"Request error: {e.__class__.__name__}: {e}",
            )

        elapsed = time.perf_counter() - start
        webhook_delivery_duration_seconds.observe(elapsed)
        success = response.is_success

        if success:
            webhook_delivery_attempts_total.labels(outcome="success").inc()
        else:
            webhook_delivery_attempts_total.labels(outcome="http_error").inc()
            logger.warning(
                "Webhook delivery failed with non-2xx status",
                extra={
                    "delivery_id": delivery_id,
                    "event": event,
                    "status_code": response.status_code,
                    "response_time_ms": int(elapsed * 1000),
                    "operation": "client.deliver",
                },
            )

        return WebhookDeliveryResult(
            success=success,
            status_code=response.status_code,
            response_time_ms=int(elapsed * 1000),
            error_message=None if success else f"HTTP {response.status_code}",
        )


__all__ = ["WebhookClient", "WebhookDeliveryResult", "build_http_client"]

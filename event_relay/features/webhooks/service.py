"""Service layer for subscription management and delivery-log queries."""

from __future__ import annotations

from typing import TYPE_CHECKING

from event_relay.core.services.base import BaseService
from event_relay.core.validators import validate_secret, validate_target_url
from event_relay.features.webhooks.models import WebhookSubscription
from event_relay.features.webhooks.repository import (
    DeliveryRepository,
    SubscriptionRepository,
    get_delivery_repository,
    get_subscription_repository,
)
from event_relay.features.webhooks.signing import generate_secret

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from event_relay.core.database import SearchResult
    from event_relay.core.settings import WebhookSettings
    from event_relay.features.webhooks.models import WebhookDelivery
    from event_relay.features.webhooks.schemas import (
        DeliveryStatus,
        SubscriptionCreate,
        SubscriptionUpdate,
    )


class SubscriptionService(BaseService):
    """Tenant-scoped subscription operations.

    Configuration errors (bad URL, empty event set, weak secret) raise
    SubscriptionConfigError here, at creation or update time, never later
    at delivery time.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: WebhookSettings,
        subscription_repository: SubscriptionRepository | None = None,
        delivery_repository: DeliveryRepository | None = None,
    ) -> None:
        super().__init__()
        self._session = session
        self._settings = settings
        self._subscriptions = subscription_repository or get_subscription_repository()
        self._deliveries = delivery_repository or get_delivery_repository()

    def validate_url(self, url: str) -> str:
        return validate_target_url(url, allow_private=self._settings.allow_private_targets)

    async def create_subscription(
        self,
        payload: SubscriptionCreate,
        tenant_id: str | None,
    ) -> WebhookSubscription:
        """Validate and persist a subscription, generating a secret if absent."""
        url = self.validate_url(payload.url)
        secret = validate_secret(payload.secret) if payload.secret else generate_secret()

        subscription = WebhookSubscription(
            tenant_id=tenant_id,
            name=payload.name,
            url=url,
            secret=secret,
            events=list(payload.events),
            active=payload.active,
            max_attempts=payload.max_attempts,
        )
        created = await self._subscriptions.create(self._session, subscription)

        self.logger.info(
            "Webhook subscription created",
            extra={
                "subscription_id": str(created.id),
                "tenant_id": tenant_id,
                "events": created.events,
                "operation": "service.create_subscription",
            },
        )
        return created

    async def get_subscription(
        self, subscription_id: UUID, tenant_id: str | None
    ) -> WebhookSubscription:
        return await self._subscriptions.get_for_tenant(self._session, subscription_id, tenant_id)

    async def list_subscriptions(
        self,
        tenant_id: str | None,
        *,
        active: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[WebhookSubscription]:
        return await self._subscriptions.search_subscriptions(
            self._session, tenant_id, active=active, limit=limit, offset=offset
        )

    async def update_subscription(
        self,
        subscription_id: UUID,
        payload: SubscriptionUpdate,
        tenant_id: str | None,
    ) -> WebhookSubscription:
        subscription = await self.get_subscription(subscription_id, tenant_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("url") is not None:
            changes["url"] = self.validate_url(changes["url"])

        for field, value in changes.items():
            if value is None and field != "max_attempts":
                continue
            setattr(subscription, field, value)
        await self._session.flush()

        self.logger.info(
            "Webhook subscription updated",
            extra={
                "subscription_id": str(subscription_id),
                "fields": sorted(changes),
                "operation": "service.update_subscription",
            },
        )
        return subscription

    async def revoke_subscription(
        self, subscription_id: UUID, tenant_id: str | None
    ) -> WebhookSubscription:
        """Deactivate a subscription. Running delivery chains finish as planned."""
        subscription = await self.get_subscription(subscription_id, tenant_id)
        subscription.active = False
        await self._session.flush()

        self.logger.info(
            "Webhook subscription revoked",
            extra={"subscription_id": str(subscription_id), "operation": "service.revoke_subscription"},
        )
        return subscription

    async def delete_subscription(self, subscription_id: UUID, tenant_id: str | None) -> None:
        """Delete a subscription. Its delivery log is kept."""
        subscription = await self.get_subscription(subscription_id, tenant_id)
        await self._subscriptions.delete(self._session, subscription)

    async def list_deliveries(
        self,
        subscription_id: UUID,
        tenant_id: str | None,
        *,
        status: DeliveryStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[WebhookDelivery]:
        await self.get_subscription(subscription_id, tenant_id)
        return await self._deliveries.find_by_subscription(
            self._session, subscription_id, status=status, limit=limit, offset=offset
        )

    async def get_delivery(self, delivery_id: UUID, tenant_id: str | None) -> WebhookDelivery:
        return await self._deliveries.get_for_tenant(self._session, delivery_id, tenant_id)


__all__ = ["SubscriptionService"]

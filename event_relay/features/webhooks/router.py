"""API router for webhook subscriptions, delivery log and event ingestion."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from event_relay.core.dependencies import TenantIdDep, get_db_session
from event_relay.core.exceptions import BadRequestException
from event_relay.core.validators import SubscriptionConfigError
from event_relay.features.webhooks.dispatcher import EventDispatcher
from event_relay.features.webhooks.schemas import (
    DeliveryList,
    DeliveryRead,
    DeliveryStatus,
    EventAccepted,
    EventPublish,
    SubscriptionCreate,
    SubscriptionCreated,
    SubscriptionList,
    SubscriptionRead,
    SubscriptionRegister,
    SubscriptionUpdate,
)
from event_relay.features.webhooks.service import SubscriptionService
from event_relay.infra.logging import get_lazy_logger

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_subscription_service(request: Request, session: SessionDep) -> SubscriptionService:
    return SubscriptionService(session, request.app.state.settings.webhooks)


def get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.dispatcher


ServiceDep = Annotated[SubscriptionService, Depends(get_subscription_service)]


async def _create(
    service: SubscriptionService,
    session: AsyncSession,
    payload: SubscriptionCreate,
    tenant_id: str | None,
) -> SubscriptionCreated:
    try:
        subscription = await service.create_subscription(payload, tenant_id)
    except SubscriptionConfigError as e:
        raise BadRequestException(str(e), type="invalid-subscription") from e
    await session.commit()
    return SubscriptionCreated.model_validate(subscription)


@router.post(
    "",
    response_model=SubscriptionCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create a subscription",
    description="Register a URL for one or more events. The secret is returned only here.",
)
async def create_subscription(
    payload: SubscriptionCreate,
    service: ServiceDep,
    session: SessionDep,
    tenant_id: TenantIdDep,
) -> SubscriptionCreated:
    return await _create(service, session, payload, tenant_id)


@router.post(
    "/register",
    response_model=SubscriptionCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Register a single-event subscription",
)
async def register_subscription(
    payload: SubscriptionRegister,
    service: ServiceDep,
    session: SessionDep,
    tenant_id: TenantIdDep,
) -> SubscriptionCreated:
    """Shorthand for ``POST /webhooks`` with one event and a generated name."""
    return await _create(service, session, payload.to_create(), tenant_id)


@router.post(
    "/events",
    response_model=EventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Publish an event",
    description="Fan an event out to matching subscriptions. Delivery happens asynchronously.",
)
async def publish_event(
    payload: EventPublish,
    tenant_id: TenantIdDep,
    dispatcher: Annotated[EventDispatcher, Depends(get_dispatcher)],
) -> EventAccepted:
    delivery_ids = await dispatcher.dispatch_event(
        payload.event, payload.payload, tenant_id=tenant_id
    )
    return EventAccepted(event=payload.event, delivery_ids=delivery_ids)


@router.get("", response_model=SubscriptionList, summary="List subscriptions")
async def list_subscriptions(
    service: ServiceDep,
    tenant_id: TenantIdDep,
    active: bool | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> SubscriptionList:
    result = await service.list_subscriptions(tenant_id, active=active, limit=limit, offset=offset)
    return SubscriptionList(
        items=[SubscriptionRead.model_validate(item) for item in result.items],
        total=result.total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/deliveries/{delivery_id}",
    response_model=DeliveryRead,
    summary="Get a delivery record",
    responses={404: {"description": "Delivery not found"}},
)
async def get_delivery(
    delivery_id: UUID,
    service: ServiceDep,
    tenant_id: TenantIdDep,
) -> DeliveryRead:
    delivery = await service.get_delivery(delivery_id, tenant_id)
    return DeliveryRead.model_validate(delivery)


@router.get(
    "/{subscription_id}",
    response_model=SubscriptionRead,
    summary="Get a subscription",
    responses={404: {"description": "Subscription not found"}},
)
async def get_subscription(
    subscription_id: UUID,
    service: ServiceDep,
    tenant_id: TenantIdDep,
) -> SubscriptionRead:
    subscription = await service.get_subscription(subscription_id, tenant_id)
    return SubscriptionRead.model_validate(subscription)


@router.patch(
    "/{subscription_id}",
    response_model=SubscriptionRead,
    summary="Update a subscription",
    responses={404: {"description": "Subscription not found"}},
)
async def update_subscription(
    subscription_id: UUID,
    payload: SubscriptionUpdate,
    service: ServiceDep,
    session: SessionDep,
    tenant_id: TenantIdDep,
) -> SubscriptionRead:
    try:
        subscription = await service.update_subscription(subscription_id, payload, tenant_id)
    except SubscriptionConfigError as e:
        raise BadRequestException(str(e), type="invalid-subscription") from e
    await session.commit()
    return SubscriptionRead.model_validate(subscription)


@router.post(
    "/{subscription_id}/revoke",
    response_model=SubscriptionRead,
    summary="Revoke a subscription",
    responses={404: {"description": "Subscription not found"}},
)
async def revoke_subscription(
    subscription_id: UUID,
    service: ServiceDep,
    session: SessionDep,
    tenant_id: TenantIdDep,
) -> SubscriptionRead:
    subscription = await service.revoke_subscription(subscription_id, tenant_id)
    await session.commit()
    return SubscriptionRead.model_validate(subscription)


@router.delete(
    "/{subscription_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a subscription",
    responses={404: {"description": "Subscription not found"}},
)
async def delete_subscription(
    subscription_id: UUID,
    service: ServiceDep,
    session: SessionDep,
    tenant_id: TenantIdDep,
) -> Response:
    await service.delete_subscription(subscription_id, tenant_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{subscription_id}/deliveries",
    response_model=DeliveryList,
    summary="List a subscription's deliveries",
    responses={404: {"description": "Subscription not found"}},
)
async def list_deliveries(
    subscription_id: UUID,
    service: ServiceDep,
    tenant_id: TenantIdDep,
    delivery_status: Annotated[DeliveryStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> DeliveryList:
    result = await service.list_deliveries(
        subscription_id, tenant_id, status=delivery_status, limit=limit, offset=offset
    )
    lazy_logger.debug(
        lambda: f"router.list_deliveries: subscription_id={subscription_id} -> {len(result.items)}/{result.total}"
    )
    return DeliveryList(
        items=[DeliveryRead.model_validate(item) for item in result.items],
        total=result.total,
        limit=limit,
        offset=offset,
    )

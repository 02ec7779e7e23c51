"""Webhooks feature package: subscriptions, signing, delivery and dispatch."""

from .client import WebhookClient, WebhookDeliveryResult, build_http_client
from .dispatcher import (
    EventDispatcher,
    dispatch_event,
    get_event_dispatcher,
    set_event_dispatcher,
)
from .executor import DeliveryExecutor, DeliveryTarget
from .repository import (
    DeliveryRepository,
    SubscriptionRepository,
    get_delivery_repository,
    get_subscription_repository,
)
from .router import router
from .schemas import DeliveryStatus
from .service import SubscriptionService
from .signing import build_envelope, generate_secret, sign, verify_signature

__all__ = [
    "DeliveryExecutor",
    "DeliveryRepository",
    "DeliveryStatus",
    "DeliveryTarget",
    "EventDispatcher",
    "SubscriptionRepository",
    "SubscriptionService",
    "WebhookClient",
    "WebhookDeliveryResult",
    "build_envelope",
    "build_http_client",
    "dispatch_event",
    "generate_secret",
    "get_delivery_repository",
    "get_event_dispatcher",
    "get_subscription_repository",
    "router",
    "set_event_dispatcher",
    "sign",
    "verify_signature",
]

"""Reusable validators."""

from event_relay.core.validators.common import optional_validator
from event_relay.core.validators.webhooks import (
    SubscriptionConfigError,
    validate_event_names,
    validate_event_names_optional,
    validate_secret,
    validate_target_url,
)

__all__ = [
    "SubscriptionConfigError",
    "optional_validator",
    "validate_event_names",
    "validate_event_names_optional",
    "validate_secret",
    "validate_target_url",
]

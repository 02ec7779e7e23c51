"""Validators for webhook subscriptions.

All functions raise SubscriptionConfigError, a ValueError, so they work both
as pydantic field validators and as service-level checks at creation time.
"""

from __future__ import annotations

import ipaddress
from urllib.parse import urlparse

from event_relay.core.validators.common import optional_validator

MAX_EVENT_NAME_LENGTH = 200


class SubscriptionConfigError(ValueError):
    """A subscription was configured with an invalid URL, event set or secret."""


def validate_event_names(values: list[str]) -> list[str]:
    """Strip event names, drop duplicates and reject empty sets.

    Raises:
        SubscriptionConfigError: If the set is empty or a name is blank/too long.
    """
    cleaned: list[str] = []
    for value in values:
        name = value.strip()
        if not name:
            raise SubscriptionConfigError("Event names cannot be empty strings")
        if len(name) > MAX_EVENT_NAME_LENGTH:
            raise SubscriptionConfigError(
                f"Event name exceeds {MAX_EVENT_NAME_LENGTH} characters: {name[:40]}..."
            )
        if name not in cleaned:
            cleaned.append(name)
    if not cleaned:
        raise SubscriptionConfigError("A subscription needs at least one event")
    return cleaned


validate_event_names_optional = optional_validator(validate_event_names)


def validate_target_url(url: str, *, allow_private: bool = False) -> str:
    """Validate a delivery URL and block internal/private IP literals.

    Domain names are accepted without resolving them.

    Raises:
        SubscriptionConfigError: If the URL is not http(s), has no host, or
            points at a private, loopback, reserved or link-local address.
    """
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        raise SubscriptionConfigError(f"Webhook URL must use http or https: {url}")

    hostname = parsed.hostname
    if not hostname:
        raise SubscriptionConfigError("Invalid URL: missing hostname")

    if allow_private:
        return url

    if hostname == "localhost":
        raise SubscriptionConfigError(f"Webhook URL cannot point to loopback address: {hostname}")

    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return url

    if ip.is_loopback:
        raise SubscriptionConfigError(f"Webhook URL cannot point to loopback address: {hostname}")
    if ip.is_link_local:
        raise SubscriptionConfigError(f"Webhook URL cannot point to link-local address: {hostname}")
    if ip.is_private:
        raise SubscriptionConfigError(f"Webhook URL cannot point to private IP address: {hostname}")
    if ip.is_reserved:
        raise SubscriptionConfigError(f"Webhook URL cannot point to reserved IP address: {hostname}")
    return url


def validate_secret(secret: str) -> str:
    """Reject secrets too short to make HMAC signatures meaningful."""
    if len(secret) < 16:
        raise SubscriptionConfigError("Webhook secret must be at least 16 characters")
    return secret


__all__ = [
    "SubscriptionConfigError",
    "validate_event_names",
    "validate_event_names_optional",
    "validate_secret",
    "validate_target_url",
]

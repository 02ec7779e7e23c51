"""Metrics infrastructure for Prometheus monitoring."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from event_relay.infra.metrics.prometheus import REGISTRY

__all__ = ["CONTENT_TYPE_LATEST", "REGISTRY", "generate_latest"]

"""Idempotency guard settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

IdempotencyBackend = Literal["database", "memory"]


class IdempotencySettings(BaseSettings):
    """Configuration for the Idempotency-Key middleware.

    Environment variables use IDEMPOTENCY_ prefix.
    Example: IDEMPOTENCY_TTL_SECONDS=3600, IDEMPOTENCY_BACKEND=memory
    """

    enabled: bool = Field(default=True, description="Enable the idempotency guard")
    header_name: str = Field(
        default="Idempotency-Key",
        min_length=1,
        description="Request header carrying the idempotency key",
    )
    ttl_seconds: int = Field(
        default=86_400,
        ge=1,
        description="How long a key is remembered (seconds, 24h default)",
    )
    methods: frozenset[str] = Field(
        default=frozenset({"POST", "PUT", "PATCH", "DELETE"}),
        description="HTTP methods guarded by the middleware",
    )
    include_query_params: bool = Field(
        default=False,
        description="Include the query string in the request fingerprint",
    )
    replay_responses: bool = Field(
        default=True,
        description=(
            "Replay the cached response for a completed key. When False a completed "
            "key is rejected with 409 instead."
        ),
    )
    backend: IdempotencyBackend = Field(
        default="database",
        description="Primary record store: database|memory",
    )
    fallback_enabled: bool = Field(
        default=True,
        description="Degrade to the process-local store when the database is unreachable",
    )
    max_key_length: int = Field(
        default=255,
        ge=1,
        le=255,
        description="Longest accepted Idempotency-Key value",
    )
    max_body_bytes: int = Field(
        default=1_048_576,
        ge=1,
        description="Largest request body the guard buffers for hashing; larger bodies get 413",
    )

    model_config = SettingsConfigDict(
        env_prefix="IDEMPOTENCY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    @field_validator("methods", mode="before")
    @classmethod
    def _normalize_methods(cls, v: object) -> object:
        if isinstance(v, str):
            v = [part for part in v.split(",") if part.strip()]
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(method).strip().upper() for method in v)
        return v


__all__ = ["IdempotencyBackend", "IdempotencySettings"]

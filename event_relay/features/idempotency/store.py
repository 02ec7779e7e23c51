"""Idempotency record stores.

Both stores expose the same small interface, with ``create_if_absent`` as
the explicit race-resolution primitive: it returns True for exactly one of
any number of concurrent callers using the same key.

- SqlAlchemyIdempotencyStore: durable, namespaced per tenant, honours TTL.
  Connectivity failures surface as StoreUnavailableError so the guard can
  degrade instead of failing the request.
- InMemoryIdempotencyStore: process-local. As the fallback it is keyed by the
  Idempotency-Key alone and never expires entries; as a primary backend it
  can be tenant-scoped and TTL-aware.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import delete, select
from sqlalchemy.exc import DisconnectionError, IntegrityError, InterfaceError, OperationalError

from event_relay.core.exceptions import StoreUnavailableError
from event_relay.features.idempotency.models import IdempotencyRecord
from event_relay.infra.logging import get_lazy_logger
from event_relay.utils.canonical import utcnow

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, DisconnectionError, OSError, TimeoutError)


@dataclass(slots=True, frozen=True)
class StoredResponse:
    status_code: int
    body: bytes
    headers: dict[str, str]


@dataclass(slots=True, frozen=True)
class IdempotencyEntry:
    """Snapshot of one idempotency record."""

    key: str
    tenant_id: str
    request_hash: str
    method: str
    path: str
    expires_at: datetime
    response: StoredResponse | None = None

    @property
    def completed(self) -> bool:
        return self.response is not None


@runtime_checkable
class IdempotencyStore(Protocol):
    """Key/value capability backing the idempotency guard."""

    async def get(self, key: str, tenant_id: str) -> IdempotencyEntry | None: ...

    async def create_if_absent(self, entry: IdempotencyEntry) -> bool: ...

    async def complete(self, key: str, tenant_id: str, response: StoredResponse) -> None: ...

    async def release(self, key: str, tenant_id: str) -> None: ...

    async def purge_expired(self, now: datetime | None = None) -> int: ...


def _to_entry(record: IdempotencyRecord) -> IdempotencyEntry:
    response = None
    if record.status_code is not None:
        response = StoredResponse(
            status_code=record.status_code,
            body=record.response_body or b"",
            headers=dict(record.response_headers or {}),
        )
    return IdempotencyEntry(
        key=record.key,
        tenant_id=record.tenant_id,
        request_hash=record.request_hash,
        method=record.method,
        path=record.path,
        expires_at=record.expires_at,
        response=response,
    )


class SqlAlchemyIdempotencyStore:
    """Durable store on the ``idempotency_records`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except _UNAVAILABLE_ERRORS as e:
            msg = f"Idempotency store unavailable during {operation}: {e.__class__.__name__}"
            raise StoreUnavailableError(msg) from e

    async def get(self, key: str, tenant_id: str) -> IdempotencyEntry | None:
        """Live record for the key, or None when absent or expired."""
        async with self._session("get") as session:
            stmt = select(IdempotencyRecord).where(
                IdempotencyRecord.key == key,
                IdempotencyRecord.tenant_id == tenant_id,
            )
            record = (await session.execute(stmt)).scalar_one_or_none()
            if record is None or record.expires_at <= self._clock():
                return None
            return _to_entry(record)

    async def create_if_absent(self, entry: IdempotencyEntry) -> bool:
        """Insert the record unless a live one exists.

        An expired record for the same key is removed first so the key can be
        reused after its TTL.
        """
        async with self._session("create_if_absent") as session:
            await session.execute(
                delete(IdempotencyRecord).where(
                    IdempotencyRecord.key == entry.key,
                    IdempotencyRecord.tenant_id == entry.tenant_id,
                    IdempotencyRecord.expires_at <= self._clock(),
                )
            )
            session.add(
                IdempotencyRecord(
                    key=entry.key,
                    tenant_id=entry.tenant_id,
                    request_hash=entry.request_hash,
                    method=entry.method,
                    path=entry.path,
                    expires_at=entry.expires_at,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                lazy_logger.debug(lambda: f"store.create_if_absent: key={entry.key!r} lost the race")
                return False
            return True

    async def complete(self, key: str, tenant_id: str, response: StoredResponse) -> None:
        async with self._session("complete") as session:
            stmt = select(IdempotencyRecord).where(
                IdempotencyRecord.key == key,
                IdempotencyRecord.tenant_id == tenant_id,
            )
            record = (await session.execute(stmt)).scalar_one_or_none()
            if record is None:
                logger.warning(
                    "Idempotency record vanished before completion",
                    extra={"idempotency_key": key, "tenant_id": tenant_id},
                )
                return
            record.status_code = response.status_code
            record.response_body = response.body
            record.response_headers = response.headers
            await session.commit()

    async def release(self, key: str, tenant_id: str) -> None:
        """Forget an in-flight record so the caller may retry the key."""
        async with self._session("release") as session:
            await session.execute(
                delete(IdempotencyRecord).where(
                    IdempotencyRecord.key == key,
                    IdempotencyRecord.tenant_id == tenant_id,
                    IdempotencyRecord.status_code.is_(None),
                )
            )
            await session.commit()

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete every record past ``expires_at``. Returns the count."""
        cutoff = now or self._clock()
        async with self._session("purge_expired") as session:
            result = await session.execute(
                delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= cutoff)
            )
            await session.commit()
        purged = result.rowcount or 0
        logger.info(
            "Purged expired idempotency records",
            extra={"purged": purged, "cutoff": cutoff.isoformat(), "operation": "store.purge_expired"},
        )
        return purged


class InMemoryIdempotencyStore:
    """Process-local store.

    Every method completes without awaiting, so check-and-insert is atomic
    with respect to other coroutines on the same event loop.

    Args:
        scope_by_tenant: Namespace keys per tenant. The fallback store keys
            by Idempotency-Key alone.
        enforce_ttl: Treat records past ``expires_at`` as absent.
        clock: Time source for TTL checks.
    """

    def __init__(
        self,
        *,
        scope_by_tenant: bool = False,
        enforce_ttl: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._entries: dict[Any, IdempotencyEntry] = {}
        self._scope_by_tenant = scope_by_tenant
        self._enforce_ttl = enforce_ttl
        self._clock = clock

    def _slot(self, key: str, tenant_id: str) -> Any:
        return (tenant_id, key) if self._scope_by_tenant else key

    def _live(self, slot: Any) -> IdempotencyEntry | None:
        entry = self._entries.get(slot)
        if entry is not None and self._enforce_ttl and entry.expires_at <= self._clock():
            del self._entries[slot]
            return None
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str, tenant_id: str) -> IdempotencyEntry | None:
        return self._live(self._slot(key, tenant_id))

    async def create_if_absent(self, entry: IdempotencyEntry) -> bool:
        slot = self._slot(entry.key, entry.tenant_id)
        if self._live(slot) is not None:
            return False
        self._entries[slot] = entry
        return True

    async def complete(self, key: str, tenant_id: str, response: StoredResponse) -> None:
        slot = self._slot(key, tenant_id)
        entry = self._entries.get(slot)
        if entry is not None:
            self._entries[slot] = replace(entry, response=response)

    async def release(self, key: str, tenant_id: str) -> None:
        slot = self._slot(key, tenant_id)
        entry = self._entries.get(slot)
        if entry is not None and not entry.completed:
            del self._entries[slot]

    async def purge_expired(self, now: datetime | None = None) -> int:
        cutoff = now or self._clock()
        expired = [slot for slot, entry in self._entries.items() if entry.expires_at <= cutoff]
        for slot in expired:
            del self._entries[slot]
        return len(expired)


__all__ = [
    "IdempotencyEntry",
    "IdempotencyStore",
    "InMemoryIdempotencyStore",
    "SqlAlchemyIdempotencyStore",
    "StoredResponse",
]

"""Idempotency-Key middleware.

Makes retried mutating requests safe: the first request carrying a key runs
the handler and its response is recorded; a repeat with the same key and the
same request replays that response without running the handler again.

Per (key, tenant) the guard is a small state machine:

    unseen      -> claim the key (create_if_absent) and run the handler
    in flight   -> 409 idempotency-request-in-flight
    completed   -> replay the recorded status, body and content headers
    conflicting -> 409 idempotency-key-conflict (same key, different request)

Requests without the header, or with a method outside the configured set,
pass straight through. If the durable store is unreachable the guard logs a
warning and continues against the process-local fallback store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from starlette.datastructures import Headers
from starlette.responses import JSONResponse

from event_relay.core.exceptions import (
    AppException,
    BadRequestException,
    IdempotencyConflictException,
    IdempotencyInFlightException,
    IdempotencyKeyReusedException,
    PayloadTooLargeException,
    StoreUnavailableError,
)
from event_relay.features.idempotency.hashing import compute_request_hash
from event_relay.features.idempotency.store import IdempotencyEntry, StoredResponse
from event_relay.infra.logging import get_lazy_logger, set_log_context
from event_relay.infra.metrics.prometheus import (
    idempotency_requests_total,
    idempotency_store_fallbacks_total,
)
from event_relay.utils.canonical import utcnow

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from event_relay.core.settings import IdempotencySettings
    from event_relay.features.idempotency.store import IdempotencyStore

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

REPLAYED_HEADER = "idempotent-replayed"

# Response headers that describe the connection or this particular send,
# not the resource, and are therefore not recorded for replay
_UNREPLAYABLE_HEADERS = frozenset(
    {"content-length", "connection", "date", "server", "set-cookie", "transfer-encoding"}
)


@dataclass(slots=True, frozen=True)
class _GuardedRequest:
    key: str
    tenant_id: str
    method: str
    path: str
    request_hash: str


def _declared_length(headers: Headers) -> int:
    """Content-Length of the request, 0 when absent or unparsable."""
    try:
        return int(headers.get("content-length", "0"))
    except ValueError:
        return 0


class IdempotencyMiddleware:
    """Pure ASGI middleware enforcing Idempotency-Key semantics.

    Attributes:
        app: The ASGI application.
        store: Primary record store (durable or in-memory).
        fallback_store: Process-local store used when ``store`` is unreachable;
            None makes an unreachable store fail the request with 503.
        settings: IdempotencySettings (header, TTL, methods, replay policy).

    Example:
        app.add_middleware(
            IdempotencyMiddleware,
            store=SqlAlchemyIdempotencyStore(session_factory),
            fallback_store=InMemoryIdempotencyStore(),
            settings=get_idempotency_settings(),
        )
    """

    def __init__(
        self,
        app: ASGIApp,
        store: IdempotencyStore,
        settings: IdempotencySettings,
        fallback_store: IdempotencyStore | None = None,
        tenant_header: str = "X-Tenant-ID",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.app = app
        self.store = store
        self.fallback_store = fallback_store if settings.fallback_enabled else None
        self.settings = settings
        self.header_name = settings.header_name.lower()
        self.tenant_header = tenant_header.lower()
        self.ttl = timedelta(seconds=settings.ttl_seconds)
        self._clock = clock

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.settings.enabled:
            await self.app(scope, receive, send)
            return

        method = scope["method"].upper()
        if method not in self.settings.methods:
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        raw_key = headers.get(self.header_name)
        if raw_key is None:
            idempotency_requests_total.labels(outcome="bypass").inc()
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        key = raw_key.strip()
        if not key or len(key) > self.settings.max_key_length:
            exc = BadRequestException(
                f"{self.settings.header_name} must be 1-{self.settings.max_key_length} characters",
                type="invalid-idempotency-key",
                instance=path,
            )
            await self._send_problem(exc, scope, receive, send)
            return

        limit = self.settings.max_body_bytes
        body = None
        if _declared_length(headers) <= limit:
            body = await self._read_body(receive, limit)
        if body is None:
            idempotency_requests_total.labels(outcome="too_large").inc()
            exc = PayloadTooLargeException(
                f"Request body exceeds {limit} bytes",
                instance=path,
            )
            await self._send_problem(exc, scope, receive, send)
            return

        state = scope.get("state") or {}
        tenant_id = state.get("tenant_id") or headers.get(self.tenant_header) or ""
        query_string = scope.get("query_string") if self.settings.include_query_params else None
        request = _GuardedRequest(
            key=key,
            tenant_id=tenant_id,
            method=method,
            path=path,
            request_hash=compute_request_hash(method, path, body, query_string=query_string),
        )
        set_log_context(idempotency_key=key)

        try:
            store, existing = await self._claim_with_fallback(request)
        except AppException as exc:
            await self._send_problem(exc, scope, receive, send)
            return

        if existing is not None and existing.response is not None:
            idempotency_requests_total.labels(outcome="replayed").inc()
            logger.info(
                "Replaying recorded response",
                extra={
                    "idempotency_key": key,
                    "tenant_id": tenant_id,
                    "status_code": existing.response.status_code,
                    "path": path,
                },
            )
            await self._send_replay(existing.response, send)
            return

        idempotency_requests_total.labels(outcome="new").inc()
        await self._run_and_record(store, request, body, scope, receive, send)

    async def _claim_with_fallback(
        self, request: _GuardedRequest
    ) -> tuple[IdempotencyStore, IdempotencyEntry | None]:
        try:
            return self.store, await self._claim(self.store, request)
        except StoreUnavailableError as e:
            if self.fallback_store is None:
                logger.error(
                    "Idempotency store unavailable and fallback disabled",
                    extra={"idempotency_key": request.key, "error": str(e)},
                )
                raise AppException(
                    status_code=503,
                    detail="Idempotency store unavailable",
                    type="idempotency-store-unavailable",
                    instance=request.path,
                ) from e
            idempotency_store_fallbacks_total.inc()
            logger.warning(
                "Idempotency store unavailable, using process-local fallback",
                extra={
                    "idempotency_key": request.key,
                    "tenant_id": request.tenant_id,
                    "error": str(e),
                },
            )
            return self.fallback_store, await self._claim(self.fallback_store, request)

    async def _claim(
        self, store: IdempotencyStore, request: _GuardedRequest
    ) -> IdempotencyEntry | None:
        """Resolve the key's state.

        Returns:
            None when this request claimed the key and should run the handler,
            or the completed entry to replay.

        Raises:
            IdempotencyConflictException: Key used for a different request.
            IdempotencyInFlightException: Same request still being processed.
            IdempotencyKeyReusedException: Completed key while replay is off.
        """
        existing = await store.get(request.key, request.tenant_id)
        if existing is None:
            claimed = await store.create_if_absent(
                IdempotencyEntry(
                    key=request.key,
                    tenant_id=request.tenant_id,
                    request_hash=request.request_hash,
                    method=request.method,
                    path=request.path,
                    expires_at=self._clock() + self.ttl,
                )
            )
            if claimed:
                return None
            # Lost the insert race: classify against the winner's record
            existing = await store.get(request.key, request.tenant_id)
            if existing is None:
                raise IdempotencyInFlightException(request.key, instance=request.path)

        if existing.request_hash != request.request_hash:
            idempotency_requests_total.labels(outcome="conflict").inc()
            logger.warning(
                "Idempotency key reused with a different request",
                extra={"idempotency_key": request.key, "tenant_id": request.tenant_id},
            )
            raise IdempotencyConflictException(request.key, instance=request.path)
        if not existing.completed:
            idempotency_requests_total.labels(outcome="in_flight").inc()
            raise IdempotencyInFlightException(request.key, instance=request.path)
        if not self.settings.replay_responses:
            idempotency_requests_total.labels(outcome="reused").inc()
            raise IdempotencyKeyReusedException(request.key, instance=request.path)
        return existing

    async def _run_and_record(
        self,
        store: IdempotencyStore,
        request: _GuardedRequest,
        body: bytes,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        status_code: int | None = None
        response_headers: dict[str, str] = {}
        chunks: list[bytes] = []
        body_sent = False

        async def replay_receive() -> Message:
            nonlocal body_sent
            if not body_sent:
                body_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        async def capture_send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                for name, value in message.get("headers", []):
                    header = name.decode("latin-1").lower()
                    if header not in _UNREPLAYABLE_HEADERS:
                        response_headers[header] = value.decode("latin-1")
            elif message["type"] == "http.response.body":
                chunks.append(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, replay_receive, capture_send)
        except Exception:
            await self._release(store, request)
            raise

        if status_code is None:
            await self._release(store, request)
            return

        response = StoredResponse(
            status_code=status_code, body=b"".join(chunks), headers=response_headers
        )
        try:
            await store.complete(request.key, request.tenant_id, response)
        except StoreUnavailableError as e:
            logger.warning(
                "Could not record idempotent response",
                extra={"idempotency_key": request.key, "error": str(e)},
            )
            return
        lazy_logger.debug(
            lambda: f"idempotency.record: key={request.key!r} status={status_code} bytes={len(response.body)}"
        )

    async def _release(self, store: IdempotencyStore, request: _GuardedRequest) -> None:
        try:
            await store.release(request.key, request.tenant_id)
        except StoreUnavailableError as e:
            logger.warning(
                "Could not release idempotency key",
                extra={"idempotency_key": request.key, "error": str(e)},
            )
            return
        logger.info(
            "Released idempotency key after handler failure",
            extra={"idempotency_key": request.key, "tenant_id": request.tenant_id},
        )

    @staticmethod
    async def _read_body(receive: Receive, limit: int) -> bytes | None:
        """Buffer the request body, or return None once it passes ``limit``."""
        chunks: list[bytes] = []
        size = 0
        while True:
            message = await receive()
            if message["type"] != "http.request":
                break
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > limit:
                return None
            chunks.append(chunk)
            if not message.get("more_body", False):
                break
        return b"".join(chunks)

    @staticmethod
    async def _send_replay(response: StoredResponse, send: Send) -> None:
        headers = [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in response.headers.items()
        ]
        headers.append((b"content-length", str(len(response.body)).encode("latin-1")))
        headers.append((REPLAYED_HEADER.encode("latin-1"), b"true"))
        await send({"type": "http.response.start", "status": response.status_code, "headers": headers})
        await send({"type": "http.response.body", "body": response.body, "more_body": False})

    @staticmethod
    async def _send_problem(exc: AppException, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(exc.to_problem(), status_code=exc.status_code)
        await response(scope, receive, send)


__all__ = ["REPLAYED_HEADER", "IdempotencyMiddleware"]

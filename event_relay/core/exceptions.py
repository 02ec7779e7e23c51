"""Application exception hierarchy.

Every exception renders as an RFC 7807 problem document through the handlers
in ``event_relay.app.exception_handlers``.
"""

from __future__ import annotations

from typing import Any

_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


class AppException(Exception):
    """Base application exception.

    Attributes:
        status_code: HTTP status code for the error.
        detail: Human-readable error message.
        type: Problem type identifier.
        title: Short summary of the problem type.
        instance: URI of the specific occurrence (usually the request path).
        extra: Additional members merged into the problem document.

    Example:
        raise AppException(
            status_code=404,
            detail="Subscription 42 not found",
            type="subscription-not-found",
            extra={"subscription_id": "42"},
        )
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        type: str = "about:blank",
        title: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.type = type
        self.title = title or _TITLES.get(status_code, "Error")
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)

    def to_problem(self) -> dict[str, Any]:
        """Render the RFC 7807 problem document."""
        problem: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "status": self.status_code,
            "detail": self.detail,
        }
        if self.instance:
            problem["instance"] = self.instance
        problem.update(self.extra)
        return problem


class NotFoundException(AppException):
    """Raised when a requested resource does not exist."""

    def __init__(
        self,
        detail: str,
        type: str = "not-found",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(404, detail, type=type, title="Not Found", instance=instance, extra=extra)


class ValidationException(AppException):
    """Raised for semantically invalid input that passed schema validation."""

    def __init__(
        self,
        detail: str,
        type: str = "validation-error",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            422, detail, type=type, title="Validation Error", instance=instance, extra=extra
        )


class BadRequestException(AppException):
    """Raised for malformed requests (bad subscription config, oversized keys)."""

    def __init__(
        self,
        detail: str,
        type: str = "bad-request",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(400, detail, type=type, title="Bad Request", instance=instance, extra=extra)


class PayloadTooLargeException(AppException):
    """Raised when a request body exceeds a configured size limit."""

    def __init__(
        self,
        detail: str,
        type: str = "payload-too-large",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            413, detail, type=type, title="Payload Too Large", instance=instance, extra=extra
        )


class ConflictException(AppException):
    """Raised when a request conflicts with the current state of a resource."""

    def __init__(
        self,
        detail: str,
        type: str = "conflict",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(409, detail, type=type, title="Conflict", instance=instance, extra=extra)


class IdempotencyConflictException(ConflictException):
    """Same Idempotency-Key reused with a different request."""

    def __init__(self, key: str, instance: str | None = None) -> None:
        super().__init__(
            detail="Idempotency-Key was already used with a different request payload",
            type="idempotency-key-conflict",
            instance=instance,
            extra={"idempotency_key": key},
        )


class IdempotencyInFlightException(ConflictException):
    """Same Idempotency-Key and payload while the original is still running."""

    def __init__(self, key: str, instance: str | None = None) -> None:
        super().__init__(
            detail="A request with this Idempotency-Key is already being processed",
            type="idempotency-request-in-flight",
            instance=instance,
            extra={"idempotency_key": key},
        )


class IdempotencyKeyReusedException(ConflictException):
    """Completed Idempotency-Key submitted again while replay is disabled."""

    def __init__(self, key: str, instance: str | None = None) -> None:
        super().__init__(
            detail="This Idempotency-Key has already been used",
            type="idempotency-key-reused",
            instance=instance,
            extra={"idempotency_key": key},
        )


class StoreUnavailableError(Exception):
    """The durable idempotency store could not be reached.

    Raised for connectivity failures only. Uniqueness violations are reported
    through the store's return values instead.
    """


__all__ = [
    "AppException",
    "BadRequestException",
    "ConflictException",
    "IdempotencyConflictException",
    "IdempotencyInFlightException",
    "IdempotencyKeyReusedException",
    "NotFoundException",
    "PayloadTooLargeException",
    "StoreUnavailableError",
    "ValidationException",
]

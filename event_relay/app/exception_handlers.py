"""Global exception handlers for FastAPI application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from event_relay.core.database import NotFoundError
from event_relay.core.exceptions import AppException
from event_relay.core.schemas.problem_details import (
    FieldError,
    ProblemDetails,
    ValidationProblemDetails,
)
from event_relay.infra.metrics.prometheus import app_errors_total

logger = logging.getLogger(__name__)


def _get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _problem_response(
    request: Request, status_code: int, problem: dict, headers: dict[str, str] | None = None
) -> JSONResponse:
    request_id = _get_request_id(request)
    if request_id:
        problem["request_id"] = request_id
    app_errors_total.labels(error_type=problem.get("type", "about:blank"), status_code=status_code).inc()
    return JSONResponse(status_code=status_code, content=jsonable_encoder(problem), headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render an AppException as an RFC 7807 problem document."""
    logger.warning(
        "Application exception occurred",
        extra={
            "path": request.url.path,
            "method": request.method,
            "exception_type": exc.type,
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )
    problem = exc.to_problem()
    problem.setdefault("instance", request.url.path)
    return _problem_response(request, exc.status_code, problem)


async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Map repository NotFoundError to 404.

    Cross-tenant lookups raise the same error, so another tenant's resources
    are indistinguishable from missing ones.
    """
    lookup = {k: str(v) for k, v in exc.identifier.items()}
    logger.info(
        "Resource not found",
        extra={"path": request.url.path, "model": exc.model_name, **lookup},
    )
    problem = ProblemDetails(
        type="not-found",
        title="Not Found",
        status=status.HTTP_404_NOT_FOUND,
        detail=f"{exc.model_name} not found",
        instance=request.url.path,
    ).model_dump(exclude_none=True)
    return _problem_response(request, status.HTTP_404_NOT_FOUND, problem)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation errors with field-level detail."""
    errors = [
        FieldError(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            type=error["type"],
            value=error.get("input"),
        )
        for error in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_count": len(errors),
        },
    )
    problem = ValidationProblemDetails(
        type="validation-error",
        title="Validation Error",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"Request validation failed for {len(errors)} field(s)",
        instance=request.url.path,
        errors=errors,
    ).model_dump(exclude_none=True)
    return _problem_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, problem)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log the traceback, return a generic 500."""
    logger.error(
        "Unexpected exception occurred",
        extra={
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
        },
        exc_info=True,
    )
    problem = ProblemDetails(
        type="internal-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while processing your request",
        instance=request.url.path,
    ).model_dump(exclude_none=True)
    return _problem_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, problem)


def configure_exception_handlers(app: FastAPI) -> None:
    """Register the problem-details exception handlers.

    Example:
        app = FastAPI()
        configure_exception_handlers(app)
    """
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(NotFoundError, not_found_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers configured")


__all__ = ["configure_exception_handlers"]

"""Health check API endpoints.

- Liveness: /health/live - Is the process alive?
- Readiness: /health/ready - Can the database and the retry scheduler be used?
- Aggregate: /health - Same checks as readiness.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from event_relay.features.health.schemas import LivenessResponse, ReadinessResponse
from event_relay.infra.database import get_session_factory
from event_relay.utils.canonical import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live", response_model=LivenessResponse, summary="Liveness probe")
async def liveness(request: Request) -> LivenessResponse:
    settings = request.app.state.settings
    return LivenessResponse(alive=True, timestamp=utcnow(), service=settings.logging.service_name)


@router.get(
    "",
    response_model=ReadinessResponse,
    summary="Aggregate health",
    responses={503: {"model": ReadinessResponse, "description": "Service not ready"}},
)
@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    responses={503: {"model": ReadinessResponse, "description": "Service not ready"}},
)
async def readiness(request: Request, response: Response) -> ReadinessResponse:
    """Check the database connection and the delayed-task scheduler."""
    checks: dict[str, bool] = {}

    factory = getattr(request.app.state, "session_factory", None) or get_session_factory()
    try:
        async with factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Readiness check failed: database", extra={"error": str(e)})
        checks["database"] = False

    queue = getattr(request.app.state, "task_queue", None)
    checks["scheduler"] = bool(getattr(queue, "running", True))

    ready = all(checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(ready=ready, checks=checks, timestamp=utcnow())

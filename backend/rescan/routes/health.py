"""
Rescan Backend — Health Check Route
====================================

What:  Health endpoint for Docker health checks and load balancer probes.
How:   Pings the ledger database and asks the vision provider for its status.

Status levels:
    - healthy:   database and vision provider available        (HTTP 200)
    - degraded:  vision unavailable or circuit open; scans fail
                 but the ledger can still be read               (HTTP 200)
    - unhealthy: ledger database unreachable                    (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Request, Response

from rescan import __version__
from rescan.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.monotonic()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    database = request.app.state.database
    vision = request.app.state.vision

    db_status = "connected"
    vision_status = "available"
    overall = "healthy"

    if not await database.ping():
        db_status = "disconnected"
        overall = "unhealthy"

    circuit_breaker = getattr(vision, "circuit_breaker", None)
    if circuit_breaker is not None and circuit_breaker.state == circuit_breaker.OPEN:
        vision_status = "circuit_open"
    elif not await vision.health_check():
        vision_status = "unavailable"

    if vision_status != "available" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        vision=vision_status,
        vision_provider=vision.name,
        uptime_seconds=round(time.monotonic() - _start_time, 2),
    )

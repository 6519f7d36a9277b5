"""
Library API — Health Check and Banner Routes
==============================================

What:  GET / (plain-text banner) and GET /health (store connectivity).
Who:   Called by Docker health checks, load balancers, and humans.

Status levels:
    - healthy:   store reachable (HTTP 200)
    - unhealthy: store unreachable (HTTP 503, stop routing traffic)
"""

import logging
import time

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import PlainTextResponse

from library_api import __version__
from library_api.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()

BANNER = "Library Management API is running. Available resources: /api/categories, /api/books"


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def banner() -> str:
    return BANNER


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Store unreachable", "model": HealthResponse}},
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    """
    Probe the store with SELECT 1 and report aggregate status.
    """
    db_status = "connected"
    overall = "healthy"

    try:
        await request.app.state.database.ping()
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning("Health check: database unreachable: %s", str(e))

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )

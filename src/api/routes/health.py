"""
Health check endpoint.
"""

import datetime as dt

import structlog
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from src.api.dependencies import get_database_or_none
from src.api.models import HealthResponse
from src.config.settings import get_settings
from src.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.api_route(
    "/health",
    methods=["GET", "HEAD"],
    response_model=HealthResponse,
    responses={500: {"model": HealthResponse, "description": "Database unreachable"}},
    summary="Service health check",
    description="Check database connectivity and which feed providers are configured.",
)
async def health_check(
    request: Request,
    db: Database | None = Depends(get_database_or_none),
) -> Response:
    """
    Status logic:
    - error (500): database is unreachable
    - ok: database answers ``SELECT 1``
    """
    settings = get_settings()

    database_connected = db is not None and await db.health_check()
    if not database_connected:
        logger.warning("Health check failed: database unreachable")

    health = HealthResponse(
        status="ok" if database_connected else "error",
        database_connected=database_connected,
        feed_api_configured=settings.twitter_configured,
        telegram_configured=settings.telegram_configured,
        environment=settings.environment,
        timestamp=dt.datetime.now(dt.timezone.utc),
    )
    status_code = 200 if database_connected else 500

    if request.method == "HEAD":
        return Response(status_code=status_code)

    return JSONResponse(
        status_code=status_code,
        content=health.model_dump(mode="json", by_alias=True),
    )

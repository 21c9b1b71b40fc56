"""
Sync triggers for the scheduler.

- POST|GET /sync: incremental sync of every configured source
- POST /backfill?platform=&handle=: backfill one source

Both require ``Authorization: Bearer <CRON_SECRET>`` and are excluded from
the request timeout, since a backfill can page through a long history.

On success the body is ``{message, inserted}``. When any source fails the
status is 500 and the body is ``{message: "", inserted, error}``, where
``inserted`` still reports the counts committed before the failure (it is
not emptied). Committed batches are not rolled back, and the next run
resumes from them.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
import structlog

from src.api.auth import verify_sync_secret
from src.api.dependencies import get_sync_service
from src.api.models import ErrorResponse, SyncResponse
from src.config.settings import get_settings
from src.config.sources import parse_source, parse_sources
from src.ingestion.schemas import Source, SyncMode
from src.services.sync_service import SUCCESS_MESSAGE, SyncReport, SyncService

logger = structlog.get_logger(__name__)
router = APIRouter()

_responses = {
    401: {"model": ErrorResponse, "description": "Missing or invalid secret"},
    500: {"model": SyncResponse, "description": "One or more sources failed"},
}


def _report_response(report: SyncReport) -> JSONResponse:
    if report.ok:
        body = SyncResponse(message=SUCCESS_MESSAGE, inserted=report.inserted)
        return JSONResponse(content=body.model_dump(exclude={"error"}))

    body = SyncResponse(
        message="",
        inserted=report.inserted,
        error=report.error_message(),
    )
    return JSONResponse(status_code=500, content=body.model_dump())


async def _run(service: SyncService, sources: list[Source], mode: SyncMode) -> JSONResponse:
    report = await service.run(sources, mode)
    logger.info(
        "Sync request completed",
        mode=mode.value,
        inserted=report.inserted,
        failures=len(report.failures),
    )
    return _report_response(report)


@router.api_route(
    "/sync",
    methods=["GET", "POST"],
    response_model=SyncResponse,
    responses=_responses,
    summary="Incremental sync of all configured sources",
    dependencies=[Depends(verify_sync_secret)],
)
async def sync(service: SyncService = Depends(get_sync_service)) -> JSONResponse:
    """Run an incremental sync; a failure returns 500 with the partial counts."""
    sources = parse_sources(get_settings().sources)
    return await _run(service, sources, SyncMode.INCREMENTAL)


@router.post(
    "/backfill",
    response_model=SyncResponse,
    responses={
        **_responses,
        400: {"model": ErrorResponse, "description": "Missing or unknown parameters"},
    },
    summary="Backfill one source's history",
    dependencies=[Depends(verify_sync_secret)],
)
async def backfill(
    platform: str | None = Query(default=None, description="twitter or telegram"),
    handle: str | None = Query(default=None, description="Username or channel handle"),
    service: SyncService = Depends(get_sync_service),
) -> JSONResponse:
    if not platform or not handle:
        return JSONResponse(
            status_code=400,
            content={"error": "Missing platform or handle parameter"},
        )

    try:
        source = parse_source(f"{platform}:{handle}")
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    return await _run(service, [source], SyncMode.BACKFILL)

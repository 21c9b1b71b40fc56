"""
Home feed: the most recent archived items across both platforms.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from src.api.dependencies import get_archive_search, get_response_cache
from src.api.models import FeedResponse
from src.api.responses import cached_feed_response
from src.config.settings import get_settings
from src.storage.cache import ResponseCache
from src.storage.search import ArchiveSearch

router = APIRouter()


def parse_limit(value: str | None, default: int) -> int:
    """Positive integer limit; anything else falls back to ``default``."""
    if value is None:
        return default
    try:
        limit = int(value)
    except ValueError:
        return default
    return limit if limit > 0 else default


@router.get(
    "/home",
    response_model=FeedResponse,
    responses={500: {"model": FeedResponse, "description": "Feed error"}},
    summary="Latest archived items",
)
async def home(
    limit: str | None = Query(default=None, description="Number of items"),
    archive: ArchiveSearch = Depends(get_archive_search),
    cache: ResponseCache = Depends(get_response_cache),
) -> JSONResponse:
    """Return the ``limit`` newest tweets and messages combined."""
    resolved = parse_limit(limit, get_settings().home_default_limit)

    return await cached_feed_response(
        cache,
        route="home",
        param=str(resolved),
        load=lambda: archive.latest(resolved),
        failure_message="Failed to load latest items",
    )

"""
Full-text search over the archive with thread expansion.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
import structlog

from src.api.dependencies import get_archive_search, get_response_cache
from src.api.models import FeedResponse
from src.api.responses import cached_feed_response
from src.storage.cache import ResponseCache
from src.storage.search import ArchiveSearch, SearchQueryBuilder

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get(
    "/search",
    response_model=FeedResponse,
    responses={
        400: {"model": FeedResponse, "description": "Missing query parameter"},
        500: {"model": FeedResponse, "description": "Search error"},
    },
    summary="Search archived tweets and messages",
    description="""
    Find tweets and Telegram messages whose text matches the query, expanded
    to every item in the same conversation or reply thread.

    The query uses web search syntax: `"exact phrase"`, `or`, `-excluded`.
    Tweets are returned newest-first, messages oldest-first.
    """,
)
async def search(
    query: str | None = Query(default=None, description="Search text"),
    archive: ArchiveSearch = Depends(get_archive_search),
    cache: ResponseCache = Depends(get_response_cache),
) -> JSONResponse:
    normalized = SearchQueryBuilder.normalize_query(query)
    if normalized is None:
        return JSONResponse(
            status_code=400,
            content={"tweets": [], "messages": [], "error": "Missing query parameter"},
        )

    logger.debug("Search request", query=normalized)
    return await cached_feed_response(
        cache,
        route="search",
        param=normalized,
        load=lambda: archive.search(normalized),
        failure_message="Search failed",
    )

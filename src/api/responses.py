"""
Cached JSON responses for the read endpoints.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi.responses import JSONResponse

from src.api.models import FeedResponse
from src.storage.cache import ResponseCache
from src.storage.search import SearchResults

logger = structlog.get_logger(__name__)

CACHE_STATUS_HEADER = "X-Cache-Status"


def feed_body(results: SearchResults) -> dict[str, Any]:
    """Serialize search results into the wire shape."""
    response = FeedResponse.model_validate(
        {"tweets": results.tweets, "messages": results.messages}
    )
    return response.model_dump(mode="json", exclude={"error"})


async def cached_feed_response(
    cache: ResponseCache,
    route: str,
    param: str,
    load: Callable[[], Awaitable[SearchResults]],
    failure_message: str,
) -> JSONResponse:
    """
    Serve a feed from the cache, or load, cache and serve it.

    Failures are never cached; they return 500 with empty lists and a
    sanitized ``error``.
    """
    cached = await cache.get(route, param)
    if cached is not None:
        logger.debug("Cache hit", route=route)
        return JSONResponse(
            content=cached,
            headers={
                CACHE_STATUS_HEADER: "HIT",
                "Cache-Control": f"public, max-age={cache.ttl_seconds}",
            },
        )

    try:
        body = feed_body(await load())
    except Exception as e:
        logger.error(f"{route} failed", error=str(e), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"tweets": [], "messages": [], "error": failure_message},
        )

    await cache.set(route, param, body)
    return JSONResponse(
        content=body,
        headers={
            CACHE_STATUS_HEADER: "MISS",
            "Cache-Control": f"public, max-age={cache.ttl_seconds}",
        },
    )

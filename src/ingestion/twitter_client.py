"""
twitterapi.io client for archiving tweets.

Uses the advanced search endpoint, which only returns the latest tweets
and walks backwards in time. Sync direction is therefore expressed with
``since_id:`` (newer than the watermark) and ``max_id:`` (older than the
watermark) search operators.

Handles:
- Cursor pagination (``has_next_page`` / ``next_cursor``)
- API-key header authentication
- Non-2xx responses raised as FeedProviderError (no retry)
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from src.config.settings import get_settings
from src.ingestion.http_client import FeedProviderError, HTTPClient, RetryConfig

logger = structlog.get_logger(__name__)

ADVANCED_SEARCH_PATH = "/twitter/tweet/advanced_search"


@dataclass
class SearchPage:
    """One page of advanced search results."""

    tweets: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None

    @property
    def has_next_page(self) -> bool:
        return self.next_cursor is not None


class TwitterApiClient:
    """
    Async client for the tweet feed provider.

    Usage:
        async with TwitterApiClient(api_key="...") as client:
            page = await client.search("from:zachxbt", cursor="")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        retry_config: RetryConfig | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._api_key = api_key or settings.twitterapi_api_key
        self._base_url = (base_url or settings.twitterapi_base_url).rstrip("/")
        self._http = HTTPClient(
            retry_config=retry_config or RetryConfig(
                max_retries=settings.max_http_retries,
                max_backoff_seconds=settings.max_backoff_seconds,
            ),
            timeout=timeout or settings.http_timeout_seconds,
        )

        if not self._api_key:
            logger.warning("Twitter API key not configured, requests will fail")

    async def __aenter__(self) -> "TwitterApiClient":
        await self._http.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self._http.__aexit__(exc_type, exc_val, exc_tb)

    async def search(self, query: str, cursor: str = "") -> SearchPage:
        """
        Fetch one page of latest tweets matching ``query``.

        Args:
            query: Advanced search query (e.g. "from:user since_id:123")
            cursor: Opaque pagination cursor; "" for the first page

        Returns:
            SearchPage with raw tweet payloads

        Raises:
            FeedProviderError: On non-2xx status or malformed body
        """
        response = await self._http.get(
            f"{self._base_url}{ADVANCED_SEARCH_PATH}",
            params={"queryType": "Latest", "query": query, "cursor": cursor},
            headers={"X-API-Key": self._api_key or ""},
        )

        try:
            data = response.json()
        except ValueError as e:
            raise FeedProviderError(
                "Twitter API returned a non-JSON body",
                status_code=response.status_code,
            ) from e

        tweets = data.get("tweets") or []
        next_cursor = data.get("next_cursor") if data.get("has_next_page") else None

        logger.debug(
            "Fetched tweet page",
            query=query,
            tweets=len(tweets),
            has_more=next_cursor is not None,
        )

        # An empty cursor with has_next_page would loop forever
        return SearchPage(tweets=tweets, next_cursor=next_cursor or None)

"""
Full-text search with thread expansion, and the cross-platform home feed.

A search first finds items whose body matches the query, then returns every
item sharing a thread with any match so replies render with their context:

- tweets share a thread through ``COALESCE(conversation_id, id)``
- messages share a thread through ``COALESCE(thread_id, id)``

Tweets come back newest-first; messages oldest-first so a thread reads in
order. Ordering threads relative to each other is left to the client.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import asyncpg

from src.observability.metrics import get_metrics
from src.storage.database import Database

logger = logging.getLogger(__name__)

TEXT_SEARCH_CONFIG = "english"

_AUTHOR_OBJECT = """
    jsonb_build_object(
        'id', u.id,
        'username', u.username,
        'display_name', u.display_name,
        'avatar_url', u.avatar_url,
        'follower_count', u.follower_count,
        'following_count', u.following_count,
        'bio', u.bio
    ) AS author"""

_CHANNEL_OBJECT = """
    jsonb_build_object(
        'id', c.id,
        'title', c.title,
        'about', c.about,
        'channel_username', c.channel_username,
        'admin_usernames', c.admin_usernames
    ) AS channel"""

_TWEET_COLUMNS = """
    t.id, t.url, t.text, t.author_id, t.conversation_id, t.created_at,
    t.mentions, t.urls, t.media,"""

_MESSAGE_COLUMNS = """
    m.id, m.message_id, m.channel_id, m.url, m.text, m.reply_to_message_id,
    m.thread_id, m.created_at, m.has_media, m.mentions, m.urls,"""


class SearchQueryBuilder:
    """
    Builds the SQL for search and the home feed.

    Usage:
        builder = SearchQueryBuilder()
        rows = await db.fetch(builder.tweet_search(), "tornado cash")
    """

    def __init__(self, config: str = TEXT_SEARCH_CONFIG):
        self.config = config

    @staticmethod
    def normalize_query(query: str | None) -> str | None:
        """Collapse whitespace; None for a missing or blank query."""
        if query is None:
            return None
        normalized = " ".join(query.split())
        return normalized or None

    def _matches(self, column: str) -> str:
        return (
            f"to_tsvector('{self.config}', {column}) "
            f"@@ websearch_to_tsquery('{self.config}', $1)"
        )

    def tweet_search(self) -> str:
        """Tweets in any conversation containing a match, newest-first."""
        return f"""
            WITH matched AS (
                SELECT DISTINCT COALESCE(conversation_id, id) AS thread_key
                FROM tw_posts
                WHERE {self._matches("text")}
            )
            SELECT {_TWEET_COLUMNS} {_AUTHOR_OBJECT}
            FROM tw_posts t
            JOIN tw_users u ON u.id = t.author_id
            WHERE COALESCE(t.conversation_id, t.id) IN (SELECT thread_key FROM matched)
            ORDER BY t.created_at DESC, t.id DESC
        """

    def message_search(self) -> str:
        """Messages in any thread containing a match, oldest-first."""
        return f"""
            WITH matched AS (
                SELECT DISTINCT COALESCE(thread_id, id) AS thread_key
                FROM tg_messages
                WHERE {self._matches("text")}
            )
            SELECT {_MESSAGE_COLUMNS} {_CHANNEL_OBJECT}
            FROM tg_messages m
            JOIN tg_channels c ON c.id = m.channel_id
            WHERE COALESCE(m.thread_id, m.id) IN (SELECT thread_key FROM matched)
            ORDER BY m.created_at ASC, m.message_id ASC
        """

    @staticmethod
    def latest_items() -> str:
        """Ids and kinds of the N most recent items across both platforms."""
        return """
            SELECT id, item_type
            FROM (
                SELECT 'tweet' AS item_type, id::text AS id, created_at FROM tw_posts
                UNION ALL
                SELECT 'message' AS item_type, id, created_at FROM tg_messages
            ) latest
            ORDER BY created_at DESC
            LIMIT $1
        """

    @staticmethod
    def tweets_by_ids() -> str:
        return f"""
            SELECT {_TWEET_COLUMNS} {_AUTHOR_OBJECT}
            FROM tw_posts t
            JOIN tw_users u ON u.id = t.author_id
            WHERE t.id = ANY($1::bigint[])
            ORDER BY t.created_at DESC
        """

    @staticmethod
    def messages_by_ids() -> str:
        return f"""
            SELECT {_MESSAGE_COLUMNS} {_CHANNEL_OBJECT}
            FROM tg_messages m
            JOIN tg_channels c ON c.id = m.channel_id
            WHERE m.id = ANY($1::text[])
            ORDER BY m.created_at DESC
        """


@dataclass
class SearchResults:
    """Tweets and messages returned together."""

    tweets: list[dict[str, Any]] = field(default_factory=list)
    messages: list[dict[str, Any]] = field(default_factory=list)


class ArchiveSearch:
    """Read side of the archive: search and home feed."""

    def __init__(self, database: Database, builder: SearchQueryBuilder | None = None):
        self._db = database
        self._builder = builder or SearchQueryBuilder()

    async def search(self, query: str) -> SearchResults:
        """
        Search both platforms and expand matches to their whole threads.

        The two queries run concurrently on separate pooled connections.

        Args:
            query: Free-text query (web search syntax: quotes, OR, -term)

        Returns:
            SearchResults; empty lists when nothing matches
        """
        started = time.perf_counter()

        tweet_rows, message_rows = await asyncio.gather(
            self._db.fetch(self._builder.tweet_search(), query),
            self._db.fetch(self._builder.message_search(), query),
        )

        get_metrics().record_storage_latency("search", time.perf_counter() - started)
        logger.debug(
            f"Search '{query}' returned {len(tweet_rows)} tweets, "
            f"{len(message_rows)} messages"
        )
        return SearchResults(
            tweets=[dict(row) for row in tweet_rows],
            messages=[dict(row) for row in message_rows],
        )

    async def latest(self, limit: int) -> SearchResults:
        """
        The ``limit`` most recent items across both platforms, hydrated.

        Args:
            limit: Total number of items (tweets plus messages)
        """
        started = time.perf_counter()

        rows = await self._db.fetch(self._builder.latest_items(), limit)
        tweet_ids = [int(r["id"]) for r in rows if r["item_type"] == "tweet"]
        message_ids = [r["id"] for r in rows if r["item_type"] == "message"]

        tweet_rows, message_rows = await asyncio.gather(
            self._fetch_if_any(self._builder.tweets_by_ids(), tweet_ids),
            self._fetch_if_any(self._builder.messages_by_ids(), message_ids),
        )

        get_metrics().record_storage_latency("latest", time.perf_counter() - started)
        return SearchResults(
            tweets=[dict(row) for row in tweet_rows],
            messages=[dict(row) for row in message_rows],
        )

    async def _fetch_if_any(self, sql: str, ids: list[Any]) -> list[asyncpg.Record]:
        if not ids:
            return []
        return await self._db.fetch(sql, ids)

"""
Archive repository for idempotent batch writes.

Every entity class is written with a single ``INSERT ... SELECT FROM
unnest(...)`` statement per batch, binding one native array per column.
JSONB columns travel as arrays of JSON text and are cast server-side.
Authors and channels are mutable and upserted; tweets and messages are
immutable once written and conflicts are ignored.

Tables:
    - tw_users: Tweet authors
    - tw_posts: Tweets
    - tg_channels: Telegram channels
    - tg_messages: Telegram channel messages (composite text ids)
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from src.ingestion.schemas import (
    SyncMode,
    TelegramChannel,
    TelegramMessage,
    Tweet,
    TwitterUser,
)
from src.ingestion.thread_resolver import (
    DEFAULT_MAX_DEPTH,
    PersistedParent,
    apply_thread_ids,
    parent_ids,
    resolve_threads,
)
from src.observability.metrics import get_metrics
from src.storage.database import Database

logger = logging.getLogger(__name__)

_WATERMARK_AGGREGATE = {
    SyncMode.BACKFILL: "MIN",
    SyncMode.INCREMENTAL: "MAX",
}

SCHEMA_SQL = """
-- Tweet authors (mutable profile fields overwritten on every sighting)
CREATE TABLE IF NOT EXISTS tw_users (
    id BIGINT PRIMARY KEY,
    username TEXT NOT NULL,
    display_name TEXT NOT NULL DEFAULT '',
    avatar_url TEXT,
    follower_count BIGINT NOT NULL DEFAULT 0,
    following_count BIGINT NOT NULL DEFAULT 0,
    bio JSONB NOT NULL DEFAULT '{}',
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_tw_users_username
    ON tw_users(lower(username));

-- Tweets
CREATE TABLE IF NOT EXISTS tw_posts (
    id BIGINT PRIMARY KEY,
    url TEXT NOT NULL,
    text TEXT NOT NULL,
    author_id BIGINT NOT NULL REFERENCES tw_users(id),
    conversation_id BIGINT,
    created_at TIMESTAMPTZ NOT NULL,
    mentions JSONB NOT NULL DEFAULT '[]',
    urls JSONB NOT NULL DEFAULT '[]',
    media JSONB NOT NULL DEFAULT '[]',
    archived_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_tw_posts_author_id
    ON tw_posts(author_id);
CREATE INDEX IF NOT EXISTS idx_tw_posts_created_at
    ON tw_posts(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_tw_posts_thread
    ON tw_posts((COALESCE(conversation_id, id)));
CREATE INDEX IF NOT EXISTS idx_tw_posts_text_search
    ON tw_posts USING GIN(to_tsvector('english', text));

-- Telegram channels
CREATE TABLE IF NOT EXISTS tg_channels (
    id BIGINT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    about TEXT,
    channel_username TEXT NOT NULL,
    admin_usernames TEXT[] NOT NULL DEFAULT '{}',
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Telegram messages ("<channel_id>-<message_id>" ids)
CREATE TABLE IF NOT EXISTS tg_messages (
    id TEXT PRIMARY KEY,
    message_id BIGINT NOT NULL,
    channel_id BIGINT NOT NULL REFERENCES tg_channels(id),
    url TEXT NOT NULL,
    text TEXT NOT NULL,
    reply_to_message_id BIGINT,
    thread_id TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    has_media BOOLEAN NOT NULL DEFAULT FALSE,
    mentions JSONB NOT NULL DEFAULT '[]',
    urls JSONB,
    archived_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_tg_messages_channel_message
    ON tg_messages(channel_id, message_id);
CREATE INDEX IF NOT EXISTS idx_tg_messages_created_at
    ON tg_messages(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_tg_messages_thread
    ON tg_messages((COALESCE(thread_id, id)));
CREATE INDEX IF NOT EXISTS idx_tg_messages_text_search
    ON tg_messages USING GIN(to_tsvector('english', text));
"""

UPSERT_USERS_SQL = """
INSERT INTO tw_users (
    id, username, display_name, avatar_url,
    follower_count, following_count, bio
)
SELECT id, username, display_name, avatar_url,
       follower_count, following_count, bio::jsonb
FROM unnest(
    $1::bigint[], $2::text[], $3::text[], $4::text[],
    $5::bigint[], $6::bigint[], $7::text[]
) AS t(
    id, username, display_name, avatar_url,
    follower_count, following_count, bio
)
ON CONFLICT (id) DO UPDATE SET
    username = EXCLUDED.username,
    display_name = EXCLUDED.display_name,
    avatar_url = EXCLUDED.avatar_url,
    follower_count = EXCLUDED.follower_count,
    following_count = EXCLUDED.following_count,
    bio = EXCLUDED.bio,
    updated_at = NOW()
"""

INSERT_TWEETS_SQL = """
INSERT INTO tw_posts (
    id, url, text, author_id, conversation_id, created_at,
    mentions, urls, media
)
SELECT id, url, text, author_id, conversation_id, created_at,
       mentions::jsonb, urls::jsonb, media::jsonb
FROM unnest(
    $1::bigint[], $2::text[], $3::text[], $4::bigint[], $5::bigint[],
    $6::timestamptz[], $7::text[], $8::text[], $9::text[]
) AS t(
    id, url, text, author_id, conversation_id, created_at,
    mentions, urls, media
)
ON CONFLICT (id) DO NOTHING
"""

UPSERT_CHANNEL_SQL = """
INSERT INTO tg_channels (id, title, about, channel_username, admin_usernames)
VALUES ($1, $2, $3, $4, $5)
ON CONFLICT (id) DO UPDATE SET
    title = EXCLUDED.title,
    about = EXCLUDED.about,
    channel_username = EXCLUDED.channel_username,
    admin_usernames = EXCLUDED.admin_usernames,
    updated_at = NOW()
"""

LOCK_CHANNEL_SQL = "SELECT id FROM tg_channels WHERE id = $1 FOR UPDATE"

PERSISTED_PARENTS_SQL = """
SELECT id, message_id, thread_id
FROM tg_messages
WHERE channel_id = $1 AND message_id = ANY($2::bigint[])
"""

INSERT_MESSAGES_SQL = """
INSERT INTO tg_messages (
    id, message_id, channel_id, url, text, reply_to_message_id,
    thread_id, created_at, has_media, mentions, urls
)
SELECT id, message_id, channel_id, url, text, reply_to_message_id,
       thread_id, created_at, has_media, mentions::jsonb, urls::jsonb
FROM unnest(
    $1::text[], $2::bigint[], $3::bigint[], $4::text[], $5::text[],
    $6::bigint[], $7::text[], $8::timestamptz[], $9::boolean[],
    $10::text[], $11::text[]
) AS t(
    id, message_id, channel_id, url, text, reply_to_message_id,
    thread_id, created_at, has_media, mentions, urls
)
ON CONFLICT (id) DO NOTHING
"""


def _dump_entities(entities: list[Any] | None) -> str | None:
    """Serialize an entity list to JSON text for a text[] column binding."""
    if entities is None:
        return None
    return json.dumps([e.model_dump(mode="json") for e in entities])


@dataclass
class BatchOutcome:
    """Result of writing one message batch."""

    submitted: int = 0
    unresolved: list[str] = field(default_factory=list)


class ArchiveRepository:
    """
    Repository for archive writes and watermark lookups.

    Every write method runs in its own transaction; any database error
    rolls the whole batch back and propagates to the caller.
    """

    def __init__(self, database: Database):
        self._db = database

    async def create_tables(self) -> None:
        """Create archive tables and indexes if they don't exist."""
        await self._db.execute(SCHEMA_SQL)
        logger.info("Archive tables created/verified")

    # Twitter

    async def upsert_tweet_batch(
        self,
        users: list[TwitterUser],
        tweets: list[Tweet],
    ) -> int:
        """
        Upsert authors and insert tweets in one transaction.

        Authors are written first so every tweet's foreign key is satisfied.

        Args:
            users: Authors, unique by id
            tweets: Tweets, unique by id

        Returns:
            Number of tweets submitted (including ones already archived)
        """
        if not tweets and not users:
            return 0

        started = time.perf_counter()

        async with self._db.transaction() as conn:
            if users:
                await conn.execute(
                    UPSERT_USERS_SQL,
                    [u.id for u in users],
                    [u.username for u in users],
                    [u.display_name for u in users],
                    [u.avatar_url for u in users],
                    [u.follower_count for u in users],
                    [u.following_count for u in users],
                    [u.bio.model_dump_json() for u in users],
                )
            if tweets:
                await conn.execute(
                    INSERT_TWEETS_SQL,
                    [t.id for t in tweets],
                    [t.url for t in tweets],
                    [t.text for t in tweets],
                    [t.author_id for t in tweets],
                    [t.conversation_id for t in tweets],
                    [t.created_at for t in tweets],
                    [_dump_entities(t.mentions) for t in tweets],
                    [_dump_entities(t.urls) for t in tweets],
                    [_dump_entities(t.media) for t in tweets],
                )

        get_metrics().record_storage_latency(
            "tweet_batch", time.perf_counter() - started
        )
        logger.info(f"Batch upserted {len(users)} users and {len(tweets)} tweets")
        return len(tweets)

    async def get_tweet_watermark(self, username: str, mode: SyncMode) -> int | None:
        """
        Oldest (backfill) or newest (incremental) archived tweet id for an author.

        Args:
            username: Author username, matched case-insensitively
            mode: Sync direction

        Returns:
            Tweet id, or None when nothing is archived for the author
        """
        sql = f"""
            SELECT {_WATERMARK_AGGREGATE[mode]}(p.id)
            FROM tw_posts p
            JOIN tw_users u ON u.id = p.author_id
            WHERE lower(u.username) = lower($1)
        """
        return await self._db.fetchval(sql, username)

    # Telegram

    async def upsert_channel(self, channel: TelegramChannel) -> None:
        await self._db.execute(
            UPSERT_CHANNEL_SQL,
            channel.id,
            channel.title,
            channel.about,
            channel.channel_username,
            channel.admin_usernames,
        )

    async def get_message_watermark(self, channel_id: int, mode: SyncMode) -> int | None:
        """Oldest (backfill) or newest (incremental) archived message id in a channel."""
        sql = f"""
            SELECT {_WATERMARK_AGGREGATE[mode]}(message_id)
            FROM tg_messages
            WHERE channel_id = $1
        """
        return await self._db.fetchval(sql, channel_id)

    async def insert_message_batch(
        self,
        channel_id: int,
        messages: list[TelegramMessage],
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> BatchOutcome:
        """
        Resolve thread roots and insert a batch of one channel's messages.

        Runs in one transaction:
        1. Lock the channel row so concurrent writers to the same channel
           serialize and always see each other's committed parents.
        2. Load every persisted message the batch replies to.
        3. Resolve thread roots in memory.
        4. Insert all messages with their ``thread_id``; already-archived
           ids are left untouched.

        Args:
            channel_id: Channel all messages belong to (must exist)
            messages: Normalized messages without ``thread_id``
            max_depth: Reply-chain depth cap for in-batch resolution

        Returns:
            BatchOutcome with the submitted count and the ids that could not
            be attached to a thread within the depth cap
        """
        if not messages:
            return BatchOutcome()

        started = time.perf_counter()

        async with self._db.transaction() as conn:
            await conn.execute(LOCK_CHANNEL_SQL, channel_id)

            rows = await conn.fetch(
                PERSISTED_PARENTS_SQL, channel_id, parent_ids(messages)
            )
            persisted = {
                row["message_id"]: PersistedParent(id=row["id"], thread_id=row["thread_id"])
                for row in rows
            }

            resolution = resolve_threads(messages, persisted, max_depth=max_depth)
            resolved = apply_thread_ids(messages, resolution)

            await conn.execute(
                INSERT_MESSAGES_SQL,
                [m.id for m in resolved],
                [m.message_id for m in resolved],
                [m.channel_id for m in resolved],
                [m.url for m in resolved],
                [m.text for m in resolved],
                [m.reply_to_message_id for m in resolved],
                [m.thread_id for m in resolved],
                [m.created_at for m in resolved],
                [m.has_media for m in resolved],
                [_dump_entities(m.mentions) for m in resolved],
                [_dump_entities(m.urls) for m in resolved],
            )

        get_metrics().record_storage_latency(
            "message_batch", time.perf_counter() - started
        )
        logger.info(
            f"Batch inserted {len(resolved)} messages for channel {channel_id} "
            f"({len(persisted)} persisted parents, "
            f"max depth {resolution.max_depth_seen})"
        )
        return BatchOutcome(submitted=len(resolved), unresolved=resolution.unresolved)

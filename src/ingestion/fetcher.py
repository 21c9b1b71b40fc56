"""
Paginated fetching and batching of provider feeds.

Tweets are pulled page by page from the advanced search endpoint and grouped
into write batches of ``batch_size`` items; Telegram history is normalized
message by message and chunked the same way. Provider errors propagate to
the caller unchanged: a failed page aborts the source's run and anything
already yielded stays written.
"""

from collections.abc import AsyncIterator
from typing import Any

import structlog

from src.ingestion.normalizer import normalize_telegram_message
from src.ingestion.schemas import SyncMode, TelegramChannel, TelegramMessage
from src.ingestion.twitter_client import TwitterApiClient

logger = structlog.get_logger(__name__)


def build_tweet_query(username: str, mode: SyncMode, watermark: int | None) -> str:
    """
    Build the advanced search query for one account.

    Args:
        username: Twitter username (without @)
        mode: Sync direction
        watermark: Oldest (backfill) or newest (incremental) archived tweet
            id for this account, or None when nothing is archived yet

    Returns:
        Query string such as ``from:zachxbt since_id:1790000000000000000``
    """
    query = f"from:{username}"
    if watermark is None:
        return query
    if mode is SyncMode.BACKFILL:
        return f"{query} max_id:{watermark}"
    return f"{query} since_id:{watermark}"


async def iter_tweet_batches(
    client: TwitterApiClient,
    username: str,
    mode: SyncMode,
    watermark: int | None,
    batch_size: int = 200,
) -> AsyncIterator[list[dict[str, Any]]]:
    """
    Walk the search cursor and yield raw tweets in batches.

    Batches never exceed ``batch_size``: a page that overfills the current
    batch is split and the remainder carries into the next one. Whatever is
    left is yielded when the provider reports no further page. An empty
    trailing batch is never yielded.

    Raises:
        FeedProviderError: When any page request fails
    """
    query = build_tweet_query(username, mode, watermark)
    cursor = ""
    batch: list[dict[str, Any]] = []
    pages = 0

    while True:
        page = await client.search(query, cursor=cursor)
        pages += 1
        batch.extend(page.tweets)

        while len(batch) >= batch_size:
            logger.debug("Yielding tweet batch", username=username, pages=pages)
            yield batch[:batch_size]
            batch = batch[batch_size:]

        if not page.has_next_page:
            if batch:
                logger.debug(
                    "Yielding final tweet batch",
                    username=username,
                    size=len(batch),
                    pages=pages,
                )
                yield batch
            break
        cursor = page.next_cursor or ""


async def iter_message_batches(
    messages: AsyncIterator[Any],
    channel: TelegramChannel,
    batch_size: int = 200,
) -> AsyncIterator[list[TelegramMessage]]:
    """Normalize a raw Telegram history stream and chunk it into batches."""
    batch: list[TelegramMessage] = []
    skipped = 0

    async for raw in messages:
        message = normalize_telegram_message(raw, channel)
        if message is None:
            skipped += 1
            continue
        batch.append(message)
        if len(batch) >= batch_size:
            yield batch
            batch = []

    if batch:
        yield batch

    if skipped:
        logger.debug(
            "Skipped messages without text",
            channel=channel.channel_username,
            skipped=skipped,
        )

"""
Telegram channel history client (MTProto user session via Telethon).

The client is constructed explicitly from a StringSession and owned by
whoever opens it (the sync service for one sync invocation). Generate the
session string once with ``thread-archive telegram-login``.

History is always iterated oldest-first so reply parents are seen before
their replies:
- incremental: messages with id > watermark (``min_id``)
- backfill: messages with id < watermark (``max_id``)
"""

from collections.abc import AsyncIterator
from typing import Any

import structlog
from telethon import TelegramClient
from telethon.sessions import StringSession
from telethon.tl.functions.channels import GetFullChannelRequest

from src.config.settings import get_settings
from src.ingestion.normalizer import normalize_telegram_channel
from src.ingestion.schemas import SyncMode, TelegramChannel

logger = structlog.get_logger(__name__)


class TelegramFeedClient:
    """
    Async wrapper around a Telethon user session.

    Usage:
        async with TelegramFeedClient() as client:
            channel = await client.get_channel("investigations")
            async for message in client.iter_messages(channel, SyncMode.INCREMENTAL, 120):
                ...
    """

    def __init__(
        self,
        api_id: int | None = None,
        api_hash: str | None = None,
        session: str | None = None,
        connection_retries: int | None = None,
        client: TelegramClient | None = None,
    ):
        settings = get_settings()
        if client is not None:
            self._client = client
        else:
            self._client = TelegramClient(
                StringSession(session or settings.telegram_session),
                api_id or settings.telegram_api_id,
                api_hash or settings.telegram_api_hash,
                connection_retries=connection_retries or settings.telegram_connection_retries,
            )

    async def __aenter__(self) -> "TelegramFeedClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        """Connect the session, failing if it is not authorized."""
        await self._client.connect()
        if not await self._client.is_user_authorized():
            await self._client.disconnect()
            raise RuntimeError(
                "Telegram session is not authorized. "
                "Run `thread-archive telegram-login` to create one."
            )
        logger.info("Telegram client connected")

    async def disconnect(self) -> None:
        await self._client.disconnect()
        logger.info("Telegram client disconnected")

    async def get_channel(self, handle: str) -> TelegramChannel:
        """
        Look up a public channel by username.

        Args:
            handle: Channel username (without @)

        Returns:
            Normalized channel identity
        """
        full = await self._client(GetFullChannelRequest(channel=handle))
        return normalize_telegram_channel(full, handle)

    async def iter_messages(
        self,
        channel: TelegramChannel,
        mode: SyncMode,
        watermark: int | None,
    ) -> AsyncIterator[Any]:
        """
        Iterate a channel's history oldest-first, bounded by the watermark.

        Args:
            channel: Channel to read
            mode: Sync direction
            watermark: Newest (incremental) or oldest (backfill) archived
                message id, or None when nothing is archived yet

        Yields:
            Raw Telethon messages
        """
        kwargs: dict[str, int] = {}
        if watermark is not None:
            if mode is SyncMode.INCREMENTAL:
                kwargs["min_id"] = watermark
            else:
                kwargs["max_id"] = watermark

        logger.debug(
            "Iterating channel history",
            channel=channel.channel_username,
            mode=mode.value,
            **kwargs,
        )

        async for message in self._client.iter_messages(
            channel.channel_username,
            reverse=True,
            **kwargs,
        ):
            yield message

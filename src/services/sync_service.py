"""
Sync service - archives configured sources into the database.

One invocation syncs a set of sources in one direction (incremental or
backfill). Sources run concurrently and fail independently: a provider or
database error aborts only that source, is recorded in the report, and the
next invocation resumes from the unchanged watermark.

Per source the work is strictly sequential:
    watermark -> fetch page(s) -> normalize -> write batch -> next page
"""

import asyncio
import time
from collections.abc import Callable
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.config.settings import Settings, get_settings
from src.ingestion.fetcher import iter_message_batches, iter_tweet_batches
from src.ingestion.normalizer import normalize_tweet_batch
from src.ingestion.schemas import Platform, Source, SyncMode
from src.ingestion.telegram_client import TelegramFeedClient
from src.ingestion.twitter_client import TwitterApiClient
from src.observability.logging import source_context
from src.observability.metrics import get_metrics
from src.storage.database import Database
from src.storage.repository import ArchiveRepository

logger = structlog.get_logger(__name__)

SUCCESS_MESSAGE = "Content synced successfully"


class SyncError(Exception):
    """A source's sync failed; wraps the underlying provider or database error."""

    def __init__(self, source: Source, cause: BaseException):
        super().__init__(f"{source.label}: {cause}")
        self.source = source
        self.cause = cause


@dataclass
class SyncReport:
    """
    Aggregate outcome of one sync invocation.

    ``inserted`` sums submitted items per platform across all successful
    sources (and any batches written before a source failed). ``failures``
    maps a source label to its error message.
    """

    mode: SyncMode
    inserted: dict[str, int] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def total(self) -> int:
        return sum(self.inserted.values())

    def add(self, platform: Platform, count: int) -> None:
        self.inserted[platform.value] = self.inserted.get(platform.value, 0) + count

    def error_message(self) -> str:
        return "; ".join(
            f"{label}: {message}" for label, message in sorted(self.failures.items())
        )


class SyncService:
    """
    Orchestrates fetching, normalizing and writing for a set of sources.

    Provider clients are created per invocation from the factories and
    shared by every source of that platform within the invocation.

    Usage:
        service = SyncService(database)
        report = await service.run(parse_sources(settings.sources), SyncMode.INCREMENTAL)
    """

    def __init__(
        self,
        database: Database,
        twitter_client_factory: Callable[[], TwitterApiClient] | None = None,
        telegram_client_factory: Callable[[], TelegramFeedClient] | None = None,
        settings: Settings | None = None,
        repository: ArchiveRepository | None = None,
    ):
        self._settings = settings or get_settings()
        self._repository = repository or ArchiveRepository(database)
        self._twitter_client_factory = twitter_client_factory or TwitterApiClient
        self._telegram_client_factory = telegram_client_factory or TelegramFeedClient
        self._metrics = get_metrics()

    async def run(self, sources: list[Source], mode: SyncMode) -> SyncReport:
        """
        Sync every source concurrently.

        Args:
            sources: Sources to sync
            mode: Sync direction

        Returns:
            SyncReport with per-platform counts and per-source failures
        """
        report = SyncReport(mode=mode)
        if not sources:
            return report

        factories = {
            Platform.TWITTER: self._twitter_client_factory,
            Platform.TELEGRAM: self._telegram_client_factory,
        }
        logger.info(
            "Starting sync",
            mode=mode.value,
            sources=[s.label for s in sources],
        )

        async with AsyncExitStack() as stack:
            clients: dict[Platform, Any] = {}
            for platform in sorted({s.platform for s in sources}, key=lambda p: p.value):
                try:
                    clients[platform] = await stack.enter_async_context(
                        factories[platform]()
                    )
                except Exception as e:
                    # Every source of this platform fails; others still run
                    logger.error(
                        "Provider client setup failed",
                        platform=platform.value,
                        error=str(e),
                    )
                    for source in sources:
                        if source.platform is platform:
                            self._record_failure(report, SyncError(source, e))

            runnable = [s for s in sources if s.platform in clients]
            results = await asyncio.gather(
                *(self._run_source(s, mode, clients[s.platform], report) for s in runnable),
                return_exceptions=True,
            )

        for source, result in zip(runnable, results):
            if isinstance(result, SyncError):
                self._record_failure(report, result)
            elif isinstance(result, BaseException):
                self._record_failure(report, SyncError(source, result))

        logger.info(
            "Sync finished",
            mode=mode.value,
            inserted=report.inserted,
            failed=sorted(report.failures),
        )
        return report

    async def _run_source(
        self,
        source: Source,
        mode: SyncMode,
        client: Any,
        report: SyncReport,
    ) -> int:
        with source_context(source.platform.value, source.handle, mode.value):
            return await self._sync_source(source, mode, client, report)

    async def _sync_source(
        self,
        source: Source,
        mode: SyncMode,
        client: Any,
        report: SyncReport,
    ) -> int:
        started = time.monotonic()

        counter = _Counter(report, source.platform)
        try:
            if source.platform is Platform.TWITTER:
                await self._sync_twitter(source, mode, client, counter)
            else:
                await self._sync_telegram(source, mode, client, counter)
        except Exception as e:
            logger.error(
                "Source sync failed",
                error_type=type(e).__name__,
                error=str(e),
                inserted_before_failure=counter.count,
            )
            raise SyncError(source, e) from e

        elapsed = time.monotonic() - started
        self._metrics.record_items_synced(source.platform, counter.count, latency=elapsed)
        logger.info(
            "Source synced",
            inserted=counter.count,
            elapsed_seconds=round(elapsed, 2),
        )
        return counter.count

    async def _sync_twitter(
        self,
        source: Source,
        mode: SyncMode,
        client: TwitterApiClient,
        counter: "_Counter",
    ) -> None:
        watermark = await self._repository.get_tweet_watermark(source.handle, mode)
        logger.debug("Tweet watermark", watermark=watermark)

        async for raw_batch in iter_tweet_batches(
            client,
            source.handle,
            mode,
            watermark,
            batch_size=self._settings.sync_batch_size,
        ):
            users, tweets = normalize_tweet_batch(raw_batch)
            counter.add(await self._repository.upsert_tweet_batch(users, tweets))

    async def _sync_telegram(
        self,
        source: Source,
        mode: SyncMode,
        client: TelegramFeedClient,
        counter: "_Counter",
    ) -> None:
        channel = await client.get_channel(source.handle)
        await self._repository.upsert_channel(channel)

        watermark = await self._repository.get_message_watermark(channel.id, mode)
        logger.debug("Message watermark", channel_id=channel.id, watermark=watermark)

        async for batch in iter_message_batches(
            client.iter_messages(channel, mode, watermark),
            channel,
            batch_size=self._settings.sync_batch_size,
        ):
            outcome = await self._repository.insert_message_batch(
                channel.id,
                batch,
                max_depth=self._settings.thread_max_depth,
            )
            if outcome.unresolved:
                logger.warning(
                    "Reply chains exceeded depth cap, stored as singleton threads",
                    channel_id=channel.id,
                    max_depth=self._settings.thread_max_depth,
                    message_ids=outcome.unresolved,
                )
                self._metrics.record_unresolved(len(outcome.unresolved))
            counter.add(outcome.submitted)

    def _record_failure(self, report: SyncReport, error: SyncError) -> None:
        report.failures[error.source.label] = str(error.cause) or type(error.cause).__name__
        self._metrics.record_sync_error(error.source.platform, type(error.cause).__name__)


class _Counter:
    """Running count for one source, mirrored into the shared report."""

    def __init__(self, report: SyncReport, platform: Platform):
        self._report = report
        self._platform = platform
        self.count = 0

    def add(self, count: int) -> None:
        self.count += count
        self._report.add(self._platform, count)

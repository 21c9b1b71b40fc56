"""Tests for the sync orchestration service."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.ingestion.http_client import FeedProviderError
from src.ingestion.schemas import Platform, Source, SyncMode
from src.ingestion.twitter_client import SearchPage
from src.services.sync_service import SyncError, SyncReport, SyncService
from src.storage.repository import BatchOutcome

ZACH = Source(platform=Platform.TWITTER, handle="zachxbt")
OTHER = Source(platform=Platform.TWITTER, handle="other")
INVESTIGATIONS = Source(platform=Platform.TELEGRAM, handle="investigations")


class FakeTwitterClient:
    """Async context manager serving one page per username."""

    def __init__(self, pages_by_user, errors_by_user=None):
        self.pages_by_user = pages_by_user
        self.errors_by_user = errors_by_user or {}
        self.queries: list[str] = []
        self.entered = 0
        self.exited = 0

    async def __aenter__(self):
        self.entered += 1
        return self

    async def __aexit__(self, *exc):
        self.exited += 1

    async def search(self, query, cursor=""):
        self.queries.append(query)
        username = query.split()[0].removeprefix("from:")
        if username in self.errors_by_user:
            raise self.errors_by_user[username]
        return SearchPage(tweets=self.pages_by_user.get(username, []), next_cursor=None)


class FakeTelegramClient:
    def __init__(self, channel, history):
        self.channel = channel
        self.history = history
        self.iter_calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        pass

    async def get_channel(self, handle):
        return self.channel

    async def iter_messages(self, channel, mode, watermark):
        self.iter_calls.append((channel.id, mode, watermark))
        for message in self.history:
            yield message


def _raw_message(message_id, reply_to=None):
    return SimpleNamespace(
        id=message_id,
        message=f"message {message_id}",
        entities=None,
        reply_to=SimpleNamespace(reply_to_msg_id=reply_to) if reply_to else None,
        date=datetime(2024, 12, 10, tzinfo=timezone.utc),
        media=None,
    )


@pytest.fixture
def metrics(monkeypatch):
    collector = MagicMock()
    monkeypatch.setattr("src.services.sync_service.get_metrics", lambda: collector)
    return collector


@pytest.fixture
def repository():
    repo = MagicMock()
    repo.get_tweet_watermark = AsyncMock(return_value=None)
    repo.get_message_watermark = AsyncMock(return_value=None)
    repo.upsert_tweet_batch = AsyncMock(side_effect=lambda users, tweets: len(tweets))
    repo.upsert_channel = AsyncMock()
    repo.insert_message_batch = AsyncMock(
        side_effect=lambda channel_id, batch, max_depth: BatchOutcome(submitted=len(batch))
    )
    return repo


def _service(repository, test_settings, twitter=None, telegram=None):
    return SyncService(
        database=MagicMock(),
        twitter_client_factory=(lambda: twitter) if twitter else None,
        telegram_client_factory=(lambda: telegram) if telegram else None,
        settings=test_settings,
        repository=repository,
    )


class TestSyncReport:
    def test_add_sums_per_platform(self):
        report = SyncReport(mode=SyncMode.INCREMENTAL)
        report.add(Platform.TWITTER, 3)
        report.add(Platform.TWITTER, 2)
        report.add(Platform.TELEGRAM, 1)

        assert report.inserted == {"twitter": 5, "telegram": 1}
        assert report.total == 6
        assert report.ok

    def test_error_message_sorted(self):
        report = SyncReport(mode=SyncMode.BACKFILL)
        report.failures = {"twitter:b": "boom", "telegram:a": "down"}

        assert not report.ok
        assert report.error_message() == "telegram:a: down; twitter:b: boom"


class TestSyncService:
    """Tests for SyncService.run."""

    @pytest.mark.asyncio
    async def test_sums_counts_across_sources(
        self, repository, test_settings, metrics, make_raw_tweet
    ):
        twitter = FakeTwitterClient({
            "zachxbt": [make_raw_tweet(tweet_id="1"), make_raw_tweet(tweet_id="2")],
            "other": [make_raw_tweet(tweet_id="3", author_id="7", username="other")],
        })
        service = _service(repository, test_settings, twitter=twitter)

        report = await service.run([ZACH, OTHER], SyncMode.INCREMENTAL)

        assert report.ok
        assert report.inserted == {"twitter": 3}
        # batch_size is 2 in test settings
        assert repository.upsert_tweet_batch.await_count == 2
        assert twitter.entered == 1
        assert twitter.exited == 1

    @pytest.mark.asyncio
    async def test_failure_isolated_per_source(
        self, repository, test_settings, metrics, make_raw_tweet
    ):
        """One failing source does not stop the others."""
        twitter = FakeTwitterClient(
            {"zachxbt": [make_raw_tweet(tweet_id="1")]},
            errors_by_user={
                "other": FeedProviderError("Request failed with status 503", status_code=503),
            },
        )
        service = _service(repository, test_settings, twitter=twitter)

        report = await service.run([ZACH, OTHER], SyncMode.INCREMENTAL)

        assert not report.ok
        assert report.inserted == {"twitter": 1}
        assert report.failures == {"twitter:other": "Request failed with status 503"}
        metrics.record_sync_error.assert_called_once_with(
            Platform.TWITTER, "FeedProviderError"
        )

    @pytest.mark.asyncio
    async def test_watermark_passed_to_query(
        self, repository, test_settings, metrics
    ):
        repository.get_tweet_watermark.return_value = 555
        twitter = FakeTwitterClient({})
        service = _service(repository, test_settings, twitter=twitter)

        await service.run([ZACH], SyncMode.BACKFILL)

        repository.get_tweet_watermark.assert_awaited_once_with("zachxbt", SyncMode.BACKFILL)
        assert twitter.queries == ["from:zachxbt max_id:555"]
        repository.upsert_tweet_batch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_telegram_sync(self, repository, test_settings, metrics, channel):
        repository.get_message_watermark.return_value = 10
        telegram = FakeTelegramClient(
            channel,
            [_raw_message(11), _raw_message(12, reply_to=11), _raw_message(13)],
        )
        service = _service(repository, test_settings, telegram=telegram)

        report = await service.run([INVESTIGATIONS], SyncMode.INCREMENTAL)

        assert report.ok
        assert report.inserted == {"telegram": 3}
        repository.upsert_channel.assert_awaited_once_with(channel)
        repository.get_message_watermark.assert_awaited_once_with(1001, SyncMode.INCREMENTAL)
        assert telegram.iter_calls == [(1001, SyncMode.INCREMENTAL, 10)]
        batches = [call.args[1] for call in repository.insert_message_batch.await_args_list]
        assert [[m.message_id for m in b] for b in batches] == [[11, 12], [13]]
        for call in repository.insert_message_batch.await_args_list:
            assert call.kwargs["max_depth"] == 50

    @pytest.mark.asyncio
    async def test_unresolved_messages_recorded(
        self, repository, test_settings, metrics, channel
    ):
        repository.insert_message_batch.side_effect = None
        repository.insert_message_batch.return_value = BatchOutcome(
            submitted=2, unresolved=["1001-1", "1001-2"]
        )
        telegram = FakeTelegramClient(channel, [_raw_message(1, 2), _raw_message(2, 1)])
        service = _service(repository, test_settings, telegram=telegram)

        report = await service.run([INVESTIGATIONS], SyncMode.INCREMENTAL)

        assert report.ok
        metrics.record_unresolved.assert_called_once_with(2)

    @pytest.mark.asyncio
    async def test_client_setup_failure_fails_platform_only(
        self, repository, test_settings, metrics, make_raw_tweet
    ):
        """A platform whose client cannot start fails all of its sources."""

        def broken_telegram():
            raise RuntimeError("Telegram session is not authorized")

        twitter = FakeTwitterClient({"zachxbt": [make_raw_tweet()]})
        service = SyncService(
            database=MagicMock(),
            twitter_client_factory=lambda: twitter,
            telegram_client_factory=broken_telegram,
            settings=test_settings,
            repository=repository,
        )

        report = await service.run([ZACH, INVESTIGATIONS], SyncMode.INCREMENTAL)

        assert report.inserted == {"twitter": 1}
        assert report.failures == {
            "telegram:investigations": "Telegram session is not authorized",
        }

    @pytest.mark.asyncio
    async def test_partial_counts_kept_on_failure(
        self, repository, test_settings, metrics, channel
    ):
        """Batches written before a failure still count."""
        repository.insert_message_batch.side_effect = [
            BatchOutcome(submitted=2),
            RuntimeError("deadlock detected"),
        ]
        telegram = FakeTelegramClient(
            channel, [_raw_message(1), _raw_message(2), _raw_message(3)]
        )
        service = _service(repository, test_settings, telegram=telegram)

        report = await service.run([INVESTIGATIONS], SyncMode.INCREMENTAL)

        assert report.inserted == {"telegram": 2}
        assert report.failures == {"telegram:investigations": "deadlock detected"}

    @pytest.mark.asyncio
    async def test_empty_sources(self, repository, test_settings, metrics):
        report = await _service(repository, test_settings).run([], SyncMode.INCREMENTAL)

        assert report.ok
        assert report.inserted == {}

    @pytest.mark.asyncio
    async def test_error_without_message_uses_type_name(
        self, repository, test_settings, metrics
    ):
        repository.get_tweet_watermark.side_effect = TimeoutError()
        service = _service(repository, test_settings, twitter=FakeTwitterClient({}))

        report = await service.run([ZACH], SyncMode.INCREMENTAL)

        assert report.failures == {"twitter:zachxbt": "TimeoutError"}


class TestSyncError:
    def test_message_includes_label(self):
        error = SyncError(ZACH, ValueError("bad"))
        assert str(error) == "twitter:zachxbt: bad"
        assert error.source == ZACH

"""Shared fixtures for API tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.dependencies import (
    get_archive_search,
    get_database_or_none,
    get_response_cache,
    get_sync_service,
)
from src.storage.cache import ResponseCache
from src.storage.search import SearchResults

SECRET = "test-secret"


def _make_tweet_row(tweet_id: int = 1866000000000000001, text: str = "lazarus drained it") -> dict:
    """Helper to create a hydrated tweet row as returned by the search queries."""
    return {
        "id": tweet_id,
        "url": f"https://x.com/zachxbt/status/{tweet_id}",
        "text": text,
        "author_id": 42,
        "conversation_id": tweet_id,
        "created_at": datetime(2024, 12, 10, 7, 0, 30, tzinfo=timezone.utc),
        "mentions": [],
        "urls": [],
        "media": [],
        "author": {
            "id": 42,
            "username": "zachxbt",
            "display_name": "ZachXBT",
            "avatar_url": None,
            "follower_count": 900000,
            "following_count": 1200,
            "bio": {"description": "", "mentions": [], "urls": []},
        },
    }


def _make_message_row(message_id: int = 9, text: str = "lazarus again") -> dict:
    """Helper to create a hydrated message row with its channel embedded."""
    return {
        "id": f"1001-{message_id}",
        "message_id": message_id,
        "channel_id": 1001,
        "url": f"https://t.me/investigations/{message_id}",
        "text": text,
        "reply_to_message_id": None,
        "thread_id": f"1001-{message_id}",
        "created_at": datetime(2024, 12, 10, 8, 0, 0, tzinfo=timezone.utc),
        "has_media": False,
        "mentions": [],
        "urls": None,
        "channel": {
            "id": 1001,
            "title": "Investigations",
            "about": None,
            "channel_username": "investigations",
            "admin_usernames": [],
        },
    }


@pytest.fixture
def api_env(monkeypatch):
    """Environment that passes startup validation with a single tweet source."""
    monkeypatch.setenv("CRON_SECRET", SECRET)
    monkeypatch.setenv("TWITTERAPI_API_KEY", "test-key")
    monkeypatch.setenv("SOURCES", "twitter:zachxbt")


@pytest.fixture
def mock_archive():
    """Mock ArchiveSearch returning one tweet and one message."""
    archive = MagicMock()
    results = SearchResults(tweets=[_make_tweet_row()], messages=[_make_message_row()])
    archive.search = AsyncMock(return_value=results)
    archive.latest = AsyncMock(return_value=results)
    return archive


@pytest.fixture
def mock_redis():
    client = AsyncMock()
    client.get.return_value = None
    return client


@pytest.fixture
def response_cache(mock_redis):
    return ResponseCache(mock_redis, ttl_seconds=3600, key_prefix="test:", enabled=True)


@pytest.fixture
def mock_sync_service():
    return MagicMock()


@pytest.fixture
def mock_db():
    db = AsyncMock()
    db.health_check = AsyncMock(return_value=True)
    return db


@pytest.fixture
def app(api_env, mock_archive, response_cache, mock_sync_service, mock_db):
    application = create_app()
    application.dependency_overrides[get_archive_search] = lambda: mock_archive
    application.dependency_overrides[get_response_cache] = lambda: response_cache
    application.dependency_overrides[get_sync_service] = lambda: mock_sync_service
    application.dependency_overrides[get_database_or_none] = lambda: mock_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {SECRET}"}

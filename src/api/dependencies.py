"""
Dependency injection for FastAPI endpoints.
"""

import asyncpg
import redis.asyncio as redis
import structlog

from src.config.settings import get_settings
from src.services.sync_service import SyncService
from src.storage.cache import ResponseCache
from src.storage.database import Database
from src.storage.search import ArchiveSearch

logger = structlog.get_logger(__name__)

# Global instances (initialized on first request)
_database: Database | None = None
_redis_client: redis.Redis | None = None


async def get_database() -> Database:
    """Get the shared database pool, connecting on first use."""
    global _database

    if _database is None:
        database = Database()
        await database.connect()
        _database = database

    return _database


async def get_database_or_none() -> Database | None:
    """Like get_database, but None when the database is unreachable."""
    try:
        return await get_database()
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        logger.warning("Database unavailable", error=str(e))
        return None


def _shared_redis_client() -> redis.Redis:
    global _redis_client

    if _redis_client is None:
        settings = get_settings()
        _redis_client = redis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )

    return _redis_client


async def get_response_cache() -> ResponseCache:
    """Response cache; a disabled cache when CACHE_ENABLED is false."""
    if not get_settings().cache_enabled:
        return ResponseCache(None, enabled=False)
    return ResponseCache(_shared_redis_client())


async def get_archive_search() -> ArchiveSearch:
    return ArchiveSearch(await get_database())


async def get_sync_service() -> SyncService:
    return SyncService(await get_database())


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _redis_client, _database

    if _database is not None:
        await _database.close()
        _database = None

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None

"""
Redis-backed response cache for the read endpoints.

Responses are stored as JSON under ``<prefix><route>:<sha256(param)>`` with a
fixed TTL. The cache is best effort: lookup and store failures are logged and
the request falls through to the database.
"""

import hashlib
import json
import logging
from typing import Any

import redis.asyncio as redis

from src.config.settings import get_settings
from src.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class ResponseCache:
    """
    TTL cache of JSON response bodies keyed by route and parameter.

    Usage:
        cache = ResponseCache(redis_client)
        body = await cache.get("search", "lazarus")
        if body is None:
            body = ...
            await cache.set("search", "lazarus", body)
    """

    def __init__(
        self,
        redis_client: redis.Redis | None,
        ttl_seconds: int | None = None,
        key_prefix: str | None = None,
        enabled: bool | None = None,
    ):
        settings = get_settings()
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds or settings.cache_ttl_seconds
        self._prefix = key_prefix if key_prefix is not None else settings.cache_key_prefix
        self._enabled = settings.cache_enabled if enabled is None else enabled

    @property
    def enabled(self) -> bool:
        return self._enabled and self._redis is not None

    def make_key(self, route: str, param: str) -> str:
        digest = hashlib.sha256(param.encode("utf-8")).hexdigest()
        return f"{self._prefix}{route}:{digest}"

    async def get(self, route: str, param: str) -> dict[str, Any] | None:
        """
        Look up a cached response body.

        Returns:
            Decoded body, or None on miss, when disabled, or on any error
        """
        if not self.enabled:
            return None

        metrics = get_metrics()
        key = self.make_key(route, param)
        try:
            cached = await self._redis.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache lookup failed for {key}: {e}")
            metrics.record_cache(route, "error")
            return None

        if cached is None:
            metrics.record_cache(route, "miss")
            return None

        try:
            body = json.loads(cached)
        except ValueError as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            metrics.record_cache(route, "error")
            return None

        metrics.record_cache(route, "hit")
        return body

    async def set(self, route: str, param: str, body: dict[str, Any]) -> None:
        """Store a response body; failures are logged and ignored."""
        if not self.enabled:
            return

        key = self.make_key(route, param)
        try:
            await self._redis.setex(key, self.ttl_seconds, json.dumps(body, default=str))
            logger.debug(f"Cached response: {key}")
        except redis.RedisError as e:
            logger.warning(f"Cache store failed for {key}: {e}")

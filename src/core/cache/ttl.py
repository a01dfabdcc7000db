"""
Namespaced JSON cache with a fixed TTL, backed by redis.asyncio.

Purpose
-------
Cross-request memoization is an explicit, injected component: callers hold
a `RedisTTLCache` instance, read through it, and invalidate through it. There
is no ambient module-level cache state.

Graceful Degradation
--------------------
Redis errors never escape. A failed read is a miss, a failed write or
invalidation is logged and reported as False, and the caller falls back to
the database.

Key Format
----------
`arcadia:v1:{namespace}:{key}`
"""

from __future__ import annotations

import json
import time
from typing import Any, Iterable, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from src.core.logging.logger import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "arcadia:v1"


class RedisTTLCache:
    """
    JSON value cache with one TTL per namespace.

    Example
    -------
    >>> cache = RedisTTLCache(RedisService.client(), "player_profile", 300)
    >>> await cache.set_json(42, {"is_premium": True})
    >>> await cache.get_json(42)
    {'is_premium': True}
    >>> await cache.invalidate(42)
    """

    def __init__(self, client: AsyncRedis, namespace: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._client = client
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds
        self.hits = 0
        self.misses = 0
        self.errors = 0

    def key_for(self, key: Any) -> str:
        return f"{KEY_PREFIX}:{self.namespace}:{key}"

    async def get_json(self, key: Any) -> Optional[Any]:
        """Return the cached value, or None on miss or Redis failure."""
        cache_key = self.key_for(key)
        start = time.perf_counter()
        try:
            raw = await self._client.get(cache_key)
        except RedisError as exc:
            self.errors += 1
            logger.warning(
                "Cache read failed, treating as miss",
                extra={
                    "cache_key": cache_key,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return None

        if raw is None:
            self.misses += 1
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            self.errors += 1
            logger.warning("Discarding undecodable cache entry", extra={"cache_key": cache_key})
            await self.invalidate(key)
            return None

        self.hits += 1
        logger.debug(
            "Cache hit",
            extra={
                "cache_key": cache_key,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return value

    async def set_json(self, key: Any, value: Any) -> bool:
        cache_key = self.key_for(key)
        try:
            await self._client.set(
                cache_key, json.dumps(value, default=str), ex=self.ttl_seconds
            )
            return True
        except RedisError as exc:
            self.errors += 1
            logger.warning(
                "Cache write failed",
                extra={
                    "cache_key": cache_key,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False

    async def invalidate(self, key: Any) -> bool:
        return await self.invalidate_many([key])

    async def invalidate_many(self, keys: Iterable[Any]) -> bool:
        cache_keys = [self.key_for(key) for key in keys]
        if not cache_keys:
            return True
        try:
            await self._client.delete(*cache_keys)
            logger.debug(
                "Cache invalidated",
                extra={"namespace": self.namespace, "key_count": len(cache_keys)},
            )
            return True
        except RedisError as exc:
            self.errors += 1
            logger.warning(
                "Cache invalidation failed",
                extra={
                    "namespace": self.namespace,
                    "key_count": len(cache_keys),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            return False

    def get_stats(self) -> dict[str, Any]:
        total = self.hits + self.misses
        return {
            "namespace": self.namespace,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate": round(self.hits / total * 100, 2) if total else 0.0,
        }

"""
RedisService: async Redis infrastructure for Arcadia.

Purpose
-------
Own the singleton `redis.asyncio` client used by the read-through caches.
Redis is an accelerator only; the database stays authoritative, so every
caller is expected to degrade gracefully when Redis is unavailable.

Responsibilities
----------------
- Initialize and manage a singleton Redis connection pool
- Expose simple KV and JSON operations (get/set/delete/get_json/set_json)
- Health check and graceful shutdown

Non-Responsibilities
--------------------
- Business logic of any kind
- Database transactions

Configuration
-------------
- Config.REDIS_URL, Config.REDIS_PASSWORD
- Config.REDIS_MAX_CONNECTIONS, Config.REDIS_SOCKET_TIMEOUT
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from src.core.config.config import Config
from src.core.exceptions import CacheError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisService:
    """Singleton async Redis client wrapper."""

    _client: Optional[AsyncRedis] = None
    _init_lock: Optional[asyncio.Lock] = None
    _is_healthy: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def initialize(cls, client: Optional[AsyncRedis] = None) -> None:
        """
        Initialize the singleton Redis client.

        Idempotent. A pre-built client may be injected (tests, embedding apps).

        Raises
        ------
        RuntimeError
            If the Redis connection cannot be established.
        """
        if cls._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()

        async with cls._init_lock:
            if cls._client is not None:
                return

            if client is not None:
                cls._client = client
                cls._is_healthy = True
                logger.info("RedisService initialized with injected client")
                return

            url = Config.REDIS_URL
            start_time = time.monotonic()

            try:
                redis_client: AsyncRedis = AsyncRedis.from_url(
                    url,
                    password=Config.REDIS_PASSWORD,
                    socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                    decode_responses=True,
                    max_connections=Config.REDIS_MAX_CONNECTIONS,
                    health_check_interval=30,
                )
                await redis_client.ping()  # type: ignore[misc]

                cls._client = redis_client
                cls._is_healthy = True

                logger.info(
                    "RedisService initialized successfully",
                    extra={
                        "url_scheme": url.split("://")[0] if "://" in url else "unknown",
                        "max_connections": Config.REDIS_MAX_CONNECTIONS,
                        "initialization_time_ms": round(
                            (time.monotonic() - start_time) * 1000, 2
                        ),
                    },
                )

            except Exception as exc:
                cls._client = None
                cls._is_healthy = False
                logger.critical(
                    "Failed to initialize RedisService",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": url.split("://")[0] if "://" in url else "unknown",
                    },
                    exc_info=True,
                )
                raise RuntimeError(f"Failed to initialize RedisService: {exc}") from exc

    @classmethod
    async def shutdown(cls) -> None:
        """Close the client. Safe to call even if not initialized."""
        client = cls._client
        cls._client = None
        cls._is_healthy = False

        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        try:
            await client.aclose()
            logger.info("RedisService shutdown complete")
        except RedisError as exc:
            logger.error(
                "Error during RedisService shutdown",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._client is not None

    @classmethod
    def client(cls) -> AsyncRedis:
        """
        Return the active Redis client.

        Raises
        ------
        CacheError
            If RedisService has not been initialized.
        """
        if cls._client is None:
            raise CacheError(
                operation="client",
                cache_key=None,
                original_error=RuntimeError("RedisService is not initialized"),
            )
        return cls._client

    # ═══════════════════════════════════════════════════════════════════════
    # HEALTH & STATUS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def health_check(cls) -> bool:
        """Verify Redis connectivity via PING."""
        if cls._client is None:
            cls._is_healthy = False
            return False

        try:
            start_time = time.monotonic()
            pong = await cls._client.ping()  # type: ignore[misc]
            cls._is_healthy = bool(pong)
            logger.debug(
                "Redis health check completed",
                extra={
                    "healthy": cls._is_healthy,
                    "latency_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )
            return cls._is_healthy
        except RedisError as exc:
            cls._is_healthy = False
            logger.error(
                "Redis health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

    @classmethod
    def is_healthy(cls) -> bool:
        return cls._is_healthy

    # ═══════════════════════════════════════════════════════════════════════
    # KV / JSON OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def get(cls, key: str) -> Optional[str]:
        try:
            return await cls.client().get(key)
        except RedisError as exc:
            raise CacheError(operation="get", cache_key=key, original_error=exc) from exc

    @classmethod
    async def set(cls, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            await cls.client().set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise CacheError(operation="set", cache_key=key, original_error=exc) from exc

    @classmethod
    async def delete(cls, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await cls.client().delete(*keys))
        except RedisError as exc:
            raise CacheError(
                operation="delete", cache_key=",".join(keys), original_error=exc
            ) from exc

    @classmethod
    async def get_json(cls, key: str) -> Optional[Any]:
        raw = await cls.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise CacheError(operation="get_json", cache_key=key, original_error=exc) from exc

    @classmethod
    async def set_json(
        cls, key: str, value: Any, ttl_seconds: Optional[int] = None
    ) -> None:
        await cls.set(key, json.dumps(value, default=str), ttl_seconds=ttl_seconds)

"""
Player identity cache.

Caches the directory facts the rewards core reads on every completion:
premium flag, brand and the active boost multipliers. Profiles are
invalidated after each session completion so boost changes are picked up.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]

from src.core.cache.ttl import RedisTTLCache
from src.core.config.config import Config

PROFILE_NAMESPACE = "player_profile"


class PlayerCache:
    """Thin typed facade over a `RedisTTLCache` for player profiles."""

    def __init__(self, cache: RedisTTLCache) -> None:
        self._cache = cache

    @classmethod
    def from_client(
        cls, client: AsyncRedis, ttl_seconds: Optional[int] = None
    ) -> PlayerCache:
        return cls(
            RedisTTLCache(
                client,
                PROFILE_NAMESPACE,
                ttl_seconds or Config.PLAYER_CACHE_TTL_SECONDS,
            )
        )

    @property
    def ttl_cache(self) -> RedisTTLCache:
        return self._cache

    async def get_profile(self, player_id: int) -> Optional[Dict[str, Any]]:
        value = await self._cache.get_json(player_id)
        return value if isinstance(value, dict) else None

    async def set_profile(self, player_id: int, profile: Dict[str, Any]) -> bool:
        return await self._cache.set_json(player_id, profile)

    async def invalidate_player(self, player_id: int) -> bool:
        return await self._cache.invalidate(player_id)

"""
Unit tests for the Redis TTL cache and player cache facade.

The Redis client is an AsyncMock; these tests cover key layout, hit/miss
accounting and degradation on Redis errors.
"""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.core.cache.player import PROFILE_NAMESPACE, PlayerCache
from src.core.cache.ttl import RedisTTLCache


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.get.return_value = None
    return client


@pytest.fixture
def cache(redis_client):
    return RedisTTLCache(redis_client, "player_profile", 300)


class TestRedisTTLCache:
    def test_key_format(self, cache):
        assert cache.key_for(42) == "arcadia:v1:player_profile:42"

    def test_ttl_must_be_positive(self, redis_client):
        with pytest.raises(ValueError):
            RedisTTLCache(redis_client, "player_profile", 0)

    async def test_set_uses_ttl(self, cache, redis_client):
        assert await cache.set_json(42, {"is_premium": True}) is True

        redis_client.set.assert_awaited_once_with(
            "arcadia:v1:player_profile:42", json.dumps({"is_premium": True}), ex=300
        )

    async def test_hit_and_miss_accounting(self, cache, redis_client):
        redis_client.get.side_effect = [json.dumps({"brand_id": "acme"}), None]

        assert await cache.get_json(42) == {"brand_id": "acme"}
        assert await cache.get_json(43) is None

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 50.0

    async def test_read_error_is_a_miss(self, cache, redis_client):
        redis_client.get.side_effect = RedisConnectionError("down")

        assert await cache.get_json(42) is None
        assert cache.errors == 1

    async def test_write_error_returns_false(self, cache, redis_client):
        redis_client.set.side_effect = RedisConnectionError("down")

        assert await cache.set_json(42, {}) is False
        assert cache.errors == 1

    async def test_undecodable_entry_is_invalidated(self, cache, redis_client):
        redis_client.get.return_value = "{not json"

        assert await cache.get_json(42) is None
        redis_client.delete.assert_awaited_once_with("arcadia:v1:player_profile:42")

    async def test_invalidate_many(self, cache, redis_client):
        assert await cache.invalidate_many([1, 2]) is True

        redis_client.delete.assert_awaited_once_with(
            "arcadia:v1:player_profile:1", "arcadia:v1:player_profile:2"
        )

    async def test_invalidate_nothing(self, cache, redis_client):
        assert await cache.invalidate_many([]) is True
        redis_client.delete.assert_not_awaited()

    async def test_invalidate_error_returns_false(self, cache, redis_client):
        redis_client.delete.side_effect = RedisConnectionError("down")

        assert await cache.invalidate(42) is False


class TestPlayerCache:
    async def test_profiles_round_trip_through_namespace(self, redis_client):
        player_cache = PlayerCache.from_client(redis_client, 60)
        redis_client.get.return_value = json.dumps({"player_id": 3})

        assert player_cache.ttl_cache.namespace == PROFILE_NAMESPACE
        assert await player_cache.get_profile(3) == {"player_id": 3}

    async def test_non_dict_value_is_ignored(self, redis_client):
        redis_client.get.return_value = json.dumps([1, 2])

        assert await PlayerCache.from_client(redis_client, 60).get_profile(3) is None

    async def test_invalidate_player(self, redis_client):
        assert await PlayerCache.from_client(redis_client, 60).invalidate_player(3) is True

        redis_client.delete.assert_awaited_once_with("arcadia:v1:player_profile:3")

"""
Cache layer for Arcadia.

Caches are explicit objects constructed with a Redis client and injected
into the services that use them.
"""

from .player import PlayerCache
from .ttl import RedisTTLCache

__all__ = ["RedisTTLCache", "PlayerCache"]

"""
Redis infrastructure for Arcadia.

Redis backs the read-through caches only; the database remains the source
of truth.
"""

from .service import RedisService

__all__ = ["RedisService"]

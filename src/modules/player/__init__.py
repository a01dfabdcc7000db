"""
Player module: read-only, cache-backed player directory.
"""

from .directory import PlayerDirectory, PlayerProfile

__all__ = ["PlayerDirectory", "PlayerProfile"]

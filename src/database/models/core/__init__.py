"""
Core database models: player identity and the activity catalogue.
"""

from .activity import Activity, BrandConfig
from .player import Player

__all__ = [
    "Player",
    "Activity",
    "BrandConfig",
]

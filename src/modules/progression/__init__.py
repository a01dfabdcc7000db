"""
Progression module: level, XP, statistics and ratings.
"""

from .service import ProgressionRepository, ProgressionService
from .snapshot import ProgressionSnapshot

__all__ = ["ProgressionService", "ProgressionRepository", "ProgressionSnapshot"]

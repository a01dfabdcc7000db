"""
Streak module: win and daily-login streaks.
"""

from .service import StreakResult, StreakService

__all__ = ["StreakService", "StreakResult"]

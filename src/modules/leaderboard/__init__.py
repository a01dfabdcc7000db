"""
Leaderboard module: materialized rankings per category, period and brand.
"""

from .service import LeaderboardService, period_start

__all__ = ["LeaderboardService", "period_start"]

"""
Progression domain ORM models.

Exports:
- GameSession
- PlayerProgression
- StreakRecord
- AchievementDefinition / AchievementUnlock
- LeaderboardEntry
- DailyChallenge / ChallengeProgress
"""

from .achievement import AchievementDefinition, AchievementUnlock
from .daily_challenge import ChallengeProgress, DailyChallenge
from .game_session import GameSession
from .leaderboard import GLOBAL_SCOPE, LeaderboardEntry
from .player_progression import PlayerProgression
from .streak import StreakRecord

__all__ = [
    "GameSession",
    "PlayerProgression",
    "StreakRecord",
    "AchievementDefinition",
    "AchievementUnlock",
    "LeaderboardEntry",
    "GLOBAL_SCOPE",
    "DailyChallenge",
    "ChallengeProgress",
]

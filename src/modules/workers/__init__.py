"""
Workers module: queue poll loops per job type and the pool that runs them.
"""

from .achievement import AchievementWorker
from .base import JobWorker, UnsupportedPayloadError
from .challenge import ChallengeWorker
from .leaderboard import LeaderboardWorker
from .pool import WorkerPool

__all__ = [
    "JobWorker",
    "UnsupportedPayloadError",
    "AchievementWorker",
    "LeaderboardWorker",
    "ChallengeWorker",
    "WorkerPool",
]

"""
Queue module: durable job store and typed job payloads.
"""

from .jobs import (
    AchievementJobPayload,
    ChallengeJobPayload,
    JobPayload,
    LeaderboardJobPayload,
    UnsupportedJobPayload,
    parse_payload,
)
from .service import JobQueueService

__all__ = [
    "JobQueueService",
    "JobPayload",
    "AchievementJobPayload",
    "LeaderboardJobPayload",
    "ChallengeJobPayload",
    "UnsupportedJobPayload",
    "parse_payload",
]

"""
Challenge module: daily challenge progress and rewards.
"""

from .service import ChallengeCompletion, ChallengeService, progress_value

__all__ = ["ChallengeService", "ChallengeCompletion", "progress_value"]

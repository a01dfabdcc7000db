"""
Arcadia Reward Constants

Purpose
-------
Domain-level constants for the reward formulas: points, experience,
leveling, rating and streaks. Infrastructure limits (timeouts, TTLs, queue
tunables) live in Config / ConfigManager instead.

Design Notes
------------
- Values are annotated with typing.Final to signal immutability
- Grouped by reward system
- Formulas take these as defaults; callers may pass overrides
"""

from __future__ import annotations

from typing import Dict, Final, List, Tuple

# ============================================================================
# POINTS
# ============================================================================

DEFAULT_BASE_POINTS: Final[int] = 100
PREMIUM_POINTS_BONUS_RATE: Final[float] = 0.10
SPEED_BONUS_RATE: Final[float] = 0.5  # up to +50% of base
SPEED_BONUS_MIN_TIME_REMAINING: Final[float] = 0.25  # strictly above 25% of the limit left
STREAK_BONUS_SCALE: Final[int] = 10
CONSOLATION_RATE: Final[float] = 0.10

# ============================================================================
# EXPERIENCE
# ============================================================================

XP_BASE_RATE: Final[float] = 0.5  # XP base is half the points base
XP_PERFORMANCE_BONUS_RATE: Final[float] = 0.2
XP_PREMIUM_BONUS_RATE: Final[float] = 0.15

OUTCOME_XP_MULTIPLIERS: Final[Dict[str, float]] = {
    "win": 1.0,
    "draw": 0.5,
    "loss": 0.25,
    "incomplete": 0.0,
}

# ============================================================================
# LEVELING
# ============================================================================

LEVEL_CAP: Final[int] = 100
LEVEL_XP_BASE: Final[int] = 100
LEVEL_XP_SCALE: Final[float] = 0.1
LEVEL_UP_POINTS_PER_LEVEL: Final[int] = 50

LEVEL_TITLES: Final[Dict[int, str]] = {
    5: "Novice",
    10: "Adept",
    15: "Expert",
    20: "Master",
    30: "Champion",
    40: "Legend",
    50: "Mythic",
    75: "Transcendent",
    100: "Immortal",
}

LEVEL_UNLOCKS: Final[Dict[int, Tuple[str, ...]]] = {
    3: ("Daily Challenges",),
    5: ("Leaderboards",),
    10: ("Rewards Store",),
    15: ("Custom Avatars",),
    20: ("Referral Program",),
    25: ("Quests System",),
}

# ============================================================================
# RATING
# ============================================================================

STARTING_RATING: Final[int] = 1200

# (exclusive upper bound, k) evaluated in order; 16 above the last bound
K_FACTOR_STEPS: Final[Tuple[Tuple[int, int], ...]] = (
    (1400, 40),
    (1800, 32),
    (2200, 24),
)
K_FACTOR_FLOOR: Final[int] = 16

DEFAULT_OPPONENT_RATINGS: Final[Dict[str, int]] = {
    "easy": 800,
    "medium": 1200,
    "hard": 1600,
    "expert": 2000,
}

GAME_RESULT_SCORES: Final[Dict[str, float]] = {
    "win": 1.0,
    "draw": 0.5,
    "loss": 0.0,
    "incomplete": 0.0,
}

# ============================================================================
# STREAKS
# ============================================================================

STREAK_MULTIPLIER_STEP: Final[float] = 0.05
STREAK_MULTIPLIER_CAP: Final[float] = 3.0
STREAK_MILESTONES: Final[List[int]] = [3, 7, 14, 30, 50, 100]

# ============================================================================
# JOB QUEUE
# ============================================================================

DEFAULT_BACKOFF_MINUTES: Final[List[int]] = [1, 5, 15, 60, 1440]
DEFAULT_MAX_ATTEMPTS: Final[int] = 5

# ============================================================================
# ACHIEVEMENTS
# ============================================================================

RECENT_UNLOCKS_LIMIT: Final[int] = 5

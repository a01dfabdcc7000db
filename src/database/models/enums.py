"""
Database Model Enums
====================

Type-safe constants for categorical columns across the reward schema.
Columns store the `.value` string; services compare against these enums.
"""

from __future__ import annotations

import enum


class SessionStatus(str, enum.Enum):
    """
    Lifecycle of a game session.

    in_progress -> completed | abandoned. Both targets are terminal.
    `failed` is reserved for sessions closed by external tooling.
    """

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    FAILED = "failed"


class SessionOutcome(str, enum.Enum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"
    INCOMPLETE = "incomplete"


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXPERT = "expert"


class StreakType(str, enum.Enum):
    WIN = "win"
    DAILY_LOGIN = "daily_login"


class CriteriaType(str, enum.Enum):
    """Closed set of achievement criteria kinds."""

    GAMES_PLAYED = "games_played"
    WINS = "wins"
    STREAK = "streak"
    LEVEL_REACHED = "level_reached"
    PERFECT_SCORE = "perfect_score"
    ACCURACY = "accuracy"
    POINTS_EARNED = "points_earned"
    CUSTOM = "custom"
    # Scoped to a secondary domain (e.g. a course); values are caller-supplied
    FIRST_UNIT = "first_unit"
    UNITS_COMPLETED = "units_completed"
    DOMAIN_COMPLETED = "domain_completed"
    PERFECT_FINAL_ASSESSMENT = "perfect_final_assessment"
    UNIT_STREAK = "unit_streak"


class LedgerEntryType(str, enum.Enum):
    EARN = "earn"
    SPEND = "spend"


class LedgerSource(str, enum.Enum):
    GAME_SESSION = "game_session"
    ACHIEVEMENT = "achievement"
    DAILY_CHALLENGE = "daily_challenge"
    REDEMPTION = "redemption"


class JobType(str, enum.Enum):
    ACHIEVEMENT = "achievement"
    LEADERBOARD = "leaderboard"
    CHALLENGE = "challenge"


class JobStatus(str, enum.Enum):
    """pending -> processing -> completed | pending (retry) | failed (dead letter)."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class LeaderboardCategory(str, enum.Enum):
    """
    Categories for leaderboard rankings.

    Each category represents a different competitive metric.
    """

    POINTS_BALANCE = "points_balance"
    POINTS_LIFETIME = "points_lifetime"
    XP_TOTAL = "xp_total"
    LEVEL = "level"
    WIN_STREAK = "win_streak"
    DAILY_STREAK = "daily_streak"
    GAMES_WON = "games_won"
    RATING = "rating"


class LeaderboardPeriod(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ALL_TIME = "all_time"


class ChallengeType(str, enum.Enum):
    GAMES_PLAYED = "games_played"
    GAMES_WON = "games_won"
    POINTS_EARNED = "points_earned"
    XP_EARNED = "xp_earned"
    SPECIFIC_ACTIVITY = "specific_activity"
    WIN_STREAK = "win_streak"
    PERFECT_GAMES = "perfect_games"
    PLAY_CONSECUTIVE = "play_consecutive"

"""
Database Models Package
========================

SQLAlchemy ORM models for the Arcadia rewards core, organized by domain.

- Schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from IdMixin / TimestampMixin
- Explicit foreign key constraints with CASCADE rules
- Optimistic locking via `version_id_col` for rows mutated concurrently

Domain Organization:
--------------------
- core: Player identity, activity catalogue, brand multipliers
- progression: Sessions, progression, streaks, achievements, leaderboards, challenges
- economy: Wallet and ledger
- queue: Deferred job records
- enums: Shared type-safe enumerations
"""

from src.core.database.base import Base

from .core import Activity, BrandConfig, Player
from .economy import LedgerEntry, Wallet
from .progression import (
    GLOBAL_SCOPE,
    AchievementDefinition,
    AchievementUnlock,
    ChallengeProgress,
    DailyChallenge,
    GameSession,
    LeaderboardEntry,
    PlayerProgression,
    StreakRecord,
)
from .queue import JobRecord

from . import enums

__all__ = [
    "Base",
    # Core
    "Player",
    "Activity",
    "BrandConfig",
    # Progression
    "GameSession",
    "PlayerProgression",
    "StreakRecord",
    "AchievementDefinition",
    "AchievementUnlock",
    "LeaderboardEntry",
    "GLOBAL_SCOPE",
    "DailyChallenge",
    "ChallengeProgress",
    # Economy
    "Wallet",
    "LedgerEntry",
    # Queue
    "JobRecord",
    # Enums
    "enums",
]

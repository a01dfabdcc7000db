"""
Player Progression Model
========================

One row per player: level, experience, cumulative statistics, per-activity
stats and the achievement summary.

Invariant at rest: `current_xp < xp_to_next_level`. Only the session
orchestrator and reward grants (through the shared level-up routine) write
level/XP columns.

JSON columns (`activity_stats`, `recent_unlocks`) must be reassigned, not
mutated in place, for the ORM to flush them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, JSONType, TimestampMixin


class PlayerProgression(Base, IdMixin, TimestampMixin):
    """Level, XP and lifetime statistics for one player."""

    __tablename__ = "player_progression"
    __table_args__ = (
        Index("ix_player_progression_player_id", "player_id", unique=True),
        Index("ix_player_progression_level", "level"),
        Index("ix_player_progression_total_xp", "total_xp"),
    )

    # ========================================================================
    # PRIMARY KEY & FOREIGN KEY
    # ========================================================================

    player_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
        doc="Owning player",
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Optimistic locking version for concurrent updates",
    )

    # ========================================================================
    # LEVEL & EXPERIENCE
    # ========================================================================

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    current_xp: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        doc="XP accumulated toward the next level",
    )

    xp_to_next_level: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=110,
        doc="XP required to leave the current level",
    )

    total_xp: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        doc="Lifetime XP credited; never decreases",
    )

    last_level_up: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    # ========================================================================
    # STATISTICS
    # ========================================================================

    games_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    draws: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    current_streak: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Mirror of the win streak record",
    )
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_play_time_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    average_session_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    last_played_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    activity_stats: Mapped[Dict[str, Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        doc="activity id -> {plays, wins, best_score, rating}",
    )

    # ========================================================================
    # ACHIEVEMENT SUMMARY
    # ========================================================================

    achievements_unlocked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recent_unlocks: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        doc="Most recent unlocks, newest last, bounded length",
    )

    __mapper_args__ = {"version_id_col": version}

"""
Achievement catalogue and per-player unlock records.

Schema only.

- `AchievementDefinition`: managed externally; the core reads it and bumps
  `unlock_count`.
- `AchievementUnlock`: one per (player, definition). Once `unlocked_at` is
  set the record is frozen except for `notification_sent`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, JSONType, TimestampMixin


class AchievementDefinition(Base, IdMixin, TimestampMixin):
    """A typed unlock predicate plus its reward."""

    __tablename__ = "achievement_definitions"
    __table_args__ = (
        Index("ix_achievement_definitions_code", "code", unique=True),
        Index("ix_achievement_definitions_active", "is_active", "category"),
    )

    code: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="general")

    # ========================================================================
    # CRITERIA
    # ========================================================================

    criteria_type: Mapped[str] = mapped_column(String(40), nullable=False)

    criteria_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Schema version of criteria_params",
    )

    target_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    scope_filter: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        doc="Activity slug or secondary-domain id the criterion is restricted to",
    )

    criteria_params: Mapped[Dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    # ========================================================================
    # REWARD
    # ========================================================================

    reward_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reward_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    unlock_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Global number of players who unlocked this",
    )


class AchievementUnlock(Base, IdMixin, TimestampMixin):
    """Progress and unlock state of one definition for one player."""

    __tablename__ = "achievement_unlocks"
    __table_args__ = (
        UniqueConstraint(
            "player_id", "achievement_id", name="uq_achievement_unlocks_player_achievement"
        ),
        Index("ix_achievement_unlocks_player_unlocked", "player_id", "unlocked_at"),
    )

    player_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )

    achievement_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("achievement_definitions.id", ondelete="CASCADE"),
        nullable=False,
    )

    progress_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    unlocked_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    session_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("game_sessions.id", ondelete="SET NULL"),
        nullable=True,
        doc="Session whose completion produced the unlock",
    )

    rewards_granted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

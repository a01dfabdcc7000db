"""
Daily challenges and per-player challenge progress.

Schema only. Challenge generation is external; the core tracks progress
and grants the reward once on completion.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, JSONType, TimestampMixin


class DailyChallenge(Base, IdMixin, TimestampMixin):
    """A time-boxed goal such as "win 3 games today"."""

    __tablename__ = "daily_challenges"
    __table_args__ = (
        Index("ix_daily_challenges_window", "is_active", "starts_at", "ends_at"),
    )

    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    challenge_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)

    activity_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=True,
        doc="Required for specific_activity challenges",
    )

    metric: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        doc="specific_activity: 'win' counts only wins, anything else counts plays",
    )

    reward_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reward_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    starts_at: Mapped[datetime] = mapped_column(nullable=False)
    ends_at: Mapped[datetime] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    total_completions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ChallengeProgress(Base, IdMixin, TimestampMixin):
    """Progress of one player on one daily challenge."""

    __tablename__ = "challenge_progress"
    __table_args__ = (
        UniqueConstraint("player_id", "challenge_id", name="uq_challenge_progress_player"),
    )

    player_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )

    challenge_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("daily_challenges.id", ondelete="CASCADE"),
        nullable=False,
    )

    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    rewards_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    processed_session_ids: Mapped[List[int]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        doc="Sessions already counted; makes job re-runs no-ops",
    )

"""
StreakRecord: consecutive qualifying outcomes per (player, streak type).

Schema only. Invariant: `best_length >= current_length`.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, JSONType, TimestampMixin


class StreakRecord(Base, IdMixin, TimestampMixin):
    """Current and best streak with its reward multiplier."""

    __tablename__ = "streak_records"
    __table_args__ = (
        UniqueConstraint("player_id", "streak_type", name="uq_streak_records_player_type"),
        Index("ix_streak_records_type_expires", "streak_type", "expires_at"),
        Index("ix_streak_records_type_current", "streak_type", "current_length"),
    )

    player_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )

    streak_type: Mapped[str] = mapped_column(String(32), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    current_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    multiplier: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=1.0,
        doc="min(3.0, 1 + current * 0.05)",
    )

    last_activity_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    streak_started_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    expires_at: Mapped[Optional[datetime]] = mapped_column(
        nullable=True,
        doc="Daily-login streaks lapse after this instant",
    )

    milestones_reached: Mapped[List[int]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    __mapper_args__ = {"version_id_col": version}

"""
GameSession: one bounded unit of scored player activity.

Schema only. Status moves once from `in_progress` to a terminal state;
reward columns are written exactly once, on the transition to `completed`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, JSONType, TimestampMixin, utc_now
from ..enums import SessionStatus


class GameSession(Base, IdMixin, TimestampMixin):
    """A play session and the rewards granted for it."""

    __tablename__ = "game_sessions"
    __table_args__ = (
        Index("ix_game_sessions_player_started", "player_id", "started_at"),
        Index("ix_game_sessions_status", "status"),
        Index("ix_game_sessions_activity_ended", "activity_id", "ended_at"),
    )

    player_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )

    activity_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.IN_PROGRESS.value,
    )

    started_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)
    ended_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    context: Mapped[Dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        doc="Caller-supplied start context (device, mode, scope ids)",
    )

    # ========================================================================
    # OUTCOME FACTS
    # ========================================================================

    outcome: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    accuracy: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    difficulty: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    is_ghost: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Practice run: completed without rewards",
    )

    # ========================================================================
    # REWARDS (written once on completion)
    # ========================================================================

    rewards_granted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    achievement_ids: Mapped[List[int]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        doc="Achievements unlocked inline by this completion",
    )

    formula: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Human-readable points computation",
    )

    __mapper_args__ = {"version_id_col": version}

"""
JobRecord: durable deferred work item with retry metadata.

Schema only. Lifecycle:

    pending -> processing -> completed
                          -> pending (retry, next_retry_at pushed out)
                          -> failed  (dead letter, terminal until requeued)

Invariant: `attempts <= max_attempts`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, JSONType, TimestampMixin, utc_now
from ..enums import JobStatus


class JobRecord(Base, IdMixin, TimestampMixin):
    """A unit of non-critical work for an achievement, leaderboard or challenge worker."""

    __tablename__ = "job_records"
    __table_args__ = (
        Index("ix_job_records_status_next_retry", "status", "next_retry_at"),
        Index("ix_job_records_type_status", "job_type", "status"),
        Index("ix_job_records_player_created", "player_id", "created_at"),
        Index("ix_job_records_status_completed", "status", "completed_at"),
    )

    job_type: Mapped[str] = mapped_column(String(32), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=JobStatus.PENDING.value,
    )

    player_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=True,
        doc="NULL for global jobs such as a full leaderboard rebuild",
    )

    session_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("game_sessions.id", ondelete="SET NULL"),
        nullable=True,
    )

    payload: Mapped[Dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
        doc="Versioned, typed payload (see src.modules.queue.jobs)",
    )

    # ========================================================================
    # RETRY METADATA
    # ========================================================================

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    next_retry_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)
    started_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    last_error: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
        doc="{message, error_type, traceback, timestamp} of the latest failure",
    )

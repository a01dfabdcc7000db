"""
LeaderboardEntry: materialized ranking rows per category, period and brand.
Schema only.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, TimestampMixin


GLOBAL_SCOPE = "global"


class LeaderboardEntry(Base, IdMixin, TimestampMixin):
    """
    Position of a player in one leaderboard.

    `brand_scope` is the brand id, or "global" for the unfiltered board.
    """

    __tablename__ = "leaderboard_entries"
    __table_args__ = (
        UniqueConstraint(
            "category", "period", "brand_scope", "player_id",
            name="uq_leaderboard_entries_board_player",
        ),
        Index("ix_leaderboard_board_rank", "category", "period", "brand_scope", "rank"),
        Index("ix_leaderboard_player", "player_id"),
    )

    player_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )

    username: Mapped[str] = mapped_column(String(100), nullable=False)

    category: Mapped[str] = mapped_column(String(32), nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    brand_scope: Mapped[str] = mapped_column(String(64), nullable=False, default=GLOBAL_SCOPE)

    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    rank_change: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False)

    snapshot_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

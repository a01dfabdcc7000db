"""
Player identity model.

Read-only to the rewards core: the player directory confirms a player exists
and supplies the premium flag, brand and active boosts that feed the scoring
formulas. Registration and profile edits are owned elsewhere.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, IdMixin, TimestampMixin


class Player(Base, IdMixin, TimestampMixin):
    """Player identity plus the multipliers the reward formulas consume."""

    __tablename__ = "players"
    __table_args__ = (
        Index("ix_players_username", "username", unique=True),
        Index("ix_players_brand", "brand_id"),
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    username: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Display name (unique)",
    )

    brand_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        doc="White-label brand the player belongs to",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Inactive players cannot start sessions",
    )

    # ========================================================================
    # PREMIUM & BOOSTS
    # ========================================================================

    is_premium: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Premium tier grants flat point and XP bonuses",
    )

    points_boost_multiplier: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=1.0,
        doc="Active points boost; ignored once boost_expires_at has passed",
    )

    xp_boost_multiplier: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=1.0,
        doc="Active XP boost; ignored once boost_expires_at has passed",
    )

    boost_expires_at: Mapped[Optional[datetime]] = mapped_column(
        nullable=True,
        doc="Expiry for both boosts; NULL means the boosts do not expire",
    )

"""
Activity catalogue and per-brand multipliers.

Schema only. `Activity` carries the scoring knobs of a game; `BrandConfig`
carries the opaque points multiplier a brand applies to one activity (or to
all activities when `activity_id` is NULL).
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, TimestampMixin


class Activity(Base, IdMixin, TimestampMixin):
    """A playable activity and its scoring configuration."""

    __tablename__ = "activities"
    __table_args__ = (Index("ix_activities_slug", "slug", unique=True),)

    slug: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    base_points: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=100,
        doc="Scoring base; XP base is half of this",
    )

    time_limit_seconds: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Time limit used for the speed bonus",
    )

    time_bonus: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    streak_bonus: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    accuracy_multiplier: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        doc="When set, accuracy adds base * accuracy% * (multiplier - 1)",
    )

    rating_tracked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Competitive mode: completions update a per-activity rating",
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class BrandConfig(Base, IdMixin, TimestampMixin):
    """Brand points multiplier, optionally narrowed to one activity."""

    __tablename__ = "brand_configs"
    __table_args__ = (
        UniqueConstraint("brand_id", "activity_id", name="uq_brand_configs_brand_activity"),
    )

    brand_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    activity_id: Mapped[Optional[int]] = mapped_column(
        BigIntId,
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=True,
        doc="NULL applies the multiplier to every activity of the brand",
    )

    points_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)

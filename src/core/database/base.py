"""
ORM base classes and column helpers shared by every Arcadia model.

- `Base`: declarative base; all models register on `Base.metadata`.
- `IdMixin`: surrogate integer primary key.
- `TimestampMixin`: `created_at` / `updated_at` maintained by the ORM.
- `TZDateTime`: timezone-aware datetimes on every backend. SQLite drops
  tzinfo, so values are normalized to UTC on the way in and re-tagged as UTC
  on the way out.
- `JSONType`: JSONB on PostgreSQL, generic JSON elsewhere.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TZDateTime(TypeDecorator):
    """DateTime that always round-trips as an aware UTC datetime."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


JSONType = JSON().with_variant(JSONB(), "postgresql")

# BIGINT autoincrement is not supported by SQLite; INTEGER PRIMARY KEY is
BigIntId = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Declarative base for all Arcadia models."""

    type_annotation_map = {
        datetime: TZDateTime(),
    }

    def __repr__(self) -> str:
        pk = getattr(self, "id", None)
        return f"<{self.__class__.__name__} id={pk}>"


class IdMixin:
    id: Mapped[int] = mapped_column(
        BigIntId,
        primary_key=True,
        autoincrement=True,
        doc="Surrogate primary key",
    )


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime(),
        nullable=False,
        default=utc_now,
        doc="Row creation time (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime(),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
        doc="Last modification time (UTC)",
    )

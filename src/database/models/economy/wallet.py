"""
Wallet and LedgerEntry: points balance and its append-only audit trail.

Schema only.

Invariant: `balance == lifetime_earned - lifetime_spent`. Every wallet
mutation appends exactly one LedgerEntry; ledger rows are never updated.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntId, IdMixin, TimestampMixin, utc_now


class Wallet(Base, IdMixin, TimestampMixin):
    """Points balance for one player."""

    __tablename__ = "wallets"
    __table_args__ = (
        Index("ix_wallets_player_id", "player_id", unique=True),
        Index("ix_wallets_balance", "balance"),
        Index("ix_wallets_lifetime_earned", "lifetime_earned"),
    )

    player_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Optimistic locking version for concurrent updates",
    )

    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    lifetime_spent: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": version}


class LedgerEntry(Base, IdMixin):
    """A single balance change. Immutable after insert."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("ix_ledger_entries_player_time", "player_id", "created_at"),
        Index("ix_ledger_entries_source", "source_type", "source_reference_id"),
    )

    player_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("players.id", ondelete="CASCADE"),
        nullable=False,
    )

    wallet_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("wallets.id", ondelete="CASCADE"),
        nullable=False,
    )

    entry_type: Mapped[str] = mapped_column(String(16), nullable=False)

    delta: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        doc="Signed change: positive for earn, negative for spend",
    )
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    source_reference_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)

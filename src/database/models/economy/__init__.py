"""
Economy domain ORM models.

Exports:
- Wallet
- LedgerEntry
"""

from .wallet import LedgerEntry, Wallet

__all__ = [
    "Wallet",
    "LedgerEntry",
]

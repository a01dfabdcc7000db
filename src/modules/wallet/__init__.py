"""
Wallet module: points balance and ledger.
"""

from .service import WalletRepository, WalletService

__all__ = ["WalletService", "WalletRepository"]

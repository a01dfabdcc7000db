"""
Wallet Service
==============

Purpose
-------
Owns the points balance and its append-only ledger.

Domain
------
- Credit points inside a caller-owned transaction (session completion,
  achievement rewards, challenge rewards)
- Spend points for redemptions in a dedicated transaction
- Read balances and ledger history

Invariant
---------
`balance == lifetime_earned - lifetime_spent` after every mutation, and every
mutation appends exactly one LedgerEntry in the same transaction. Ledger
rows for a player are written in the order the wallet was mutated because
wallet writers serialize on the player lock and the wallet row lock.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from src.core.database.service import DatabaseService
from src.core.event.types import RewardEvent
from src.core.logging.logger import LogContext, get_logger
from src.database.models.economy.wallet import LedgerEntry, Wallet
from src.database.models.enums import LedgerEntryType, LedgerSource
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import NotFoundError
from src.modules.shared.locks import PlayerLockRegistry, player_locks
from src.modules.shared.validators import validate_positive_amount, validate_resource_cost

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


# ============================================================================
# Repositories
# ============================================================================


class WalletRepository(BaseRepository[Wallet]):
    async def find_by_player(
        self, session: AsyncSession, player_id: int, for_update: bool = False
    ) -> Optional[Wallet]:
        return await self.find_one_where(
            session, Wallet.player_id == player_id, for_update=for_update
        )


class LedgerRepository(BaseRepository[LedgerEntry]):
    async def history(
        self, session: AsyncSession, player_id: int, limit: int
    ) -> List[LedgerEntry]:
        return await self.find_many_where(
            session,
            LedgerEntry.player_id == player_id,
            order_by=[LedgerEntry.created_at.desc(), LedgerEntry.id.desc()],
            limit=limit,
        )


# ============================================================================
# WalletService
# ============================================================================


class WalletService(BaseService):
    """
    Points wallet with an append-only ledger.

    Public Methods
    --------------
    - get_or_create_wallet() -> Load (optionally locked) or lazily create a wallet
    - credit() -> Add points inside the caller's transaction
    - spend() -> Redeem points in a dedicated transaction
    - get_wallet() -> Read balance summary
    - get_ledger() -> Read recent ledger entries
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        locks: Optional[PlayerLockRegistry] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._wallet_repo = WalletRepository(
            model_class=Wallet, logger=get_logger(f"{__name__}.WalletRepository")
        )
        self._ledger_repo = LedgerRepository(
            model_class=LedgerEntry, logger=get_logger(f"{__name__}.LedgerRepository")
        )
        self._locks = locks or player_locks

    # ========================================================================
    # Transaction-scoped operations
    # ========================================================================

    async def get_or_create_wallet(
        self, session: AsyncSession, player_id: int, for_update: bool = True
    ) -> Wallet:
        """Load the player's wallet, creating an empty one on first use."""
        wallet = await self._wallet_repo.find_by_player(session, player_id, for_update=for_update)
        if wallet is not None:
            return wallet

        wallet = Wallet(player_id=player_id, balance=0, lifetime_earned=0, lifetime_spent=0)
        self._wallet_repo.add(session, wallet)
        await self._wallet_repo.flush(session)

        self.log.info("Wallet created", extra={"player_id": player_id})
        return wallet

    async def credit(
        self,
        session: AsyncSession,
        player_id: int,
        amount: int,
        source_type: LedgerSource | str,
        source_reference_id: Optional[str] = None,
        description: str = "",
        wallet: Optional[Wallet] = None,
    ) -> Optional[LedgerEntry]:
        """
        Credit points to a wallet within the caller's transaction.

        A zero amount is a no-op and writes no ledger entry.

        Args:
            session: Active transaction session
            player_id: Wallet owner
            amount: Points to credit (>= 0)
            source_type: Ledger source (game_session, achievement, ...)
            source_reference_id: Id of the originating record
            description: Human-readable ledger description
            wallet: Already-locked wallet row, if the caller holds one

        Returns:
            The appended LedgerEntry, or None when amount is 0
        """
        if amount == 0:
            return None
        validate_positive_amount("amount", amount)

        if wallet is None:
            wallet = await self.get_or_create_wallet(session, player_id)

        balance_before = wallet.balance
        wallet.balance = balance_before + amount
        wallet.lifetime_earned = wallet.lifetime_earned + amount

        entry = LedgerEntry(
            player_id=player_id,
            wallet_id=wallet.id,
            entry_type=LedgerEntryType.EARN.value,
            delta=amount,
            balance_before=balance_before,
            balance_after=wallet.balance,
            source_type=str(getattr(source_type, "value", source_type)),
            source_reference_id=source_reference_id,
            description=description,
        )
        self._ledger_repo.add(session, entry)
        await self._ledger_repo.flush(session)

        self.log.info(
            f"Wallet credited +{amount}",
            extra={
                "player_id": player_id,
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": wallet.balance,
                "source_type": entry.source_type,
                "source_reference_id": source_reference_id,
            },
        )
        return entry

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def spend(
        self,
        player_id: int,
        amount: int,
        source_reference_id: Optional[str] = None,
        description: str = "",
        source_type: LedgerSource | str = LedgerSource.REDEMPTION,
    ) -> Dict[str, Any]:
        """
        Spend points for a redemption.

        This is a **write operation** using get_transaction() under the
        player lock and a wallet row lock.

        Raises:
            ValidationError: If amount is not positive
            NotFoundError: If the player has no wallet
            InsufficientResourcesError: If the balance is too low
        """
        validate_positive_amount("amount", amount)
        self.log_operation("spend", player_id=player_id, amount=amount)

        async with LogContext(player_id=player_id, operation="wallet.spend"):
            async with self._locks.hold(player_id):
                async with DatabaseService.get_transaction() as session:
                    wallet = await self._wallet_repo.find_by_player(
                        session, player_id, for_update=True
                    )
                    if wallet is None:
                        raise NotFoundError("Wallet", player_id)

                    validate_resource_cost("points", amount, wallet.balance)

                    balance_before = wallet.balance
                    wallet.balance = balance_before - amount
                    wallet.lifetime_spent = wallet.lifetime_spent + amount

                    entry = LedgerEntry(
                        player_id=player_id,
                        wallet_id=wallet.id,
                        entry_type=LedgerEntryType.SPEND.value,
                        delta=-amount,
                        balance_before=balance_before,
                        balance_after=wallet.balance,
                        source_type=str(getattr(source_type, "value", source_type)),
                        source_reference_id=source_reference_id,
                        description=description,
                    )
                    self._ledger_repo.add(session, entry)
                    await self._ledger_repo.flush(session)
                    result = self._wallet_to_dict(wallet)

        await self.emit_event(
            RewardEvent.POINTS_SPENT,
            {
                "player_id": player_id,
                "amount": amount,
                "balance": result["balance"],
                "source_reference_id": source_reference_id,
            },
        )
        return result

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_wallet(self, player_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the player has no wallet yet
        """
        async with DatabaseService.get_session() as session:
            wallet = await self._wallet_repo.find_by_player(session, player_id)
            if wallet is None:
                raise NotFoundError("Wallet", player_id)
            return self._wallet_to_dict(wallet)

    async def get_ledger(self, player_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent ledger entries, newest first."""
        async with DatabaseService.get_session() as session:
            entries = await self._ledger_repo.history(session, player_id, limit)
            return [
                {
                    "id": entry.id,
                    "entry_type": entry.entry_type,
                    "delta": entry.delta,
                    "balance_before": entry.balance_before,
                    "balance_after": entry.balance_after,
                    "source_type": entry.source_type,
                    "source_reference_id": entry.source_reference_id,
                    "description": entry.description,
                    "created_at": entry.created_at.isoformat(),
                }
                for entry in entries
            ]

    @staticmethod
    def _wallet_to_dict(wallet: Wallet) -> Dict[str, Any]:
        return {
            "player_id": wallet.player_id,
            "balance": wallet.balance,
            "lifetime_earned": wallet.lifetime_earned,
            "lifetime_spent": wallet.lifetime_spent,
        }

"""
Integration Tests for WalletService
===================================

Purpose
-------
Verify spending against the points balance and the append-only ledger.
"""

import pytest

from src.core.database.service import DatabaseService
from src.database.models.enums import LedgerSource
from src.modules.shared.exceptions import InsufficientResourcesError, NotFoundError, ValidationError
from tests.conftest import event_payloads


@pytest.fixture
async def funded(container, make_player):
    player_id = await make_player()
    async with DatabaseService.get_transaction() as session:
        await container.wallet.credit(session, player_id, 100, LedgerSource.GAME_SESSION, "1")
    return player_id


@pytest.mark.integration
class TestSpend:
    async def test_spend_debits_and_records(self, container, funded, mock_event_bus):
        # Act
        wallet = await container.wallet.spend(funded, 40, source_reference_id="reward-7")

        # Assert
        assert wallet == {"player_id": funded, "balance": 60, "lifetime_earned": 100, "lifetime_spent": 40}
        ledger = await container.wallet.get_ledger(funded)
        assert [entry["delta"] for entry in ledger] == [-40, 100]
        assert ledger[0]["balance_before"] == 100
        assert ledger[0]["balance_after"] == 60
        assert ledger[0]["source_type"] == "redemption"
        assert event_payloads(mock_event_bus, "points.spent") == [
            {"player_id": funded, "amount": 40, "balance": 60, "source_reference_id": "reward-7"}
        ]

    async def test_insufficient_balance(self, container, funded):
        with pytest.raises(InsufficientResourcesError) as excinfo:
            await container.wallet.spend(funded, 101)

        assert excinfo.value.required == 101
        assert excinfo.value.current == 100
        assert (await container.wallet.get_wallet(funded))["balance"] == 100
        assert len(await container.wallet.get_ledger(funded)) == 1

    async def test_spend_entire_balance(self, container, funded):
        assert (await container.wallet.spend(funded, 100))["balance"] == 0

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_amount_must_be_positive(self, container, funded, amount):
        with pytest.raises(ValidationError):
            await container.wallet.spend(funded, amount)

    async def test_unknown_wallet(self, container, make_player):
        player_id = await make_player()

        with pytest.raises(NotFoundError):
            await container.wallet.spend(player_id, 1)

    async def test_zero_credit_writes_nothing(self, container, funded):
        async with DatabaseService.get_transaction() as session:
            entry = await container.wallet.credit(session, funded, 0, LedgerSource.ACHIEVEMENT)

        assert entry is None
        assert len(await container.wallet.get_ledger(funded)) == 1

    async def test_ledger_limit(self, container, funded):
        await container.wallet.spend(funded, 10)
        await container.wallet.spend(funded, 10)

        ledger = await container.wallet.get_ledger(funded, limit=2)

        assert [entry["delta"] for entry in ledger] == [-10, -10]

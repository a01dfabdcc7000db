"""
Integration Tests for LeaderboardService
========================================

Purpose
-------
Verify board snapshots computed from wallets, progression and sessions:
ordering, rank changes between snapshots, brand scopes and periods.
"""

import pytest

from src.core.database.service import DatabaseService
from src.database.models.enums import LedgerSource
from src.modules.session.result import OutcomeFacts
from src.modules.shared.exceptions import NotFoundError, ValidationError
from tests.conftest import published_events


@pytest.fixture
def fund(container):
    """Credit points straight to a wallet."""

    async def _fund(player_id, amount):
        async with DatabaseService.get_transaction() as session:
            await container.wallet.credit(session, player_id, amount, LedgerSource.GAME_SESSION)

    return _fund


@pytest.mark.integration
class TestPointsBoards:
    async def test_ranks_by_balance(self, container, make_player, fund):
        # Arrange
        alice = await make_player("alice")
        bob = await make_player("bob")
        carol = await make_player("carol")
        await fund(alice, 300)
        await fund(bob, 100)
        await fund(carol, 200)

        # Act
        summary = await container.leaderboards.calculate_leaderboard("points_balance")
        board = await container.leaderboards.get_leaderboard("points_balance")

        # Assert
        assert summary["total_entries"] == 3
        assert summary["snapshot_version"] == 1
        assert [(e["username"], e["rank"], e["value"]) for e in board] == [
            ("alice", 1, 300),
            ("carol", 2, 200),
            ("bob", 3, 100),
        ]

    async def test_rank_change_between_snapshots(self, container, make_player, fund):
        alice = await make_player("alice")
        bob = await make_player("bob")
        carol = await make_player("carol")
        await fund(alice, 300)
        await fund(bob, 100)
        await fund(carol, 200)
        await container.leaderboards.calculate_leaderboard("points_balance")

        await container.wallet.spend(alice, 250)
        summary = await container.leaderboards.calculate_leaderboard("points_balance")

        assert summary["snapshot_version"] == 2
        carol_rank = await container.leaderboards.get_player_rank(carol, "points_balance")
        alice_rank = await container.leaderboards.get_player_rank(alice, "points_balance")
        assert carol_rank["rank"] == 1
        assert carol_rank["rank_change"] == 1
        assert alice_rank["rank"] == 3
        assert alice_rank["rank_change"] == -2

    async def test_lifetime_ignores_spending(self, container, make_player, fund):
        alice = await make_player("alice")
        bob = await make_player("bob")
        await fund(alice, 300)
        await fund(bob, 200)
        await container.wallet.spend(alice, 250)

        await container.leaderboards.calculate_leaderboard("points_lifetime")

        board = await container.leaderboards.get_leaderboard("points_lifetime")
        assert [e["player_id"] for e in board] == [alice, bob]

    async def test_inactive_players_excluded(self, container, make_player, fund):
        active = await make_player("active")
        retired = await make_player("retired", is_active=False)
        await fund(active, 10)
        await fund(retired, 1000)

        await container.leaderboards.calculate_leaderboard("points_balance")

        board = await container.leaderboards.get_leaderboard("points_balance")
        assert [e["player_id"] for e in board] == [active]
        with pytest.raises(NotFoundError):
            await container.leaderboards.get_player_rank(retired, "points_balance")

    async def test_brand_scope(self, container, make_player, fund):
        acme = await make_player("acme-player", brand_id="acme")
        other = await make_player("other-player", brand_id="globex")
        await fund(acme, 10)
        await fund(other, 500)

        summary = await container.leaderboards.calculate_leaderboard("points_balance", brand_id="acme")

        assert summary["brand_scope"] == "acme"
        board = await container.leaderboards.get_leaderboard("points_balance", brand_id="acme")
        assert [e["player_id"] for e in board] == [acme]
        assert await container.leaderboards.get_leaderboard("points_balance") == []

    async def test_pagination(self, container, make_player, fund):
        for amount in (50, 40, 30):
            await fund(await make_player(), amount)
        await container.leaderboards.calculate_leaderboard("points_balance")

        page = await container.leaderboards.get_leaderboard("points_balance", limit=1, offset=1)

        assert [e["value"] for e in page] == [40]

    async def test_calculation_event(self, container, mock_event_bus):
        await container.leaderboards.calculate_leaderboard("level")

        assert "leaderboard.calculated" in published_events(mock_event_bus)


@pytest.mark.integration
class TestSessionBoards:
    async def test_weekly_games_won(self, container, make_player, make_activity):
        activity_id = await make_activity()
        alice = await make_player("alice")
        bob = await make_player("bob")
        for player_id, outcomes in ((alice, ["win", "win"]), (bob, ["win", "loss"])):
            for outcome in outcomes:
                session_id = await container.sessions.start_session(player_id, activity_id)
                await container.sessions.complete_session(session_id, OutcomeFacts(outcome, 50, 100))

        await container.leaderboards.calculate_leaderboard("games_won", "weekly")

        board = await container.leaderboards.get_leaderboard("games_won", "weekly")
        assert [(e["player_id"], e["value"]) for e in board] == [(alice, 2), (bob, 1)]

    async def test_rating_board_uses_best_activity(self, container, make_player, make_activity):
        chess = await make_activity(rating_tracked=True)
        alice = await make_player("alice")
        bob = await make_player("bob")
        for player_id, outcome in ((alice, "win"), (bob, "loss")):
            session_id = await container.sessions.start_session(player_id, chess)
            await container.sessions.complete_session(
                session_id, OutcomeFacts(outcome, 10, 10, difficulty="medium")
            )

        await container.leaderboards.calculate_leaderboard("rating")

        board = await container.leaderboards.get_leaderboard("rating")
        assert [(e["player_id"], e["value"]) for e in board] == [(alice, 1220), (bob, 1180)]

    async def test_calculate_all(self, container, make_player, fund):
        await fund(await make_player(), 10)

        summary = await container.leaderboards.calculate_all_leaderboards()

        assert summary == {"success": True, "calculated": 10, "errors": 0}

    async def test_invalid_board(self, container):
        with pytest.raises(ValidationError):
            await container.leaderboards.get_leaderboard("level", "monthly")

"""
Integration Tests for SessionService
====================================

Purpose
-------
Exercise the session lifecycle end to end against SQLite: start, complete,
abandon, reward grants, conflict retries, timeouts and the deferral of
achievement evaluation to the queue.

Test Coverage
-------------
- Standard completion: points, XP, wallet, ledger, progression, events
- Practice (ghost) sessions move the win streak but grant nothing
- State machine: double completion, abandon idempotency
- Conflict retries exhausted and transaction timeout
- Inline achievement unlocks and their rewards
- Achievement evaluation disabled or failing inline is queued

Testing Strategy
----------------
- Services come from a real ServiceContainer over a per-test database
- Events are captured on a mock bus
"""

import asyncio

import pytest
from sqlalchemy.orm.exc import StaleDataError

from src.core.config.manager import ConfigManager
from src.modules.session.result import OutcomeFacts
from src.modules.shared.exceptions import (
    InvalidStateError,
    NotFoundError,
    TransactionConflictError,
    TransactionTimeoutError,
    ValidationError,
)
from tests.conftest import event_payloads, published_events


WIN_80 = OutcomeFacts("win", 80, 100)


@pytest.fixture
async def started(container, make_player, make_activity):
    """A new player with one in-progress session on a 100-point activity."""

    async def _start(practice=False, **player_fields):
        player_id = await make_player(**player_fields)
        activity_id = await make_activity(base_points=100)
        session_id = await container.sessions.start_session(player_id, activity_id, practice=practice)
        return player_id, activity_id, session_id

    return _start


# ============================================================================
# STANDARD COMPLETION
# ============================================================================


@pytest.mark.integration
class TestCompleteSession:
    """Rewards granted by a standard completion."""

    async def test_win_grants_points_and_experience(self, container, started):
        # Arrange
        player_id, _, session_id = await started()

        # Act
        result = await container.sessions.complete_session(session_id, WIN_80)

        # Assert: streak 1 adds floor(10 * ln 2) = 6 to 80% of 100
        assert result.points_awarded == 86
        assert result.xp_awarded == 58
        assert result.balance == 86
        assert result.streak.current == 1
        assert result.policy == "standard"
        assert result.formula == "100 base × 80% score + 6 streak = 86"
        assert result.deferred == []
        assert result.hook_failures == []

    async def test_wallet_and_ledger(self, container, started):
        player_id, _, session_id = await started()

        await container.sessions.complete_session(session_id, WIN_80)

        wallet = await container.wallet.get_wallet(player_id)
        ledger = await container.wallet.get_ledger(player_id)
        assert wallet["balance"] == 86
        assert wallet["lifetime_earned"] == 86
        assert len(ledger) == 1
        assert ledger[0]["delta"] == 86
        assert ledger[0]["balance_after"] == 86
        assert ledger[0]["source_type"] == "game_session"
        assert ledger[0]["source_reference_id"] == str(session_id)

    async def test_progression_statistics(self, container, started):
        player_id, activity_id, session_id = await started()

        await container.sessions.complete_session(session_id, WIN_80)

        progression = await container.progression.get_progression(player_id)
        assert progression["games_played"] == 1
        assert progression["wins"] == 1
        assert progression["total_xp"] == 58
        assert progression["current_streak"] == 1
        assert progression["activity_stats"][str(activity_id)]["best_score"] == 80

    async def test_progression_estimates_next_level(self, container, started):
        player_id, _, session_id = await started()

        await container.sessions.complete_session(session_id, WIN_80)

        progression = await container.progression.get_progression(player_id)
        assert progression["level"] == 1
        assert progression["level_progress_percent"] == round(58 / 110 * 100, 2)
        assert progression["next_level_estimate"] == {"games_needed": 1, "xp_remaining": 52}

    async def test_session_row_is_finalized(self, container, started):
        _, _, session_id = await started()

        await container.sessions.complete_session(session_id, OutcomeFacts("win", 80, 100, accuracy=90.0))

        summary = await container.sessions.get_session(session_id)
        assert summary["status"] == "completed"
        assert summary["outcome"] == "win"
        assert summary["accuracy"] == 90.0
        assert summary["rewards_granted"] is True
        assert summary["points_awarded"] == 86
        assert summary["ended_at"] is not None

    async def test_events_published_after_commit(self, container, started, mock_event_bus):
        player_id, _, session_id = await started()

        await container.sessions.complete_session(session_id, WIN_80)

        assert published_events(mock_event_bus) == [
            "session.started",
            "session.completed",
            "points.earned",
        ]
        earned = event_payloads(mock_event_bus, "points.earned")[0]
        assert earned["player_id"] == player_id
        assert earned["amount"] == 86

    async def test_challenge_progress_is_queued(self, container, started):
        _, _, session_id = await started()

        await container.sessions.complete_session(session_id, WIN_80)

        jobs = await container.queue.fetch_ready("challenge")
        assert [job.session_id for job in jobs] == [session_id]

    async def test_loss_resets_streak(self, container, make_player, make_activity):
        player_id = await make_player()
        activity_id = await make_activity(base_points=100)

        first = await container.sessions.start_session(player_id, activity_id)
        await container.sessions.complete_session(first, WIN_80)
        second = await container.sessions.start_session(player_id, activity_id)
        result = await container.sessions.complete_session(second, OutcomeFacts("loss", 30, 100))

        assert result.streak.current == 0
        assert result.streak.broken is True
        assert result.points_awarded == 30

    async def test_rating_tracked_activity(self, container, make_player, make_activity):
        player_id = await make_player()
        activity_id = await make_activity(rating_tracked=True)
        session_id = await container.sessions.start_session(player_id, activity_id)

        result = await container.sessions.complete_session(
            session_id, OutcomeFacts("win", 10, 10, difficulty="medium")
        )

        assert result.rating.delta == 20
        assert result.rating.new_rating == 1220

    async def test_invalid_facts_rejected_before_writes(self, container, started):
        _, _, session_id = await started()

        with pytest.raises(ValidationError):
            await container.sessions.complete_session(session_id, OutcomeFacts("win", -1, 100))

        summary = await container.sessions.get_session(session_id)
        assert summary["status"] == "in_progress"

    async def test_unknown_session(self, container):
        with pytest.raises(NotFoundError):
            await container.sessions.complete_session(999, WIN_80)


# ============================================================================
# PRACTICE SESSIONS
# ============================================================================


@pytest.mark.integration
class TestPracticeSessions:
    """Ghost sessions move the win streak but grant nothing."""

    async def test_practice_flag_on_completion(self, container, started, mock_event_bus):
        player_id, _, session_id = await started()

        result = await container.sessions.complete_session(session_id, WIN_80, practice=True)

        assert result.policy == "practice"
        assert result.points_awarded == 0
        assert result.xp_awarded == 0
        assert result.streak.current == 1
        assert await container.wallet.get_ledger(player_id) == []
        progression = await container.progression.get_progression(player_id)
        assert progression["games_played"] == 0
        assert published_events(mock_event_bus)[-1] == "session.completed"
        assert await container.queue.fetch_ready("challenge") == []

    async def test_practice_start_implies_practice_completion(self, container, started):
        _, _, session_id = await started(practice=True)

        result = await container.sessions.complete_session(session_id, WIN_80)

        summary = await container.sessions.get_session(session_id)
        assert result.policy == "practice"
        assert summary["is_ghost"] is True
        assert summary["rewards_granted"] is False

    async def test_practice_loss_breaks_win_streak(self, container, started):
        player_id, activity_id, first = await started()
        await container.sessions.complete_session(first, WIN_80)
        second = await container.sessions.start_session(player_id, activity_id)
        await container.sessions.complete_session(second, WIN_80)
        practice = await container.sessions.start_session(player_id, activity_id)

        result = await container.sessions.complete_session(
            practice, OutcomeFacts("loss", 0, 100), practice=True
        )

        assert result.streak.current == 0
        assert result.streak.broken is True
        assert result.points_awarded == 0
        streaks = await container.streaks.get_player_streaks(player_id)
        assert streaks["win"]["current"] == 0
        assert streaks["win"]["best"] == 2
        wallet = await container.wallet.get_wallet(player_id)
        assert wallet["balance"] == wallet["lifetime_earned"]
        assert len(await container.wallet.get_ledger(player_id)) == 2


# ============================================================================
# STATE MACHINE
# ============================================================================


@pytest.mark.integration
class TestSessionStateMachine:
    async def test_second_completion_rejected(self, container, started):
        player_id, _, session_id = await started()
        await container.sessions.complete_session(session_id, WIN_80)

        with pytest.raises(InvalidStateError):
            await container.sessions.complete_session(session_id, WIN_80)

        wallet = await container.wallet.get_wallet(player_id)
        assert wallet["balance"] == 86

    async def test_abandon_is_idempotent(self, container, started, mock_event_bus):
        _, _, session_id = await started()

        first = await container.sessions.abandon_session(session_id)
        second = await container.sessions.abandon_session(session_id)

        assert first["status"] == "abandoned"
        assert second["status"] == "abandoned"
        assert published_events(mock_event_bus).count("session.abandoned") == 1

    async def test_abandoned_session_cannot_complete(self, container, started):
        _, _, session_id = await started()
        await container.sessions.abandon_session(session_id)

        with pytest.raises(InvalidStateError):
            await container.sessions.complete_session(session_id, WIN_80)

    async def test_completed_session_cannot_be_abandoned(self, container, started):
        _, _, session_id = await started()
        await container.sessions.complete_session(session_id, WIN_80)

        with pytest.raises(InvalidStateError):
            await container.sessions.abandon_session(session_id)

    async def test_inactive_player_cannot_start(self, container, make_player, make_activity):
        from src.modules.shared.exceptions import InvalidOperationError

        player_id = await make_player(is_active=False)
        activity_id = await make_activity()

        with pytest.raises(InvalidOperationError):
            await container.sessions.start_session(player_id, activity_id)

    async def test_unknown_activity(self, container, make_player):
        player_id = await make_player()

        with pytest.raises(NotFoundError):
            await container.sessions.start_session(player_id, 404)


# ============================================================================
# CONCURRENCY & DEADLINES
# ============================================================================


@pytest.mark.integration
class TestConflictsAndTimeouts:
    async def test_conflict_retries_exhausted(self, container, started, mocker):
        _, _, session_id = await started()
        ConfigManager.set("session.max_conflict_retries", 3)
        attempt = mocker.patch.object(
            container.sessions, "_complete_once", side_effect=StaleDataError("version mismatch")
        )

        with pytest.raises(TransactionConflictError) as excinfo:
            await container.sessions.complete_session(session_id, WIN_80)

        assert attempt.await_count == 3
        assert excinfo.value.attempts == 3

    async def test_conflict_then_success(self, container, started, mocker):
        _, _, session_id = await started()
        real = container.sessions._complete_once
        calls = {"n": 0}

        async def flaky(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StaleDataError("version mismatch")
            return await real(*args, **kwargs)

        mocker.patch.object(container.sessions, "_complete_once", side_effect=flaky)

        result = await container.sessions.complete_session(session_id, WIN_80)

        assert calls["n"] == 2
        assert result.points_awarded == 86

    async def test_concurrent_completions_for_one_player(self, container, started):
        player_id, activity_id, first = await started()
        session_ids = [first]
        for _ in range(5):
            session_ids.append(await container.sessions.start_session(player_id, activity_id))

        results = await asyncio.gather(
            *(container.sessions.complete_session(sid, WIN_80) for sid in session_ids)
        )

        assert sorted(r.streak.current for r in results) == [1, 2, 3, 4, 5, 6]
        wallet = await container.wallet.get_wallet(player_id)
        assert wallet["balance"] == sum(r.points_awarded for r in results)
        assert wallet["balance"] == wallet["lifetime_earned"] - wallet["lifetime_spent"]

        ledger = sorted(await container.wallet.get_ledger(player_id), key=lambda e: e["id"])
        assert len(ledger) == 6
        assert ledger[0]["balance_before"] == 0
        for previous, entry in zip(ledger, ledger[1:]):
            assert entry["balance_before"] == previous["balance_after"]
        assert ledger[-1]["balance_after"] == wallet["balance"]

    async def test_timeout_rolls_back(self, container, started, mocker):
        player_id, _, session_id = await started()
        ConfigManager.set("session.transaction_timeout_seconds", 0.05)

        async def slow_multiplier(*args, **kwargs):
            await asyncio.sleep(1)
            return 1.0

        mocker.patch.object(container.activities, "brand_multiplier", side_effect=slow_multiplier)

        with pytest.raises(TransactionTimeoutError):
            await container.sessions.complete_session(session_id, WIN_80)

        summary = await container.sessions.get_session(session_id)
        assert summary["status"] == "in_progress"
        assert await container.wallet.get_ledger(player_id) == []


# ============================================================================
# ACHIEVEMENTS
# ============================================================================


@pytest.mark.integration
class TestSessionAchievements:
    async def test_inline_unlock_grants_rewards(self, container, started, make_achievement, mock_event_bus):
        achievement_id = await make_achievement("first_win", "wins", 1, reward_points=50, reward_xp=10)
        player_id, _, session_id = await started()

        result = await container.sessions.complete_session(session_id, WIN_80)

        assert result.achievement_ids == [achievement_id]
        assert result.balance == 136
        ledger = await container.wallet.get_ledger(player_id)
        assert [entry["source_type"] for entry in ledger] == ["achievement", "game_session"]
        progression = await container.progression.get_progression(player_id)
        assert progression["total_xp"] == 68
        assert progression["achievements_unlocked"] == 1
        assert "achievement.unlocked" in published_events(mock_event_bus)

    async def test_unlock_happens_once(self, container, make_player, make_activity, make_achievement):
        await make_achievement("first_win", "wins", 1, reward_points=50)
        player_id = await make_player()
        activity_id = await make_activity()

        first = await container.sessions.start_session(player_id, activity_id)
        await container.sessions.complete_session(first, WIN_80)
        second = await container.sessions.start_session(player_id, activity_id)
        result = await container.sessions.complete_session(second, WIN_80)

        assert result.achievement_ids == []
        completion = await container.achievements.get_completion_rate(player_id)
        assert completion == {"unlocked": 1, "total": 1, "percentage": 100.0}

    async def test_disabled_inline_evaluation_defers_to_queue(self, container, started, make_achievement):
        achievement_id = await make_achievement("first_win", "wins", 1, reward_points=50)
        ConfigManager.set("session.inline_achievements", False)
        player_id, _, session_id = await started()

        result = await container.sessions.complete_session(session_id, WIN_80)

        assert result.achievement_ids == []
        assert result.deferred[0].error_type == "InlineEvaluationDisabled"
        job = await container.queue.get_job(result.deferred[0].job_id)
        assert job.job_type == "achievement"

        # The worker picks it up and grants the unlock
        processed = await container.worker_pool.run_once()
        assert processed["achievement-worker"] == 1
        achievements = await container.achievements.get_player_achievements(player_id)
        unlocked = [a["achievement_id"] for group in achievements.values() for a in group if a["unlocked"]]
        assert unlocked == [achievement_id]
        assert (await container.wallet.get_wallet(player_id))["balance"] == 136

    async def test_inline_failure_keeps_points_and_queues_job(self, container, started, make_achievement, mocker):
        await make_achievement("first_win", "wins", 1, reward_points=50)
        mocker.patch.object(
            container.achievements, "check_and_unlock", side_effect=RuntimeError("evaluator crashed")
        )
        player_id, _, session_id = await started()

        result = await container.sessions.complete_session(session_id, WIN_80)

        assert result.points_awarded == 86
        assert result.achievements == []
        assert len(result.deferred) == 1
        assert result.deferred[0].error_type == "RuntimeError"
        assert (await container.wallet.get_wallet(player_id))["balance"] == 86
        assert (await container.sessions.get_session(session_id))["status"] == "completed"
        job = await container.queue.get_job(result.deferred[0].job_id)
        assert job.status == "pending"

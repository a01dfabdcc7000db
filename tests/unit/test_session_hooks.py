"""
Unit tests for the session reward policy and post-commit hooks.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.modules.achievement.service import UnlockResult
from src.modules.queue.jobs import ChallengeJobPayload, LeaderboardJobPayload
from src.modules.session.hooks import (
    EmitCompletionEventsHook,
    EnqueueChallengeProgressHook,
    EnqueueLeaderboardRefreshHook,
    InvalidatePlayerCacheHook,
    run_hooks,
)
from src.modules.session.policy import PRACTICE_FORMULA, RewardPolicy
from src.modules.session.result import CompletionResult
from src.modules.shared.formulas import apply_experience
from src.modules.streak.service import StreakResult
from tests.conftest import NOW, published_events


def completion(**overrides):
    fields = dict(
        session_id=11,
        player_id=3,
        activity_id=7,
        status="completed",
        outcome="win",
        policy="standard",
        duration_ms=30_000,
        ended_at=NOW,
        brand_id="acme",
        points_awarded=101,
        xp_awarded=58,
        balance=101,
    )
    fields.update(overrides)
    return CompletionResult(**fields)


class NamedHook:
    def __init__(self, name, error=None):
        self.name = name
        self.error = error
        self.calls = 0

    async def __call__(self, result):
        self.calls += 1
        if self.error:
            raise self.error


class TestRewardPolicy:
    def test_standard_grants_everything(self):
        policy = RewardPolicy.for_session(practice=False)

        assert policy.name == "standard"
        assert policy.is_practice is False
        assert policy.formula_override is None

    def test_practice_suppresses_rewards(self):
        policy = RewardPolicy.for_session(practice=True)

        assert policy.is_practice is True
        assert policy.formula_override == PRACTICE_FORMULA
        assert policy.update_streaks is True
        assert not any(
            (
                policy.award_points,
                policy.award_experience,
                policy.record_statistics,
                policy.update_rating,
                policy.evaluate_achievements,
                policy.advance_challenges,
            )
        )


class TestRunHooks:
    async def test_failures_are_isolated(self):
        """A failing hook is recorded and later hooks still run."""
        first = NamedHook("first", RuntimeError("cache down"))
        second = NamedHook("second")

        failures = await run_hooks([first, second], completion())

        assert second.calls == 1
        assert len(failures) == 1
        assert failures[0].hook == "first"
        assert failures[0].error_type == "RuntimeError"

    async def test_no_failures(self):
        assert await run_hooks([NamedHook("only")], completion()) == []


class TestEmitCompletionEvents:
    async def test_event_order(self, mock_event_bus):
        level = apply_experience(1, 100, 110, 20)
        result = completion(
            level_progress=level,
            achievements=[
                UnlockResult(achievement_id=5, code="first_win", name="First Win", unlocked_at=NOW),
                UnlockResult(
                    achievement_id=6, code="dup", name="Dup", unlocked_at=NOW, already_unlocked=True
                ),
            ],
            streak=StreakResult(streak_type="win", current=3, best=3, multiplier=1.15, milestone_reached=3),
        )

        await EmitCompletionEventsHook(mock_event_bus)(result)

        assert published_events(mock_event_bus) == [
            "session.completed",
            "points.earned",
            "player.leveled_up",
            "achievement.unlocked",
            "streak.milestone",
        ]

    async def test_zero_points_publishes_only_completion(self, mock_event_bus):
        await EmitCompletionEventsHook(mock_event_bus)(completion(points_awarded=0, policy="practice"))

        assert published_events(mock_event_bus) == ["session.completed"]


class TestQueueHooks:
    async def test_challenge_progress_enqueued(self):
        queue = MagicMock()
        queue.enqueue = AsyncMock()

        await EnqueueChallengeProgressHook(queue)(completion(is_perfect=True))

        payload = queue.enqueue.await_args.args[0]
        assert isinstance(payload, ChallengeJobPayload)
        assert payload.points_earned == 101
        assert payload.is_perfect is True
        assert payload.completed_at == NOW

    async def test_practice_sessions_skip_challenges(self):
        queue = MagicMock()
        queue.enqueue = AsyncMock()

        await EnqueueChallengeProgressHook(queue)(completion(policy="practice"))

        queue.enqueue.assert_not_awaited()

    @pytest.mark.parametrize("enabled,expected", [(False, 0), (True, 1)])
    async def test_leaderboard_refresh_is_opt_in(self, enabled, expected):
        queue = MagicMock()
        queue.enqueue = AsyncMock()

        await EnqueueLeaderboardRefreshHook(queue, enabled=enabled)(completion())

        assert queue.enqueue.await_count == expected
        if enabled:
            payload = queue.enqueue.await_args.args[0]
            assert payload == LeaderboardJobPayload(calculate_all=True, brand_id="acme")

    async def test_cache_invalidation(self):
        directory = MagicMock()
        directory.invalidate = AsyncMock(return_value=True)

        await InvalidatePlayerCacheHook(directory)(completion())

        directory.invalidate.assert_awaited_once_with(3)

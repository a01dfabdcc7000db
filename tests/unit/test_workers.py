"""
Unit tests for the queue workers with a mocked queue and services.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.modules.queue.jobs import AchievementJobPayload, ChallengeJobPayload, LeaderboardJobPayload
from src.modules.shared.exceptions import NotFoundError
from src.modules.workers import AchievementWorker, ChallengeWorker, LeaderboardWorker, WorkerPool
from src.modules.workers.base import UnsupportedPayloadError
from src.modules.workers.leaderboard import LeaderboardRecalculationError
from tests.conftest import NOW


def job(payload, job_type, job_id=1):
    return SimpleNamespace(
        id=job_id,
        job_type=job_type,
        payload=payload,
        player_id=3,
        session_id=11,
        attempts=0,
    )


@pytest.fixture
def mock_queue():
    queue = MagicMock()
    queue.claim_ready = AsyncMock(return_value=[])
    queue.mark_completed = AsyncMock()
    queue.mark_failed = AsyncMock()
    return queue


class TestJobWorker:
    async def test_success_marks_completed(self, mock_queue, mock_config_manager):
        achievements = MagicMock()
        achievements.check_and_unlock_for_player = AsyncMock(return_value=[])
        worker = AchievementWorker(mock_queue, mock_config_manager, achievements)
        record = job(AchievementJobPayload(player_id=3, session_id=11).to_payload(), "achievement")

        assert await worker.process_job(record) is True

        achievements.check_and_unlock_for_player.assert_awaited_once()
        assert achievements.check_and_unlock_for_player.await_args.args == (3,)
        mock_queue.mark_completed.assert_awaited_once_with(1)
        mock_queue.mark_failed.assert_not_awaited()

    async def test_handler_error_is_retryable(self, mock_queue, mock_config_manager):
        challenges = MagicMock()
        challenges.record_session = AsyncMock(side_effect=RuntimeError("db hiccup"))
        worker = ChallengeWorker(mock_queue, mock_config_manager, challenges)
        payload = ChallengeJobPayload(player_id=3, session_id=11, activity_id=7, outcome="win")

        assert await worker.process_job(job(payload.to_payload(), "challenge")) is False

        mock_queue.mark_failed.assert_awaited_once()
        assert mock_queue.mark_failed.await_args.kwargs["retryable"] is True
        mock_queue.mark_completed.assert_not_awaited()

    async def test_failure_log_level_follows_severity(self, mock_queue, mock_config_manager, mock_logger):
        challenges = MagicMock()
        challenges.record_session = AsyncMock(
            side_effect=[NotFoundError("Player", 3), RuntimeError("db hiccup")]
        )
        worker = ChallengeWorker(mock_queue, mock_config_manager, challenges, logger=mock_logger)
        payload = ChallengeJobPayload(player_id=3, session_id=11, activity_id=7, outcome="win").to_payload()

        await worker.process_job(job(payload, "challenge"))
        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["extra"]["transient"] is False
        mock_logger.error.assert_not_called()

        await worker.process_job(job(payload, "challenge", job_id=2))
        mock_logger.error.assert_called_once()

    async def test_unsupported_payload_dead_letters(self, mock_queue, mock_config_manager):
        achievements = MagicMock()
        achievements.check_and_unlock_for_player = AsyncMock()
        worker = AchievementWorker(mock_queue, mock_config_manager, achievements)

        await worker.process_job(job({"v": 99, "player_id": 3}, "achievement"))

        error = mock_queue.mark_failed.await_args.args[1]
        assert isinstance(error, UnsupportedPayloadError)
        assert mock_queue.mark_failed.await_args.kwargs["retryable"] is False
        achievements.check_and_unlock_for_player.assert_not_awaited()

    async def test_failure_to_record_does_not_raise(self, mock_queue, mock_config_manager):
        mock_queue.mark_failed.side_effect = RuntimeError("queue unavailable")
        challenges = MagicMock()
        challenges.record_session = AsyncMock(side_effect=RuntimeError("boom"))
        worker = ChallengeWorker(mock_queue, mock_config_manager, challenges)
        payload = ChallengeJobPayload(player_id=3, session_id=11, activity_id=7, outcome="win")

        assert await worker.process_job(job(payload.to_payload(), "challenge")) is False

    async def test_process_batch_claims_by_type(self, mock_queue, mock_config_manager):
        leaderboards = MagicMock()
        leaderboards.calculate_leaderboard = AsyncMock()
        mock_queue.claim_ready.return_value = [
            job(LeaderboardJobPayload(category="level").to_payload(), "leaderboard", job_id=1),
            job(LeaderboardJobPayload(category="xp_total").to_payload(), "leaderboard", job_id=2),
        ]
        worker = LeaderboardWorker(mock_queue, mock_config_manager, leaderboards)

        assert await worker.process_batch(now=NOW) == 2

        assert mock_queue.claim_ready.await_args.args == ("leaderboard",)
        assert mock_queue.mark_completed.await_count == 2

    async def test_empty_batch(self, mock_queue, mock_config_manager):
        worker = LeaderboardWorker(mock_queue, mock_config_manager, MagicMock())

        assert await worker.process_batch() == 0


class TestLeaderboardWorker:
    async def test_partial_recalculation_fails_the_attempt(self, mock_queue, mock_config_manager):
        leaderboards = MagicMock()
        leaderboards.calculate_all_leaderboards = AsyncMock(
            return_value={"success": False, "calculated": 9, "errors": 1}
        )
        worker = LeaderboardWorker(mock_queue, mock_config_manager, leaderboards)
        record = job(LeaderboardJobPayload(calculate_all=True).to_payload(), "leaderboard")

        await worker.process_job(record)

        error = mock_queue.mark_failed.await_args.args[1]
        assert isinstance(error, LeaderboardRecalculationError)
        assert mock_queue.mark_failed.await_args.kwargs["retryable"] is True


class TestWorkerPool:
    async def test_start_and_stop(self, mock_queue, mock_config_manager):
        mock_config_manager.get = MagicMock(
            side_effect=lambda key, default=None: 0.01 if key == "workers.poll_interval_seconds" else default
        )
        pool = WorkerPool([LeaderboardWorker(mock_queue, mock_config_manager, MagicMock())])

        pool.start()
        await asyncio.sleep(0.05)
        assert pool.is_running is True
        assert pool.get_status()["workers"] == {"leaderboard-worker": "running"}

        await pool.stop(timeout=1.0)
        assert pool.is_running is False
        assert mock_queue.claim_ready.await_count >= 1

    async def test_loop_survives_poll_errors(self, mock_queue, mock_config_manager):
        mock_config_manager.get = MagicMock(
            side_effect=lambda key, default=None: 0.01 if key == "workers.poll_interval_seconds" else default
        )
        mock_queue.claim_ready.side_effect = RuntimeError("database unavailable")
        pool = WorkerPool([AchievementWorker(mock_queue, mock_config_manager, MagicMock())])

        pool.start()
        await asyncio.sleep(0.05)
        await pool.stop(timeout=1.0)

        assert mock_queue.claim_ready.await_count >= 2

    async def test_run_once(self, mock_queue, mock_config_manager):
        pool = WorkerPool(
            [
                AchievementWorker(mock_queue, mock_config_manager, MagicMock()),
                ChallengeWorker(mock_queue, mock_config_manager, MagicMock()),
            ]
        )

        assert await pool.run_once() == {"achievement-worker": 0, "challenge-worker": 0}

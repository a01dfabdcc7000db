"""
Integration Tests for JobQueueService and the workers
=====================================================

Purpose
-------
Verify the durable job lifecycle against SQLite: enqueue, claim, retry
with backoff, dead-letter, manual retry, retention cleanup and health.
"""

from datetime import timedelta

import pytest

from src.modules.queue.jobs import AchievementJobPayload, LeaderboardJobPayload, UnsupportedJobPayload
from src.modules.shared.exceptions import InvalidStateError, NotFoundError
from tests.conftest import NOW


@pytest.mark.integration
class TestEnqueueAndClaim:
    async def test_enqueue_is_ready_immediately(self, container):
        job = await container.queue.enqueue(AchievementJobPayload(player_id=3, session_id=11), now=NOW)

        assert job.status == "pending"
        assert job.attempts == 0
        assert job.player_id == 3
        assert job.session_id == 11
        assert [j.id for j in await container.queue.fetch_ready(now=NOW)] == [job.id]

    async def test_unsupported_payload_is_refused(self, container):
        with pytest.raises(ValueError):
            await container.queue.enqueue(UnsupportedJobPayload("achievement", 2, "other version"))

    async def test_claim_filters_by_type(self, container):
        await container.queue.enqueue(AchievementJobPayload(player_id=3), now=NOW)
        leaderboard = await container.queue.enqueue(LeaderboardJobPayload(category="level"), now=NOW)

        claimed = await container.queue.claim_ready("leaderboard", now=NOW)

        assert [j.id for j in claimed] == [leaderboard.id]
        assert (await container.queue.get_job(leaderboard.id)).status == "processing"
        assert await container.queue.claim_ready("leaderboard", now=NOW) == []

    async def test_future_jobs_are_not_ready(self, container):
        await container.queue.enqueue(AchievementJobPayload(player_id=3), now=NOW + timedelta(hours=1))

        assert await container.queue.claim_ready(now=NOW) == []

    async def test_unknown_job(self, container):
        with pytest.raises(NotFoundError):
            await container.queue.get_job(404)


@pytest.mark.integration
class TestFailureHandling:
    async def test_first_failure_schedules_backoff(self, container):
        job = await container.queue.enqueue(AchievementJobPayload(player_id=3), now=NOW)

        failed = await container.queue.mark_failed(job.id, RuntimeError("db hiccup"), now=NOW)

        assert failed.status == "pending"
        assert failed.attempts == 1
        assert failed.next_retry_at == NOW + timedelta(minutes=5)
        assert failed.last_error["error_type"] == "RuntimeError"
        assert "db hiccup" in failed.last_error["message"]

    async def test_exhausted_attempts_dead_letter(self, container):
        job = await container.queue.enqueue(AchievementJobPayload(player_id=3), max_attempts=2, now=NOW)

        await container.queue.mark_failed(job.id, RuntimeError("one"), now=NOW)
        dead = await container.queue.mark_failed(job.id, RuntimeError("two"), now=NOW)

        assert dead.status == "failed"
        assert dead.attempts == 2
        assert [j.id for j in await container.queue.get_failed_jobs()] == [job.id]

    async def test_backoff_schedule_until_dead_letter(self, container):
        job = await container.queue.enqueue(AchievementJobPayload(player_id=3), max_attempts=5, now=NOW)

        delays = []
        for attempt in range(1, 5):
            failed = await container.queue.mark_failed(job.id, RuntimeError(f"failure {attempt}"), now=NOW)
            assert failed.status == "pending"
            assert failed.attempts == attempt
            delays.append(failed.next_retry_at - NOW)
        dead = await container.queue.mark_failed(job.id, RuntimeError("failure 5"), now=NOW)

        assert delays == [
            timedelta(minutes=5),
            timedelta(minutes=15),
            timedelta(minutes=60),
            timedelta(hours=24),
        ]
        assert dead.status == "failed"
        assert dead.attempts == 5

    async def test_non_retryable_dead_letters_at_once(self, container):
        job = await container.queue.enqueue(AchievementJobPayload(player_id=3), now=NOW)

        dead = await container.queue.mark_failed(job.id, ValueError("bad payload"), now=NOW, retryable=False)

        assert dead.status == "failed"
        assert dead.attempts == 1

    async def test_retry_failed_resets_budget(self, container):
        job = await container.queue.enqueue(AchievementJobPayload(player_id=3), max_attempts=1, now=NOW)
        await container.queue.mark_failed(job.id, RuntimeError("boom"), now=NOW)

        reset = await container.queue.retry_failed(job.id, now=NOW)

        assert reset.status == "pending"
        assert reset.attempts == 0
        assert reset.last_error is None

    async def test_retry_requires_failed_job(self, container):
        job = await container.queue.enqueue(AchievementJobPayload(player_id=3), now=NOW)

        with pytest.raises(InvalidStateError):
            await container.queue.retry_failed(job.id)

    async def test_worker_dead_letters_unsupported_payload(self, container, database):
        from src.database.models import JobRecord

        async with database.get_transaction() as session:
            record = JobRecord(
                job_type="achievement",
                status="pending",
                player_id=3,
                payload={"v": 7, "player_id": 3},
                attempts=0,
                max_attempts=5,
                next_retry_at=NOW,
            )
            session.add(record)
            await session.flush()
            job_id = record.id

        await container.worker_pool.run_once()

        job = await container.queue.get_job(job_id)
        assert job.status == "failed"
        assert job.last_error["error_type"] == "UnsupportedPayloadError"

    async def test_worker_failure_schedules_retry(self, container, mocker):
        mocker.patch.object(
            container.leaderboards, "calculate_leaderboard", side_effect=RuntimeError("lock timeout")
        )
        job = await container.queue.enqueue(LeaderboardJobPayload(category="level"))

        await container.worker_pool.run_once()

        stored = await container.queue.get_job(job.id)
        assert stored.status == "pending"
        assert stored.attempts == 1
        assert stored.next_retry_at > stored.created_at


@pytest.mark.integration
class TestMaintenance:
    async def test_cleanup_removes_old_completed_jobs(self, container):
        old = await container.queue.enqueue(AchievementJobPayload(player_id=3))
        recent = await container.queue.enqueue(AchievementJobPayload(player_id=4))
        pending = await container.queue.enqueue(AchievementJobPayload(player_id=5))
        await container.queue.mark_completed(old.id, now=NOW - timedelta(days=10))
        await container.queue.mark_completed(recent.id, now=NOW)

        deleted = await container.queue.cleanup_completed_jobs(days_old=7, now=NOW)

        assert deleted == 1
        with pytest.raises(NotFoundError):
            await container.queue.get_job(old.id)
        assert (await container.queue.get_job(recent.id)).status == "completed"
        assert (await container.queue.get_job(pending.id)).status == "pending"

    async def test_queue_health(self, container):
        await container.queue.enqueue(AchievementJobPayload(player_id=3))
        failed = await container.queue.enqueue(LeaderboardJobPayload(category="level"), max_attempts=1)
        await container.queue.mark_failed(failed.id, RuntimeError("boom"))

        health = await container.queue.get_queue_health()

        assert health["by_type"]["achievement"]["pending"] == 1
        assert health["by_type"]["leaderboard"]["failed"] == 1
        assert health["totals"]["failed"] == 1
        assert health["oldest_pending_job"]["job_type"] == "achievement"

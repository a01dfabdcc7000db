"""
Job Queue Service
=================

Purpose
-------
Durable store for deferred, retryable, non-critical work (achievement
checks, leaderboard recomputation, challenge progress).

Lifecycle
---------
    enqueue -> pending --claim--> processing --ok--> completed
                                      |
                                      +--error--> pending (backoff)
                                      +--error, attempts exhausted--> failed

`retry_failed` is the operator escape hatch that moves a dead-lettered job
back to pending; nothing in the automatic path requeues failed jobs.

Backoff
-------
After a failure `attempts` is incremented and the next retry is scheduled
`backoff[min(attempts, len(backoff) - 1)]` minutes out, with the table read
from `queue.backoff_minutes` (default [1, 5, 15, 60, 1440]).
"""

from __future__ import annotations

import traceback
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import delete, func, select

from src.core.config.config import Config
from src.core.database.base import utc_now
from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.database.models.enums import JobStatus, JobType
from src.database.models.queue.job import JobRecord
from src.modules.queue.jobs import JobPayload, UnsupportedJobPayload
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.constants import DEFAULT_BACKOFF_MINUTES
from src.modules.shared.exceptions import InvalidStateError, NotFoundError
from src.modules.shared.formulas import backoff_delay

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class JobRepository(BaseRepository[JobRecord]):
    async def ready(
        self,
        session: AsyncSession,
        now: datetime,
        job_type: Optional[str] = None,
        limit: int = 10,
        for_update: bool = False,
    ) -> List[JobRecord]:
        stmt = select(JobRecord).where(
            JobRecord.status == JobStatus.PENDING.value,
            JobRecord.next_retry_at <= now,
        )
        if job_type:
            stmt = stmt.where(JobRecord.job_type == job_type)
        stmt = stmt.order_by(JobRecord.next_retry_at, JobRecord.id).limit(limit)
        if for_update:
            stmt = stmt.with_for_update(skip_locked=True)

        jobs = list((await session.execute(stmt)).scalars().all())
        self.log.debug(
            f"Repository.ready: {self.model_name}",
            extra={"job_type": job_type, "limit": limit, "result_count": len(jobs)},
        )
        return jobs


class JobQueueService(BaseService):
    """
    Persistent job queue with exponential backoff and dead-lettering.

    Public Methods
    --------------
    - enqueue() -> Insert a pending job (optionally inside a caller transaction)
    - fetch_ready() -> Read ready jobs, oldest first
    - claim_ready() -> Fetch and mark ready jobs `processing` atomically
    - mark_completed() / mark_failed() -> Record a processing outcome
    - retry_failed() -> Operator requeue of a dead-lettered job
    - get_failed_jobs() / get_queue_health() -> Operational reads
    - cleanup_completed_jobs() -> Purge old completed jobs
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._repo = JobRepository(
            model_class=JobRecord, logger=get_logger(f"{__name__}.JobRepository")
        )

    def _backoff_table(self) -> List[int]:
        return list(self.get_config("queue.backoff_minutes", DEFAULT_BACKOFF_MINUTES))

    def _default_max_attempts(self) -> int:
        return int(self.get_config("queue.max_attempts", Config.JOB_MAX_ATTEMPTS))

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def enqueue(
        self,
        payload: JobPayload,
        *,
        player_id: Optional[int] = None,
        session_id: Optional[int] = None,
        max_attempts: Optional[int] = None,
        session: Optional[AsyncSession] = None,
        now: Optional[datetime] = None,
    ) -> JobRecord:
        """
        Insert a pending job that is ready immediately.

        When `session` is given the job joins the caller's transaction and
        commits (or rolls back) with it; otherwise it is written in its own
        transaction.

        Raises:
            ValueError: If asked to enqueue an UnsupportedJobPayload
        """
        if isinstance(payload, UnsupportedJobPayload):
            raise ValueError(f"Refusing to enqueue unsupported payload: {payload.reason}")

        job_type = payload.job_type.value
        if player_id is None:
            player_id = getattr(payload, "player_id", None)
        if session_id is None:
            session_id = getattr(payload, "session_id", None)

        job = JobRecord(
            job_type=job_type,
            status=JobStatus.PENDING.value,
            player_id=player_id,
            session_id=session_id,
            payload=payload.to_payload(),
            attempts=0,
            max_attempts=max_attempts or self._default_max_attempts(),
            next_retry_at=now or utc_now(),
        )

        if session is not None:
            self._repo.add(session, job)
            await self._repo.flush(session)
        else:
            async with DatabaseService.get_transaction() as own_session:
                self._repo.add(own_session, job)
                await self._repo.flush(own_session)

        self.log.info(
            "Job enqueued",
            extra={
                "job_id": job.id,
                "job_type": job_type,
                "player_id": player_id,
                "session_id": session_id,
            },
        )
        return job

    async def claim_ready(
        self,
        job_type: Optional[str] = None,
        limit: int = 5,
        now: Optional[datetime] = None,
    ) -> List[JobRecord]:
        """
        Fetch ready jobs and mark them `processing` in one transaction.

        Rows are locked with SKIP LOCKED on PostgreSQL so concurrent workers
        never claim the same job.
        """
        now = now or utc_now()
        async with DatabaseService.get_transaction() as session:
            jobs = await self._repo.ready(session, now, job_type, limit, for_update=True)
            for job in jobs:
                job.status = JobStatus.PROCESSING.value
                job.started_at = now
            await self._repo.flush(session)

        if jobs:
            self.log.debug(
                "Jobs claimed",
                extra={"job_type": job_type, "count": len(jobs), "job_ids": [j.id for j in jobs]},
            )
        return jobs

    async def mark_completed(self, job_id: int, now: Optional[datetime] = None) -> JobRecord:
        """
        Raises:
            NotFoundError: If the job does not exist
        """
        async with DatabaseService.get_transaction() as session:
            job = await self._repo.get_for_update(session, job_id)
            if job is None:
                raise NotFoundError("JobRecord", job_id)
            job.status = JobStatus.COMPLETED.value
            job.completed_at = now or utc_now()

        self.log.debug(
            "Job completed",
            extra={"job_id": job_id, "job_type": job.job_type, "attempts": job.attempts},
        )
        return job

    async def mark_failed(
        self,
        job_id: int,
        error: BaseException,
        now: Optional[datetime] = None,
        retryable: bool = True,
    ) -> JobRecord:
        """
        Record a failed attempt and schedule a retry or dead-letter the job.

        Non-retryable failures (e.g. an unsupported payload) dead-letter on
        the first attempt.

        Raises:
            NotFoundError: If the job does not exist
        """
        now = now or utc_now()
        async with DatabaseService.get_transaction() as session:
            job = await self._repo.get_for_update(session, job_id)
            if job is None:
                raise NotFoundError("JobRecord", job_id)

            job.attempts = min(job.attempts + 1, job.max_attempts)
            job.last_error = {
                "message": str(error),
                "error_type": type(error).__name__,
                "traceback": "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                ),
                "timestamp": now.isoformat(),
            }

            if not retryable or job.attempts >= job.max_attempts:
                job.status = JobStatus.FAILED.value
                job.completed_at = now
            else:
                job.status = JobStatus.PENDING.value
                job.next_retry_at = now + backoff_delay(job.attempts, self._backoff_table())

        if job.status == JobStatus.FAILED.value:
            self.log.error(
                "Job dead-lettered",
                extra={
                    "job_id": job.id,
                    "job_type": job.job_type,
                    "player_id": job.player_id,
                    "session_id": job.session_id,
                    "attempts": job.attempts,
                    "error_type": type(error).__name__,
                },
            )
        else:
            self.log.warning(
                "Job failed; retry scheduled",
                extra={
                    "job_id": job.id,
                    "job_type": job.job_type,
                    "player_id": job.player_id,
                    "session_id": job.session_id,
                    "attempts": job.attempts,
                    "next_retry_at": job.next_retry_at.isoformat(),
                    "error_type": type(error).__name__,
                },
            )
        return job

    async def retry_failed(self, job_id: int, now: Optional[datetime] = None) -> JobRecord:
        """
        Reset a dead-lettered job to pending with a fresh attempt budget.

        Raises:
            NotFoundError: If the job does not exist
            InvalidStateError: If the job is not in `failed`
        """
        async with DatabaseService.get_transaction() as session:
            job = await self._repo.get_for_update(session, job_id)
            if job is None:
                raise NotFoundError("JobRecord", job_id)
            if job.status != JobStatus.FAILED.value:
                raise InvalidStateError("JobRecord", job.status, "retry_failed")

            job.status = JobStatus.PENDING.value
            job.attempts = 0
            job.next_retry_at = now or utc_now()
            job.last_error = None
            job.completed_at = None
            job.started_at = None

        self.log.info(
            "Failed job reset for retry",
            extra={"job_id": job_id, "job_type": job.job_type, "player_id": job.player_id},
        )
        return job

    async def cleanup_completed_jobs(
        self, days_old: Optional[int] = None, now: Optional[datetime] = None
    ) -> int:
        """Delete completed jobs older than the retention window."""
        if days_old is None:
            days_old = int(self.get_config("queue.retention_days", Config.JOB_RETENTION_DAYS))
        cutoff = (now or utc_now()) - timedelta(days=days_old)

        async with DatabaseService.get_transaction() as session:
            result = await session.execute(
                delete(JobRecord).where(
                    JobRecord.status == JobStatus.COMPLETED.value,
                    JobRecord.completed_at < cutoff,
                )
            )
            deleted = int(result.rowcount or 0)

        self.log.info(
            "Completed jobs cleaned up",
            extra={"deleted_count": deleted, "days_old": days_old},
        )
        return deleted

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def fetch_ready(
        self,
        job_type: Optional[str] = None,
        limit: int = 10,
        now: Optional[datetime] = None,
    ) -> List[JobRecord]:
        """Pending jobs whose retry time has passed, oldest `next_retry_at` first."""
        async with DatabaseService.get_session() as session:
            return await self._repo.ready(session, now or utc_now(), job_type, limit)

    async def get_job(self, job_id: int) -> JobRecord:
        """
        Raises:
            NotFoundError: If the job does not exist
        """
        async with DatabaseService.get_session() as session:
            job = await self._repo.get(session, job_id)
        if job is None:
            raise NotFoundError("JobRecord", job_id)
        return job

    async def get_failed_jobs(self, limit: int = 100) -> List[JobRecord]:
        async with DatabaseService.get_session() as session:
            return await self._repo.find_many_where(
                session,
                JobRecord.status == JobStatus.FAILED.value,
                order_by=[JobRecord.completed_at.desc()],
                limit=limit,
            )

    async def get_queue_health(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Counts by type and status plus the age of the oldest ready job."""
        now = now or utc_now()
        by_type: Dict[str, Dict[str, int]] = {
            t.value: {"pending": 0, "processing": 0, "failed": 0} for t in JobType
        }
        totals = {status.value: 0 for status in JobStatus}

        async with DatabaseService.get_session() as session:
            rows = await session.execute(
                select(JobRecord.job_type, JobRecord.status, func.count()).group_by(
                    JobRecord.job_type, JobRecord.status
                )
            )
            for job_type, status, count in rows.all():
                totals[status] = totals.get(status, 0) + count
                if status != JobStatus.COMPLETED.value:
                    by_type.setdefault(job_type, {"pending": 0, "processing": 0, "failed": 0})
                    by_type[job_type][status] = count

            oldest_rows = await self._repo.find_many_where(
                session,
                JobRecord.status == JobStatus.PENDING.value,
                JobRecord.next_retry_at <= now,
                order_by=[JobRecord.created_at, JobRecord.id],
                limit=1,
            )
        oldest = oldest_rows[0] if oldest_rows else None

        health: Dict[str, Any] = {
            "timestamp": now.isoformat(),
            "by_type": by_type,
            "totals": totals,
            "oldest_pending_job": None,
        }
        if oldest is not None:
            health["oldest_pending_job"] = {
                "job_id": oldest.id,
                "job_type": oldest.job_type,
                "created_at": oldest.created_at.isoformat(),
                "age_minutes": int((now - oldest.created_at).total_seconds() // 60),
            }
        return health

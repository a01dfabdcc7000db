"""
Job Worker Base
===============

Purpose
-------
Poll loop shared by every job type: claim a bounded batch of ready jobs,
run the type-specific handler for each, then mark the job completed or
failed.

Failure handling
----------------
- A handler exception is recorded through `mark_failed`, which schedules a
  retry on the backoff table or dead-letters the job once its attempts are
  exhausted.
- A payload that does not decode (unknown type, other version, malformed)
  is dead-lettered immediately; retrying cannot fix it.
- Nothing a job does can stop the loop. Errors are logged with the job,
  player and session ids and the loop continues on the next tick.

Usage
-----
    >>> stop_event = asyncio.Event()
    >>> task = asyncio.create_task(worker.run(stop_event=stop_event))
    >>> # ... later ...
    >>> stop_event.set()
    >>> await task
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from src.core.config.config import Config
from src.core.logging.logger import LogContext, clear_log_context, get_logger, set_log_context
from src.modules.queue.jobs import JobPayload, UnsupportedJobPayload, parse_payload
from src.modules.shared.exceptions import is_transient_error, should_alert

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.database.models.enums import JobType
    from src.database.models.queue.job import JobRecord
    from src.modules.queue.service import JobQueueService


class UnsupportedPayloadError(ValueError):
    """Raised for a job whose payload cannot be decoded."""

    def __init__(self, payload: UnsupportedJobPayload) -> None:
        super().__init__(payload.reason)
        self.payload = payload


class JobWorker(ABC):
    """
    Base class for queue workers.

    Subclasses set `job_type` and implement `handle`. Handlers must be
    idempotent: a job may run again after a crash between the handler
    committing and the job being marked completed.
    """

    job_type: JobType

    def __init__(
        self,
        queue: JobQueueService,
        config_manager: type[ConfigManager] | ConfigManager,
        logger: Optional[Logger] = None,
    ) -> None:
        self._queue = queue
        self._config = config_manager
        self.log = logger or get_logger(f"{__name__}.{type(self).__name__}")

    @property
    def name(self) -> str:
        return f"{self.job_type.value}-worker"

    @property
    def poll_interval(self) -> float:
        return float(
            self._config.get("workers.poll_interval_seconds", Config.WORKER_POLL_INTERVAL_SECONDS)
        )

    @property
    def batch_size(self) -> int:
        return int(self._config.get("workers.batch_size", Config.WORKER_CONCURRENCY))

    @abstractmethod
    async def handle(self, payload: JobPayload, job: JobRecord) -> None:
        """Execute one job. Raise to fail the attempt."""

    # ========================================================================
    # LOOP
    # ========================================================================

    async def run(self, *, stop_event: asyncio.Event) -> None:
        """Poll until `stop_event` is set."""
        # Runs as its own task; drop whatever context the spawning code carried
        clear_log_context()
        set_log_context(component=self.name)
        self.log.info(
            f"{self.name} started",
            extra={"poll_interval_seconds": self.poll_interval, "batch_size": self.batch_size},
        )
        try:
            while not stop_event.is_set():
                try:
                    await self.process_batch()
                except Exception as exc:
                    self.log.error(
                        f"{self.name} poll failed",
                        extra={"error": str(exc), "error_type": type(exc).__name__},
                        exc_info=True,
                    )

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    continue
        finally:
            self.log.info(f"{self.name} stopped")

    async def process_batch(self, now: Optional[datetime] = None) -> int:
        """
        Claim and run one batch of ready jobs concurrently.

        Returns:
            Number of jobs claimed
        """
        jobs = await self._queue.claim_ready(self.job_type.value, limit=self.batch_size, now=now)
        if not jobs:
            return 0

        await asyncio.gather(*(self.process_job(job) for job in jobs))
        return len(jobs)

    async def process_job(self, job: JobRecord) -> bool:
        """Run one claimed job. Returns True when it completed."""
        async with LogContext(
            player_id=job.player_id,
            session_id=job.session_id,
            job_id=job.id,
            operation=f"job.{job.job_type}",
        ):
            payload = parse_payload(job.job_type, job.payload)
            try:
                if isinstance(payload, UnsupportedJobPayload):
                    raise UnsupportedPayloadError(payload)
                await self.handle(payload, job)
            except Exception as exc:
                # Expected domain outcomes (missing rows, bad input) stay at warning
                log = self.log.error if should_alert(exc) else self.log.warning
                log(
                    "Job attempt failed",
                    extra={
                        "job_id": job.id,
                        "job_type": job.job_type,
                        "player_id": job.player_id,
                        "session_id": job.session_id,
                        "attempt": job.attempts + 1,
                        "error_type": type(exc).__name__,
                        "transient": is_transient_error(exc),
                    },
                    exc_info=True,
                )
                await self._record_failure(job, exc)
                return False

            try:
                await self._queue.mark_completed(job.id)
            except Exception as exc:
                self.log.error(
                    "Could not mark job completed",
                    extra={"job_id": job.id, "job_type": job.job_type, "error_type": type(exc).__name__},
                    exc_info=True,
                )
                return False
            return True

    async def _record_failure(self, job: JobRecord, exc: Exception) -> None:
        try:
            await self._queue.mark_failed(
                job.id, exc, retryable=not isinstance(exc, UnsupportedPayloadError)
            )
        except Exception as record_exc:
            self.log.error(
                "Could not record job failure",
                extra={
                    "job_id": job.id,
                    "job_type": job.job_type,
                    "player_id": job.player_id,
                    "error_type": type(record_exc).__name__,
                },
                exc_info=True,
            )


def expect(payload: JobPayload, kind: type) -> Any:
    """Narrow a decoded payload to the variant a worker handles."""
    if not isinstance(payload, kind):
        raise TypeError(f"expected {kind.__name__}, got {type(payload).__name__}")
    return payload


"""
Challenge worker: advances daily challenges from a completed session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from src.database.models.enums import JobType
from src.modules.queue.jobs import ChallengeJobPayload, JobPayload

from .base import JobWorker, expect

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.database.models.queue.job import JobRecord
    from src.modules.challenge.service import ChallengeService
    from src.modules.queue.service import JobQueueService


class ChallengeWorker(JobWorker):
    job_type = JobType.CHALLENGE

    def __init__(
        self,
        queue: JobQueueService,
        config_manager: type[ConfigManager] | ConfigManager,
        challenge_service: ChallengeService,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(queue, config_manager, logger)
        self._challenges = challenge_service

    async def handle(self, payload: JobPayload, job: JobRecord) -> None:
        task: ChallengeJobPayload = expect(payload, ChallengeJobPayload)
        completed = await self._challenges.record_session(task)
        if completed:
            self.log.info(
                "Challenges completed",
                extra={
                    "job_id": job.id,
                    "player_id": task.player_id,
                    "challenge_ids": [c.challenge_id for c in completed],
                },
            )

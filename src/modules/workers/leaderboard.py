"""
Leaderboard worker: recomputes one board, or all of them for a brand scope.

Recalculation replaces the board snapshot, so repeated runs converge.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from src.database.models.enums import JobType
from src.modules.queue.jobs import JobPayload, LeaderboardJobPayload

from .base import JobWorker, expect

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.database.models.queue.job import JobRecord
    from src.modules.leaderboard.service import LeaderboardService
    from src.modules.queue.service import JobQueueService


class LeaderboardRecalculationError(RuntimeError):
    pass


class LeaderboardWorker(JobWorker):
    job_type = JobType.LEADERBOARD

    def __init__(
        self,
        queue: JobQueueService,
        config_manager: type[ConfigManager] | ConfigManager,
        leaderboard_service: LeaderboardService,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(queue, config_manager, logger)
        self._leaderboards = leaderboard_service

    async def handle(self, payload: JobPayload, job: JobRecord) -> None:
        task: LeaderboardJobPayload = expect(payload, LeaderboardJobPayload)

        if task.calculate_all:
            summary = await self._leaderboards.calculate_all_leaderboards(brand_id=task.brand_id)
            if not summary["success"]:
                # Fail the attempt so the partial run is retried on backoff
                raise LeaderboardRecalculationError(
                    f"{summary['errors']} of {summary['errors'] + summary['calculated']} boards failed"
                )
            return

        await self._leaderboards.calculate_leaderboard(
            task.category,
            period=task.period,
            brand_id=task.brand_id,
            limit=task.limit,
        )

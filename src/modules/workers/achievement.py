"""
Achievement worker: deferred achievement checks for completed sessions.

The queued progression snapshot is diagnostic only; the check re-reads the
player's progression inside its own transaction. Re-running a job is safe
because unlocks are unique per (player, definition) and rewards are guarded
by `rewards_granted`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from src.database.models.enums import JobType
from src.modules.queue.jobs import AchievementJobPayload, JobPayload

from .base import JobWorker, expect

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.database.models.queue.job import JobRecord
    from src.modules.achievement.service import AchievementService
    from src.modules.queue.service import JobQueueService


class AchievementWorker(JobWorker):
    job_type = JobType.ACHIEVEMENT

    def __init__(
        self,
        queue: JobQueueService,
        config_manager: type[ConfigManager] | ConfigManager,
        achievement_service: AchievementService,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(queue, config_manager, logger)
        self._achievements = achievement_service

    async def handle(self, payload: JobPayload, job: JobRecord) -> None:
        task: AchievementJobPayload = expect(payload, AchievementJobPayload)

        results = await self._achievements.check_and_unlock_for_player(
            task.player_id,
            activity_id=task.activity_id,
            recent_session=task.facts,
            session_id=task.session_id,
            activity_slug=task.activity_slug,
            domain_id=task.domain_id,
            domain_progress=task.domain_progress,
        )

        self.log.info(
            "Deferred achievement check finished",
            extra={
                "job_id": job.id,
                "player_id": task.player_id,
                "session_id": task.session_id,
                "unlocked": [r.achievement_id for r in results if not r.already_unlocked],
            },
        )

"""
Activity catalogue lookups.

Read-only: resolves an activity's scoring configuration and the brand
points multiplier that applies to it. A brand row scoped to the activity
wins over a brand-wide row; with neither the multiplier is 1.0.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import or_

from src.core.logging.logger import get_logger
from src.database.models.core.activity import Activity, BrandConfig
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import InvalidOperationError, NotFoundError
from src.modules.shared.formulas import ActivityScoring

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


def scoring_for(activity: Activity) -> ActivityScoring:
    return ActivityScoring(
        base_points=activity.base_points,
        time_limit_seconds=activity.time_limit_seconds,
        time_bonus=activity.time_bonus,
        streak_bonus=activity.streak_bonus,
        accuracy_multiplier=activity.accuracy_multiplier,
    )


class ActivityRepository(BaseRepository[Activity]):
    pass


class BrandConfigRepository(BaseRepository[BrandConfig]):
    async def for_activity(
        self, session: AsyncSession, brand_id: str, activity_id: int
    ) -> Optional[BrandConfig]:
        rows = await self.find_many_where(
            session,
            BrandConfig.brand_id == brand_id,
            or_(BrandConfig.activity_id == activity_id, BrandConfig.activity_id.is_(None)),
        )
        scoped = [row for row in rows if row.activity_id == activity_id]
        return (scoped or rows or [None])[0]


class ActivityService(BaseService):
    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._activities = ActivityRepository(
            model_class=Activity, logger=get_logger(f"{__name__}.ActivityRepository")
        )
        self._brands = BrandConfigRepository(
            model_class=BrandConfig, logger=get_logger(f"{__name__}.BrandConfigRepository")
        )

    async def get_activity(
        self, session: AsyncSession, activity_id: int, require_active: bool = True
    ) -> Activity:
        """
        Raises:
            NotFoundError: If the activity does not exist
            InvalidOperationError: If the activity is disabled and
                `require_active` is set
        """
        activity = await self._activities.get(session, activity_id)
        if activity is None:
            raise NotFoundError("Activity", activity_id)
        if require_active and not activity.is_active:
            raise InvalidOperationError("start_session", f"activity {activity_id} is disabled")
        return activity

    async def brand_multiplier(
        self, session: AsyncSession, brand_id: Optional[str], activity_id: int
    ) -> float:
        if not brand_id:
            return 1.0

        config = await self._brands.for_activity(session, brand_id, activity_id)
        if config is None:
            self.log.debug(
                "No brand config; using multiplier 1.0",
                extra={"brand_id": brand_id, "activity_id": activity_id},
            )
            return 1.0
        return config.points_multiplier or 1.0

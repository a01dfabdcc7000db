"""
Streak Service
==============

Purpose
-------
Tracks consecutive qualifying outcomes per (player, streak type).

Rules
-----
Win streak:
- win: current += 1 (restart timestamp when current becomes 1), raise best,
  multiplier = min(3.0, 1 + current × 0.05), report the first milestone
  newly crossed
- loss: current = 0, multiplier = 1.0, best untouched
- draw / incomplete: unchanged

Daily-login streak (UTC calendar days):
- same day as the last activity: unchanged
- the following day: current += 1
- any larger gap: restart at 1
- `expires_at` is the end of the next UTC day; a scheduled sweep resets
  lapsed streaks through `expire_stale_streaks`

Invariant: best_length >= current_length.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import update

from src.core.database.base import utc_now
from src.core.database.service import DatabaseService
from src.core.event.types import RewardEvent
from src.core.logging.logger import LogContext, get_logger
from src.database.models.enums import StreakType
from src.database.models.progression.streak import StreakRecord
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.constants import STREAK_MILESTONES
from src.modules.shared.exceptions import ValidationError
from src.modules.shared.formulas import milestone_crossed, streak_multiplier

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


@dataclass(frozen=True)
class StreakResult:
    streak_type: str
    current: int
    best: int
    multiplier: float
    milestone_reached: Optional[int] = None
    continued: bool = False
    broken: bool = False
    expires_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "streak_type": self.streak_type,
            "current": self.current,
            "best": self.best,
            "multiplier": self.multiplier,
            "milestone_reached": self.milestone_reached,
            "continued": self.continued,
            "broken": self.broken,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


def end_of_next_day(moment: datetime) -> datetime:
    """23:59:59.999999 UTC on the calendar day after `moment`."""
    next_day = (moment + timedelta(days=1)).date()
    return datetime.combine(next_day, datetime.max.time(), tzinfo=moment.tzinfo)


class StreakRepository(BaseRepository[StreakRecord]):
    async def find_for(
        self,
        session: AsyncSession,
        player_id: int,
        streak_type: str,
        for_update: bool = False,
    ) -> Optional[StreakRecord]:
        return await self.find_one_where(
            session,
            StreakRecord.player_id == player_id,
            StreakRecord.streak_type == streak_type,
            for_update=for_update,
        )


class StreakService(BaseService):
    """
    Win and daily-login streak tracking.

    Public Methods
    --------------
    - update_streak() -> Apply an outcome inside the caller's transaction
    - record_daily_login() -> Register a login in a dedicated transaction
    - expire_stale_streaks() -> Scheduled sweep of lapsed login streaks
    - get_player_streaks() -> Read-only summary
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._repo = StreakRepository(
            model_class=StreakRecord,
            logger=get_logger(f"{__name__}.StreakRepository"),
        )

    def _milestones(self) -> List[int]:
        return list(self.get_config("streaks.milestones", STREAK_MILESTONES))

    async def _get_or_create(
        self, session: AsyncSession, player_id: int, streak_type: str
    ) -> StreakRecord:
        record = await self._repo.find_for(session, player_id, streak_type, for_update=True)
        if record is not None:
            return record

        record = StreakRecord(
            player_id=player_id,
            streak_type=streak_type,
            current_length=0,
            best_length=0,
            multiplier=1.0,
            milestones_reached=[],
        )
        self._repo.add(session, record)
        await self._repo.flush(session)
        return record

    # ========================================================================
    # Transaction-scoped operations
    # ========================================================================

    async def update_streak(
        self,
        session: AsyncSession,
        player_id: int,
        streak_type: StreakType | str,
        outcome: str,
        now: Optional[datetime] = None,
    ) -> StreakResult:
        """
        Apply one activity to a streak within the caller's transaction.

        For win streaks `outcome` decides continuation; daily-login streaks
        only look at the calendar day of `now`.

        Raises:
            ValidationError: If the streak type is unknown
        """
        now = now or utc_now()
        kind = str(getattr(streak_type, "value", streak_type))
        if kind not in {t.value for t in StreakType}:
            raise ValidationError("streak_type", f"Unknown streak type '{kind}'")

        record = await self._get_or_create(session, player_id, kind)
        if kind == StreakType.DAILY_LOGIN.value:
            result = self._apply_login(record, now)
        else:
            result = self._apply_outcome(record, outcome, now)

        if result.milestone_reached is not None:
            self.log.info(
                "Streak milestone reached",
                extra={
                    "player_id": player_id,
                    "streak_type": kind,
                    "milestone": result.milestone_reached,
                },
            )
        return result

    def _advance(self, record: StreakRecord, now: datetime) -> Optional[int]:
        previous = record.current_length
        record.current_length = previous + 1
        if record.current_length == 1:
            record.streak_started_at = now
        if record.current_length > record.best_length:
            record.best_length = record.current_length
        record.multiplier = streak_multiplier(record.current_length)
        record.last_activity_at = now

        milestone = milestone_crossed(previous, record.current_length, self._milestones())
        if milestone is not None:
            record.milestones_reached = [*(record.milestones_reached or []), milestone]
        return milestone

    def _apply_outcome(self, record: StreakRecord, outcome: str, now: datetime) -> StreakResult:
        if outcome == "win":
            milestone = self._advance(record, now)
            return self._result(record, milestone=milestone, continued=record.current_length > 1)

        if outcome == "loss":
            broken = record.current_length > 0
            record.current_length = 0
            record.multiplier = 1.0
            record.last_activity_at = now
            return self._result(record, broken=broken)

        return self._result(record)

    def _apply_login(self, record: StreakRecord, now: datetime) -> StreakResult:
        last = record.last_activity_at
        today = now.date()

        if last is not None and last.date() == today and record.current_length > 0:
            return self._result(record)

        if last is not None and last.date() == today - timedelta(days=1) and record.current_length > 0:
            milestone = self._advance(record, now)
            record.expires_at = end_of_next_day(now)
            return self._result(record, milestone=milestone, continued=True)

        broken = record.current_length > 0
        record.current_length = 0
        milestone = self._advance(record, now)
        record.expires_at = end_of_next_day(now)
        return self._result(record, milestone=milestone, broken=broken)

    @staticmethod
    def _result(
        record: StreakRecord,
        milestone: Optional[int] = None,
        continued: bool = False,
        broken: bool = False,
    ) -> StreakResult:
        return StreakResult(
            streak_type=record.streak_type,
            current=record.current_length,
            best=record.best_length,
            multiplier=record.multiplier,
            milestone_reached=milestone,
            continued=continued,
            broken=broken,
            expires_at=record.expires_at,
        )

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def record_daily_login(
        self, player_id: int, now: Optional[datetime] = None
    ) -> StreakResult:
        """
        Register a login for the daily-login streak.

        This is a **write operation** using get_transaction().
        """
        self.log_operation("record_daily_login", player_id=player_id)
        async with LogContext(player_id=player_id, operation="streak.daily_login"):
            async with DatabaseService.get_transaction() as session:
                result = await self.update_streak(
                    session, player_id, StreakType.DAILY_LOGIN, "win", now=now
                )

        if result.milestone_reached is not None:
            await self.emit_event(
                RewardEvent.STREAK_MILESTONE,
                {
                    "player_id": player_id,
                    "streak_type": result.streak_type,
                    "milestone": result.milestone_reached,
                    "current": result.current,
                },
            )
        return result

    async def expire_stale_streaks(self, now: Optional[datetime] = None) -> int:
        """
        Reset every daily-login streak whose expiry has passed.

        This is a **write operation** using get_transaction(). The version
        column is bumped explicitly because bulk updates bypass the ORM's
        version counter.

        Returns:
            Number of streaks reset
        """
        now = now or utc_now()
        async with DatabaseService.get_transaction() as session:
            result = await session.execute(
                update(StreakRecord)
                .where(
                    StreakRecord.streak_type == StreakType.DAILY_LOGIN.value,
                    StreakRecord.expires_at.is_not(None),
                    StreakRecord.expires_at < now,
                    StreakRecord.current_length > 0,
                )
                .values(
                    current_length=0,
                    multiplier=1.0,
                    version=StreakRecord.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            expired = int(result.rowcount or 0)

        self.log.info(
            "Expired stale daily-login streaks",
            extra={"expired_count": expired, "as_of": now.isoformat()},
        )
        return expired

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_player_streaks(self, player_id: int) -> Dict[str, Dict[str, Any]]:
        async with DatabaseService.get_session() as session:
            records = await self._repo.find_many_where(session, StreakRecord.player_id == player_id)

        by_type = {record.streak_type: record for record in records}
        win = by_type.get(StreakType.WIN.value)
        login = by_type.get(StreakType.DAILY_LOGIN.value)
        return {
            "win": {
                "current": win.current_length if win else 0,
                "best": win.best_length if win else 0,
                "multiplier": win.multiplier if win else 1.0,
            },
            "daily_login": {
                "current": login.current_length if login else 0,
                "best": login.best_length if login else 0,
                "expires_at": login.expires_at.isoformat() if login and login.expires_at else None,
            },
        }

"""
Challenge Service
=================

Purpose
-------
Advances players' daily challenges from completed sessions and grants each
challenge's reward once.

Progress rules
--------------
- games_played: +1 per session
- games_won: +1 per win
- points_earned / xp_earned: + the session's awarded amount
- specific_activity: +1 per play (or per win when `metric` is "win") of the
  challenge's activity
- win_streak: the player's current win streak after the session
- perfect_games: +1 per perfect score
- play_consecutive: tracked by the daily-login streak, never by sessions

Every progress row remembers the sessions it already counted, so re-running
a challenge job is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import update

from src.core.database.base import utc_now
from src.core.database.service import DatabaseService
from src.core.event.types import RewardEvent
from src.core.logging.logger import LogContext, get_logger
from src.database.models.enums import ChallengeType, LedgerSource
from src.database.models.progression.daily_challenge import ChallengeProgress, DailyChallenge
from src.modules.queue.jobs import ChallengeJobPayload
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.locks import PlayerLockRegistry, player_locks

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.progression.service import ProgressionService
    from src.modules.wallet.service import WalletService


def progress_value(challenge: DailyChallenge, facts: ChallengeJobPayload, current: int) -> int:
    """New progress value for one session; equal to `current` when it does not apply."""
    kind = challenge.challenge_type

    if kind == ChallengeType.GAMES_PLAYED.value:
        return current + 1
    if kind == ChallengeType.GAMES_WON.value:
        return current + (1 if facts.outcome == "win" else 0)
    if kind == ChallengeType.POINTS_EARNED.value:
        return current + max(0, facts.points_earned)
    if kind == ChallengeType.XP_EARNED.value:
        return current + max(0, facts.xp_earned)
    if kind == ChallengeType.SPECIFIC_ACTIVITY.value:
        if challenge.activity_id is None or challenge.activity_id != facts.activity_id:
            return current
        if challenge.metric == "win":
            return current + (1 if facts.outcome == "win" else 0)
        return current + 1
    if kind == ChallengeType.WIN_STREAK.value:
        return max(current, facts.win_streak)
    if kind == ChallengeType.PERFECT_GAMES.value:
        return current + (1 if facts.is_perfect else 0)
    return current


@dataclass(frozen=True)
class ChallengeCompletion:
    challenge_id: int
    code: str
    title: str
    reward_points: int
    reward_xp: int
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "challenge_id": self.challenge_id,
            "code": self.code,
            "title": self.title,
            "reward_points": self.reward_points,
            "reward_xp": self.reward_xp,
            "completed_at": self.completed_at.isoformat(),
        }


class DailyChallengeRepository(BaseRepository[DailyChallenge]):
    async def active_at(self, session: AsyncSession, moment: datetime) -> List[DailyChallenge]:
        return await self.find_many_where(
            session,
            DailyChallenge.is_active.is_(True),
            DailyChallenge.starts_at <= moment,
            DailyChallenge.ends_at > moment,
            order_by=[DailyChallenge.id],
        )


class ChallengeProgressRepository(BaseRepository[ChallengeProgress]):
    async def find_for(
        self, session: AsyncSession, player_id: int, challenge_id: int, for_update: bool = False
    ) -> Optional[ChallengeProgress]:
        return await self.find_one_where(
            session,
            ChallengeProgress.player_id == player_id,
            ChallengeProgress.challenge_id == challenge_id,
            for_update=for_update,
        )


class ChallengeService(BaseService):
    """
    Daily challenge progress and rewards.

    Public Methods
    --------------
    - record_session() -> Advance active challenges from one session
    - get_player_challenges() -> Active challenges with the player's progress
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        progression_service: ProgressionService,
        wallet_service: WalletService,
        locks: Optional[PlayerLockRegistry] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._progression = progression_service
        self._wallet = wallet_service
        self._locks = locks or player_locks
        self._challenges = DailyChallengeRepository(
            model_class=DailyChallenge, logger=get_logger(f"{__name__}.DailyChallengeRepository")
        )
        self._progress = ChallengeProgressRepository(
            model_class=ChallengeProgress, logger=get_logger(f"{__name__}.ChallengeProgressRepository")
        )

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def record_session(
        self, facts: ChallengeJobPayload, now: Optional[datetime] = None
    ) -> List[ChallengeCompletion]:
        """
        Advance the player's active challenges from one completed session.

        This is a **write operation** using get_transaction() under the
        player lock. Challenges are matched against the session's completion
        time, so a delayed job still counts toward the right day.

        Returns:
            Challenges completed by this session
        """
        now = now or utc_now()
        moment = facts.completed_at or now
        player_id = facts.player_id
        completions: List[ChallengeCompletion] = []

        async with LogContext(player_id=player_id, session_id=facts.session_id, operation="challenge.record"):
            async with self._locks.hold(player_id):
                async with DatabaseService.get_transaction() as session:
                    for challenge in await self._challenges.active_at(session, moment):
                        completion = await self._advance(session, challenge, facts, now)
                        if completion is not None:
                            completions.append(completion)

        for completion in completions:
            await self.emit_event(
                RewardEvent.CHALLENGE_COMPLETED,
                {"player_id": player_id, "session_id": facts.session_id, **completion.to_dict()},
            )
        return completions

    async def _advance(
        self,
        session: AsyncSession,
        challenge: DailyChallenge,
        facts: ChallengeJobPayload,
        now: datetime,
    ) -> Optional[ChallengeCompletion]:
        progress = await self._progress.find_for(
            session, facts.player_id, challenge.id, for_update=True
        )
        current = progress.current_value if progress is not None else 0
        value = progress_value(challenge, facts, current)
        if value == current:
            return None

        if progress is None:
            progress = ChallengeProgress(
                player_id=facts.player_id,
                challenge_id=challenge.id,
                current_value=0,
                is_completed=False,
                rewards_claimed=False,
                processed_session_ids=[],
            )
            self._progress.add(session, progress)
        elif facts.session_id in (progress.processed_session_ids or []):
            self.log.debug(
                "Session already counted for challenge",
                extra={"challenge_id": challenge.id, "session_id": facts.session_id},
            )
            return None

        progress.current_value = value
        progress.processed_session_ids = [*(progress.processed_session_ids or []), facts.session_id]

        completion = None
        if not progress.is_completed and value >= challenge.target_value:
            progress.is_completed = True
            progress.completed_at = now
            completion = await self._grant_rewards(session, challenge, progress, now)

        await self._progress.flush(session)
        self.log.debug(
            "Challenge progress updated",
            extra={
                "player_id": facts.player_id,
                "challenge_id": challenge.id,
                "progress": value,
                "target": challenge.target_value,
                "completed": progress.is_completed,
            },
        )
        return completion

    async def _grant_rewards(
        self,
        session: AsyncSession,
        challenge: DailyChallenge,
        progress: ChallengeProgress,
        now: datetime,
    ) -> ChallengeCompletion:
        player_id = progress.player_id

        if not progress.rewards_claimed:
            await self._wallet.credit(
                session,
                player_id,
                challenge.reward_points,
                LedgerSource.DAILY_CHALLENGE,
                source_reference_id=str(challenge.id),
                description=f"Daily Challenge: {challenge.title}",
            )
            if challenge.reward_xp > 0:
                progression = await self._progression.get_or_create(session, player_id)
                self._progression.grant_experience(progression, challenge.reward_xp, now)
            progress.rewards_claimed = True

        await session.execute(
            update(DailyChallenge)
            .where(DailyChallenge.id == challenge.id)
            .values(total_completions=DailyChallenge.total_completions + 1)
            .execution_options(synchronize_session=False)
        )

        self.log.info(
            "Daily challenge completed",
            extra={
                "player_id": player_id,
                "challenge_id": challenge.id,
                "reward_points": challenge.reward_points,
                "reward_xp": challenge.reward_xp,
            },
        )
        return ChallengeCompletion(
            challenge_id=challenge.id,
            code=challenge.code,
            title=challenge.title,
            reward_points=challenge.reward_points,
            reward_xp=challenge.reward_xp,
            completed_at=now,
        )

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_player_challenges(
        self, player_id: int, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        now = now or utc_now()
        async with DatabaseService.get_session() as session:
            challenges = await self._challenges.active_at(session, now)
            rows = await self._progress.find_many_where(
                session,
                ChallengeProgress.player_id == player_id,
                ChallengeProgress.challenge_id.in_([c.id for c in challenges]),
            )
            by_challenge = {row.challenge_id: row for row in rows}

            return [
                {
                    "challenge_id": challenge.id,
                    "code": challenge.code,
                    "title": challenge.title,
                    "type": challenge.challenge_type,
                    "target": challenge.target_value,
                    "progress": by_challenge[challenge.id].current_value if challenge.id in by_challenge else 0,
                    "is_completed": bool(
                        challenge.id in by_challenge and by_challenge[challenge.id].is_completed
                    ),
                    "ends_at": challenge.ends_at.isoformat(),
                }
                for challenge in challenges
            ]

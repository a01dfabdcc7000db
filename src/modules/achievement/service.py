"""
Achievement Service
===================

Purpose
-------
Evaluates active achievement definitions for a player and persists unlocks
and partial progress.

Domain
------
- `check_and_unlock` runs inside the caller's transaction (inline during
  session completion, or inside the achievement worker's own transaction)
- Unlocks are idempotent: a definition already at 100% is skipped, and a
  concurrent insert of the same (player, definition) row is reported as
  `already_unlocked` without granting anything
- Newly unlocked definitions credit their reward points to the wallet and
  their reward XP to progression, exactly once (`rewards_granted`)
- Read APIs: completion rate and a per-category listing
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from src.core.database.base import utc_now
from src.core.database.service import DatabaseService
from src.core.event.types import RewardEvent
from src.core.logging.logger import LogContext, get_logger
from src.database.models.enums import LedgerSource
from src.database.models.progression.achievement import AchievementDefinition, AchievementUnlock
from src.modules.achievement.evaluator import Evaluation, EvaluationContext, evaluate
from src.modules.progression.snapshot import ProgressionSnapshot
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.constants import RECENT_UNLOCKS_LIMIT
from src.modules.shared.formulas import LevelProgressResult, SessionFacts
from src.modules.shared.locks import PlayerLockRegistry, player_locks

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.database.models.progression.player_progression import PlayerProgression
    from src.modules.progression.service import ProgressionService
    from src.modules.wallet.service import WalletService


@dataclass(frozen=True)
class UnlockResult:
    achievement_id: int
    code: str
    name: str
    unlocked_at: datetime
    reward_points: int = 0
    reward_xp: int = 0
    already_unlocked: bool = False
    level_up: Optional[LevelProgressResult] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "achievement_id": self.achievement_id,
            "code": self.code,
            "name": self.name,
            "unlocked_at": self.unlocked_at.isoformat(),
            "reward_points": self.reward_points,
            "reward_xp": self.reward_xp,
            "already_unlocked": self.already_unlocked,
        }


# ============================================================================
# Repositories
# ============================================================================


class AchievementDefinitionRepository(BaseRepository[AchievementDefinition]):
    async def active(self, session: AsyncSession) -> List[AchievementDefinition]:
        return await self.find_many_where(
            session,
            AchievementDefinition.is_active.is_(True),
            order_by=[AchievementDefinition.display_order, AchievementDefinition.id],
        )


class AchievementUnlockRepository(BaseRepository[AchievementUnlock]):
    async def for_player(
        self, session: AsyncSession, player_id: int
    ) -> Dict[int, AchievementUnlock]:
        rows = await self.find_many_where(session, AchievementUnlock.player_id == player_id)
        return {row.achievement_id: row for row in rows}


# ============================================================================
# AchievementService
# ============================================================================


class AchievementService(BaseService):
    """
    Achievement evaluation, unlock and progress tracking.

    Public Methods
    --------------
    - check_and_unlock() -> Evaluate and persist inside the caller's transaction
    - check_and_unlock_for_player() -> Same, in a dedicated transaction (worker path)
    - get_completion_rate() -> Unlocked / active total
    - get_player_achievements() -> Definitions grouped by category with progress
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
        self._definitions = AchievementDefinitionRepository(
            model_class=AchievementDefinition,
            logger=get_logger(f"{__name__}.AchievementDefinitionRepository"),
        )
        self._unlocks = AchievementUnlockRepository(
            model_class=AchievementUnlock,
            logger=get_logger(f"{__name__}.AchievementUnlockRepository"),
        )

    # ========================================================================
    # Transaction-scoped operations
    # ========================================================================

    async def check_and_unlock(
        self,
        session: AsyncSession,
        progression: PlayerProgression,
        context: EvaluationContext,
        session_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[UnlockResult]:
        """
        Evaluate every active definition and persist the outcome.

        Args:
            session: Active transaction session
            progression: Locked progression row of the player (receives
                unlock counters and reward XP)
            context: Evaluation context built from the same progression
            session_id: Game session that triggered the check, if any
            now: Unlock timestamp

        Returns:
            One UnlockResult per definition unlocked by this call
        """
        now = now or utc_now()
        player_id = progression.player_id

        definitions = await self._definitions.active(session)
        existing = await self._unlocks.for_player(session, player_id)

        results: List[UnlockResult] = []
        unsupported = 0

        for definition in definitions:
            unlock = existing.get(definition.id)
            if unlock is not None and unlock.progress_percent >= 100:
                continue

            evaluation = evaluate(definition, context)
            if evaluation.unsupported:
                unsupported += 1
                self.log.debug(
                    "Unsupported achievement criteria skipped",
                    extra={
                        "achievement_id": definition.id,
                        "criteria_type": definition.criteria_type,
                        "reason": evaluation.reason,
                    },
                )
                continue

            if evaluation.meets:
                result = await self._unlock(
                    session, progression, definition, unlock, evaluation, session_id, now
                )
                results.append(result)
            elif evaluation.current_value > 0:
                await self._record_progress(session, player_id, definition, unlock, evaluation)

        self.log.info(
            "Achievement check completed",
            extra={
                "player_id": player_id,
                "session_id": session_id,
                "unlocked_count": sum(1 for r in results if not r.already_unlocked),
                "unsupported_count": unsupported,
            },
        )
        return results

    async def _unlock(
        self,
        session: AsyncSession,
        progression: PlayerProgression,
        definition: AchievementDefinition,
        unlock: Optional[AchievementUnlock],
        evaluation: Evaluation,
        session_id: Optional[int],
        now: datetime,
    ) -> UnlockResult:
        player_id = progression.player_id

        if unlock is None:
            unlock = AchievementUnlock(
                player_id=player_id,
                achievement_id=definition.id,
                progress_percent=100.0,
                current_value=evaluation.current_value,
                unlocked_at=now,
                session_id=session_id,
                rewards_granted=False,
                notification_sent=False,
            )
            try:
                async with session.begin_nested():
                    self._unlocks.add(session, unlock)
            except IntegrityError:
                # Another writer inserted the same (player, definition) row
                self.log.info(
                    "Achievement already unlocked concurrently",
                    extra={"player_id": player_id, "achievement_id": definition.id},
                )
                return UnlockResult(
                    achievement_id=definition.id,
                    code=definition.code,
                    name=definition.name,
                    unlocked_at=now,
                    already_unlocked=True,
                )
        else:
            unlock.progress_percent = 100.0
            unlock.current_value = evaluation.current_value
            unlock.unlocked_at = now
            unlock.session_id = session_id

        await session.execute(
            update(AchievementDefinition)
            .where(AchievementDefinition.id == definition.id)
            .values(unlock_count=AchievementDefinition.unlock_count + 1)
            .execution_options(synchronize_session=False)
        )

        limit = int(self.get_config("achievements.recent_unlocks_limit", RECENT_UNLOCKS_LIMIT))
        recent = list(progression.recent_unlocks or [])
        recent.append(
            {"achievement_id": definition.id, "code": definition.code, "unlocked_at": now.isoformat()}
        )
        progression.recent_unlocks = recent[-limit:]
        progression.achievements_unlocked = progression.achievements_unlocked + 1

        level_up = None
        if not unlock.rewards_granted:
            if definition.reward_points > 0:
                await self._wallet.credit(
                    session,
                    player_id,
                    definition.reward_points,
                    LedgerSource.ACHIEVEMENT,
                    source_reference_id=str(definition.id),
                    description=f"Achievement unlocked: {definition.name}",
                )
            if definition.reward_xp > 0:
                level_up = self._progression.grant_experience(progression, definition.reward_xp, now)
            unlock.rewards_granted = True

        await self._unlocks.flush(session)

        self.log.info(
            "Achievement unlocked",
            extra={
                "player_id": player_id,
                "achievement_id": definition.id,
                "achievement_code": definition.code,
                "session_id": session_id,
            },
        )
        return UnlockResult(
            achievement_id=definition.id,
            code=definition.code,
            name=definition.name,
            unlocked_at=now,
            reward_points=definition.reward_points,
            reward_xp=definition.reward_xp,
            level_up=level_up,
        )

    async def _record_progress(
        self,
        session: AsyncSession,
        player_id: int,
        definition: AchievementDefinition,
        unlock: Optional[AchievementUnlock],
        evaluation: Evaluation,
    ) -> None:
        if unlock is None:
            unlock = AchievementUnlock(
                player_id=player_id,
                achievement_id=definition.id,
                progress_percent=evaluation.progress_percent,
                current_value=evaluation.current_value,
                unlocked_at=None,
                rewards_granted=False,
                notification_sent=False,
            )
            try:
                async with session.begin_nested():
                    self._unlocks.add(session, unlock)
            except IntegrityError:
                self.log.debug(
                    "Progress row created concurrently; skipping",
                    extra={"player_id": player_id, "achievement_id": definition.id},
                )
            return

        unlock.progress_percent = evaluation.progress_percent
        unlock.current_value = evaluation.current_value

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def check_and_unlock_for_player(
        self,
        player_id: int,
        activity_id: Optional[int] = None,
        recent_session: Optional[SessionFacts] = None,
        session_id: Optional[int] = None,
        activity_slug: Optional[str] = None,
        domain_id: Optional[str] = None,
        domain_progress: Optional[Mapping[str, Any]] = None,
    ) -> List[UnlockResult]:
        """
        Run an achievement check in a dedicated transaction.

        This is a **write operation** using get_transaction() under the
        player lock. Progression and wallet are read fresh inside the
        transaction rather than from any queued snapshot.
        """
        self.log_operation("check_and_unlock_for_player", player_id=player_id, session_id=session_id)

        async with LogContext(player_id=player_id, session_id=session_id, operation="achievement.check"):
            async with self._locks.hold(player_id):
                async with DatabaseService.get_transaction() as session:
                    progression = await self._progression.get_or_create(session, player_id)
                    wallet = await self._wallet.get_or_create_wallet(session, player_id)
                    context = EvaluationContext(
                        snapshot=ProgressionSnapshot.from_model(progression),
                        recent_session=recent_session,
                        activity_id=activity_id,
                        activity_slug=activity_slug,
                        domain_id=domain_id,
                        domain_progress=dict(domain_progress or {}),
                        lifetime_points=wallet.lifetime_earned,
                    )
                    results = await self.check_and_unlock(
                        session, progression, context, session_id=session_id
                    )

        for result in results:
            if result.already_unlocked:
                continue
            await self.emit_event(
                RewardEvent.ACHIEVEMENT_UNLOCKED,
                {"player_id": player_id, "session_id": session_id, **result.to_dict()},
            )
        return results

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_completion_rate(self, player_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_session() as session:
            total = await session.scalar(
                select(func.count())
                .select_from(AchievementDefinition)
                .where(AchievementDefinition.is_active.is_(True))
            )
            unlocked = await session.scalar(
                select(func.count())
                .select_from(AchievementUnlock)
                .join(AchievementDefinition, AchievementDefinition.id == AchievementUnlock.achievement_id)
                .where(
                    AchievementUnlock.player_id == player_id,
                    AchievementUnlock.unlocked_at.is_not(None),
                    AchievementDefinition.is_active.is_(True),
                )
            )

        total = int(total or 0)
        unlocked = int(unlocked or 0)
        return {
            "unlocked": unlocked,
            "total": total,
            "percentage": round(unlocked / total * 100, 2) if total else 0.0,
        }

    async def get_player_achievements(self, player_id: int) -> Dict[str, List[Dict[str, Any]]]:
        """Active definitions grouped by category, each with the player's progress."""
        async with DatabaseService.get_session() as session:
            definitions = await self._definitions.active(session)
            unlocks = await self._unlocks.for_player(session, player_id)

        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for definition in definitions:
            unlock = unlocks.get(definition.id)
            grouped.setdefault(definition.category, []).append(
                {
                    "achievement_id": definition.id,
                    "code": definition.code,
                    "name": definition.name,
                    "description": definition.description,
                    "target_value": definition.target_value,
                    "reward_points": definition.reward_points,
                    "reward_xp": definition.reward_xp,
                    "current_value": unlock.current_value if unlock else 0,
                    "progress_percent": unlock.progress_percent if unlock else 0.0,
                    "unlocked": bool(unlock and unlock.unlocked_at),
                    "unlocked_at": (
                        unlock.unlocked_at.isoformat() if unlock and unlock.unlocked_at else None
                    ),
                }
            )
        return grouped

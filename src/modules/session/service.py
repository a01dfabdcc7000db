"""
Session Service
===============

Purpose
-------
Orchestrates a game session from start to its terminal state and grants its
rewards.

State machine
-------------
    in_progress -> completed
    in_progress -> abandoned

Both targets are terminal. Completing a non-`in_progress` session raises
InvalidStateError; abandoning an abandoned session is a no-op.

Completion
----------
The critical path runs as one transaction under the per-player lock:

 1. Load the session (row-locked), player profile, activity, brand
    multiplier, progression and wallet
 2. Measure duration from `started_at`
 3. Update the win streak
 4. Compute points and XP (the reward policy may suppress both)
 5. Apply XP with bounded level-ups; record statistics
 6. Update the per-activity rating for rating-tracked activities
 7. Credit the wallet, appending a ledger entry
 8. Evaluate achievements inside a SAVEPOINT; on failure the savepoint is
    rolled back and an achievement job is enqueued in the same transaction
 9. Finalize the session row
10. Commit

Stale `version` conflicts retry the whole transaction up to
`session.max_conflict_retries` times; a transaction that exceeds
`session.transaction_timeout_seconds` is cancelled and rolled back. After
commit, the ordered post-commit hooks run while the player lock is still
held; their failures are recorded on the result and never fail the call.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from sqlalchemy.orm.exc import StaleDataError

from src.core.config.config import Config
from src.core.database.base import utc_now
from src.core.database.service import DatabaseService
from src.core.event.types import RewardEvent
from src.core.logging.logger import LogContext, get_logger
from src.database.models.economy.wallet import Wallet
from src.database.models.enums import LedgerSource, SessionStatus, StreakType
from src.database.models.progression.game_session import GameSession
from src.database.models.progression.player_progression import PlayerProgression
from src.database.models.queue.job import JobRecord
from src.modules.achievement.evaluator import EvaluationContext
from src.modules.activity.service import scoring_for
from src.modules.progression.snapshot import ProgressionSnapshot
from src.modules.queue.jobs import AchievementJobPayload
from src.modules.session.hooks import (
    EmitCompletionEventsHook,
    EnqueueChallengeProgressHook,
    EnqueueLeaderboardRefreshHook,
    InvalidatePlayerCacheHook,
    PostCommitHook,
    run_hooks,
)
from src.modules.session.policy import RewardPolicy
from src.modules.session.result import CompletionResult, OutcomeFacts
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    DeferredFailure,
    InvalidStateError,
    NotFoundError,
    TransactionConflictError,
    TransactionTimeoutError,
)
from src.modules.shared.formulas import (
    LevelProgressResult,
    SessionFacts,
    compute_experience,
    compute_points,
)
from src.modules.shared.locks import PlayerLockRegistry, player_locks
from src.modules.shared.validators import validate_session_facts

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.achievement.service import AchievementService
    from src.modules.activity.service import ActivityService
    from src.modules.player.directory import PlayerDirectory
    from src.modules.progression.service import ProgressionService
    from src.modules.queue.service import JobQueueService
    from src.modules.streak.service import StreakService
    from src.modules.wallet.service import WalletService


ACHIEVEMENT_STEP = "achievement_evaluation"


class GameSessionRepository(BaseRepository[GameSession]):
    pass


class SessionService(BaseService):
    """
    Session lifecycle and reward orchestration.

    Public Methods
    --------------
    - start_session() -> Create an in-progress session
    - complete_session() -> Atomically grant rewards and complete
    - abandon_session() -> Close a session without rewards
    - get_session() -> Read a session summary
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        directory: PlayerDirectory,
        activities: ActivityService,
        progression: ProgressionService,
        wallet: WalletService,
        streaks: StreakService,
        achievements: AchievementService,
        queue: JobQueueService,
        hooks: Optional[Sequence[PostCommitHook]] = None,
        locks: Optional[PlayerLockRegistry] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._directory = directory
        self._activities = activities
        self._progression = progression
        self._wallet = wallet
        self._streaks = streaks
        self._achievements = achievements
        self._queue = queue
        self._locks = locks or player_locks
        self._sessions = GameSessionRepository(
            model_class=GameSession, logger=get_logger(f"{__name__}.GameSessionRepository")
        )
        self.hooks: List[PostCommitHook] = (
            list(hooks) if hooks is not None else self.default_hooks()
        )

    def default_hooks(self) -> List[PostCommitHook]:
        """Cache invalidation, analytics, challenge progress, optional leaderboard refresh."""
        return [
            InvalidatePlayerCacheHook(self._directory),
            EmitCompletionEventsHook(self._events),
            EnqueueChallengeProgressHook(self._queue),
            EnqueueLeaderboardRefreshHook(
                self._queue,
                enabled=bool(self.get_config("session.enqueue_leaderboard_refresh", False)),
            ),
        ]

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def start_session(
        self,
        player_id: int,
        activity_id: int,
        context: Optional[Dict[str, Any]] = None,
        practice: bool = False,
        difficulty: Optional[str] = None,
    ) -> int:
        """
        Create an in-progress session.

        This is a **write operation** using get_transaction().

        Raises:
            NotFoundError: If the player or activity does not exist
            InvalidOperationError: If the player or activity is inactive
        """
        self.log_operation("start_session", player_id=player_id, activity_id=activity_id)

        async with LogContext(player_id=player_id, operation="session.start"):
            async with DatabaseService.get_transaction() as session:
                await self._directory.require_active(player_id, session=session)
                await self._activities.get_activity(session, activity_id)

                game = GameSession(
                    player_id=player_id,
                    activity_id=activity_id,
                    status=SessionStatus.IN_PROGRESS.value,
                    started_at=utc_now(),
                    context=dict(context or {}),
                    difficulty=difficulty,
                    is_ghost=practice,
                    rewards_granted=False,
                    points_awarded=0,
                    xp_awarded=0,
                    achievement_ids=[],
                )
                self._sessions.add(session, game)
                await self._sessions.flush(session)
                session_id = game.id

        await self.emit_event(
            RewardEvent.SESSION_STARTED,
            {
                "player_id": player_id,
                "activity_id": activity_id,
                "session_id": session_id,
                "practice": practice,
            },
        )
        return session_id

    async def complete_session(
        self,
        session_id: int,
        facts: OutcomeFacts,
        *,
        practice: bool = False,
        domain_progress: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> CompletionResult:
        """
        Complete a session and grant its rewards atomically.

        This is a **write operation** using get_transaction() under the
        player lock, a row lock on every mutated row and optimistic version
        checks.

        Args:
            session_id: Session to complete
            facts: Reported outcome, score, accuracy and difficulty
            practice: Ghost mode; also implied by a practice session start
            domain_progress: Secondary-domain progress block for scoped
                achievement criteria
            now: Completion time

        Raises:
            ValidationError: If the facts are invalid
            NotFoundError: If the session, player or activity is missing
            InvalidStateError: If the session is not in progress
            TransactionConflictError: If version conflicts persist
            TransactionTimeoutError: If the transaction exceeds its deadline
        """
        # Validate before touching the database; duration is measured later
        validate_session_facts(facts.to_session_facts(0))

        player_id = await self._owner_of(session_id)
        timeout = float(
            self.get_config(
                "session.transaction_timeout_seconds", Config.SESSION_TRANSACTION_TIMEOUT_SECONDS
            )
        )
        max_attempts = int(
            self.get_config("session.max_conflict_retries", Config.SESSION_MAX_CONFLICT_RETRIES)
        )

        self.log_operation("complete_session", session_id=session_id, player_id=player_id)

        async with LogContext(player_id=player_id, session_id=session_id, operation="session.complete"):
            async with self._locks.hold(player_id):
                result = await self._complete_with_retry(
                    session_id, facts, practice, domain_progress, now, timeout, max_attempts
                )

                # Still under the player lock so the player's next completion
                # never overlaps this one's follow-up writes
                result.hook_failures = await run_hooks(self.hooks, result)

        self.log.info(
            "Session completed",
            extra={
                "session_id": session_id,
                "player_id": player_id,
                "policy": result.policy,
                "points_awarded": result.points_awarded,
                "xp_awarded": result.xp_awarded,
                "achievements": len(result.achievement_ids),
                "deferred": len(result.deferred),
                "hook_failures": len(result.hook_failures),
            },
        )
        return result

    async def _complete_with_retry(
        self,
        session_id: int,
        facts: OutcomeFacts,
        practice: bool,
        domain_progress: Optional[Dict[str, Any]],
        now: Optional[datetime],
        timeout: float,
        max_attempts: int,
    ) -> CompletionResult:
        for attempt in range(1, max_attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._complete_once(session_id, facts, practice, domain_progress, now),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as exc:
                self.log.error(
                    "Session completion timed out; rolled back",
                    extra={"session_id": session_id, "timeout_seconds": timeout},
                )
                raise TransactionTimeoutError("complete_session", timeout) from exc
            except StaleDataError:
                self.log.warning(
                    "Version conflict completing session; retrying",
                    extra={"session_id": session_id, "attempt": attempt, "max_attempts": max_attempts},
                )

        self.log.error(
            "Session completion conflict retries exhausted",
            extra={"session_id": session_id, "attempts": max_attempts},
        )
        raise TransactionConflictError("GameSession", max_attempts)

    async def _complete_once(
        self,
        session_id: int,
        outcome: OutcomeFacts,
        practice: bool,
        domain_progress: Optional[Dict[str, Any]],
        now: Optional[datetime],
    ) -> CompletionResult:
        async with DatabaseService.get_transaction() as session:
            # 1. Load
            game = await self._sessions.get_for_update(session, session_id)
            if game is None:
                raise NotFoundError("GameSession", session_id)
            if game.status != SessionStatus.IN_PROGRESS.value:
                raise InvalidStateError("GameSession", game.status, SessionStatus.COMPLETED.value)

            player_id = game.player_id
            profile = await self._directory.get_profile(player_id, session=session)
            activity = await self._activities.get_activity(
                session, game.activity_id, require_active=False
            )
            brand_multiplier = await self._activities.brand_multiplier(
                session, profile.brand_id, activity.id
            )
            progression = await self._progression.get_or_create(session, player_id)
            wallet = await self._wallet.get_or_create_wallet(session, player_id)

            # 2. Duration
            ended_at = now or utc_now()
            duration_ms = max(0, int((ended_at - game.started_at).total_seconds() * 1000))
            facts = outcome.to_session_facts(duration_ms)
            policy = RewardPolicy.for_session(practice or game.is_ghost)

            result = CompletionResult(
                session_id=game.id,
                player_id=player_id,
                activity_id=activity.id,
                status=SessionStatus.COMPLETED.value,
                outcome=facts.outcome,
                policy=policy.name,
                duration_ms=duration_ms,
                ended_at=ended_at,
                brand_id=profile.brand_id,
                formula=policy.formula_override,
                is_perfect=facts.is_perfect,
            )

            # 3. Streak
            current_streak = progression.current_streak
            if policy.update_streaks:
                result.streak = await self._streaks.update_streak(
                    session, player_id, StreakType.WIN, facts.outcome, ended_at
                )
                current_streak = result.streak.current

            # 4. Points and XP
            scoring = scoring_for(activity)
            multipliers = profile.multipliers(current_streak, brand_multiplier)
            if policy.award_points:
                result.points = compute_points(facts, scoring, multipliers, ended_at)
                result.points_awarded = result.points.total
                result.formula = result.points.formula
            if policy.award_experience:
                result.xp_awarded = compute_experience(facts, scoring, multipliers, ended_at).total

            # 5. Progression
            if policy.award_experience:
                result.level_progress = self._progression.grant_experience(
                    progression, result.xp_awarded, ended_at
                )
            if policy.record_statistics:
                self._progression.record_session(
                    progression,
                    activity.id,
                    facts,
                    ended_at,
                    win_streak=(result.streak.current, result.streak.best) if result.streak else None,
                )

            # 6. Rating
            if policy.update_rating and activity.rating_tracked:
                result.rating = self._progression.update_rating(
                    progression, activity.id, facts.outcome, outcome.difficulty or game.difficulty
                )

            # 7. Wallet
            if policy.award_points:
                await self._wallet.credit(
                    session,
                    player_id,
                    result.points_awarded,
                    LedgerSource.GAME_SESSION,
                    source_reference_id=str(game.id),
                    description=f"{activity.name} - {facts.outcome}",
                    wallet=wallet,
                )

            # 8. Achievements
            if policy.evaluate_achievements:
                await self._evaluate_achievements(
                    session, game, activity.slug, progression, wallet, facts, domain_progress, ended_at, result
                )

            # 9. Finalize
            game.status = SessionStatus.COMPLETED.value
            game.ended_at = ended_at
            game.duration_ms = duration_ms
            game.outcome = facts.outcome
            game.score = facts.score
            game.max_score = facts.max_score
            game.accuracy = facts.accuracy
            if outcome.difficulty:
                game.difficulty = outcome.difficulty
            game.is_ghost = policy.is_practice
            game.rewards_granted = not policy.is_practice
            game.points_awarded = result.points_awarded
            game.xp_awarded = result.xp_awarded
            game.achievement_ids = result.achievement_ids
            game.formula = result.formula
            await self._sessions.flush(session)

            result.balance = wallet.balance

        # 10. Committed
        return result

    async def _evaluate_achievements(
        self,
        session: AsyncSession,
        game: GameSession,
        activity_slug: str,
        progression: PlayerProgression,
        wallet: Wallet,
        facts: SessionFacts,
        domain_progress: Optional[Dict[str, Any]],
        now: datetime,
        result: CompletionResult,
    ) -> None:
        context = EvaluationContext(
            snapshot=ProgressionSnapshot.from_model(progression),
            recent_session=facts,
            activity_id=game.activity_id,
            activity_slug=activity_slug,
            domain_id=(game.context or {}).get("domain_id"),
            domain_progress=dict(domain_progress or {}),
            lifetime_points=wallet.lifetime_earned,
        )

        if not self.get_config("session.inline_achievements", True):
            job = await self._enqueue_achievement_job(session, game, context)
            result.deferred.append(
                DeferredFailure(
                    step=ACHIEVEMENT_STEP,
                    error="inline achievement evaluation disabled",
                    error_type="InlineEvaluationDisabled",
                    job_id=job.id,
                )
            )
            return

        try:
            async with session.begin_nested():
                result.achievements = await self._achievements.check_and_unlock(
                    session, progression, context, session_id=game.id, now=now
                )
        except StaleDataError:
            raise
        except Exception as exc:
            # Savepoint rolled back; reload rows it may have expired
            await session.refresh(progression)
            await session.refresh(wallet)
            result.achievements = []

            job = await self._enqueue_achievement_job(session, game, context)
            result.deferred.append(DeferredFailure.from_exception(ACHIEVEMENT_STEP, exc, job_id=job.id))
            self.log.error(
                "Inline achievement evaluation failed; deferred to queue",
                extra={
                    "session_id": game.id,
                    "player_id": game.player_id,
                    "job_id": job.id,
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return

        for unlock in result.achievements:
            if unlock.level_up is not None and result.level_progress is not None:
                # Achievement XP can push the level further; report the final position
                result.level_progress = _merge_level_progress(result.level_progress, unlock.level_up)

    async def _enqueue_achievement_job(
        self, session: AsyncSession, game: GameSession, context: EvaluationContext
    ) -> JobRecord:
        return await self._queue.enqueue(
            AchievementJobPayload(
                player_id=game.player_id,
                session_id=game.id,
                activity_id=game.activity_id,
                activity_slug=context.activity_slug,
                facts=context.recent_session,
                snapshot=context.snapshot,
                domain_id=context.domain_id,
                domain_progress=dict(context.domain_progress),
            ),
            session=session,
        )

    async def abandon_session(self, session_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Close an in-progress session without rewards. Idempotent once abandoned.

        This is a **write operation** using get_transaction().

        Raises:
            NotFoundError: If the session does not exist
            InvalidStateError: If the session already completed
        """
        transitioned = False
        async with DatabaseService.get_transaction() as session:
            game = await self._sessions.get_for_update(session, session_id)
            if game is None:
                raise NotFoundError("GameSession", session_id)

            if game.status == SessionStatus.IN_PROGRESS.value:
                ended_at = now or utc_now()
                game.status = SessionStatus.ABANDONED.value
                game.ended_at = ended_at
                game.duration_ms = max(0, int((ended_at - game.started_at).total_seconds() * 1000))
                transitioned = True
            elif game.status != SessionStatus.ABANDONED.value:
                raise InvalidStateError("GameSession", game.status, SessionStatus.ABANDONED.value)

            summary = self._session_to_dict(game)

        if transitioned:
            self.log.info(
                "Session abandoned",
                extra={"session_id": session_id, "player_id": summary["player_id"]},
            )
            await self.emit_event(
                RewardEvent.SESSION_ABANDONED,
                {
                    "session_id": session_id,
                    "player_id": summary["player_id"],
                    "activity_id": summary["activity_id"],
                    "duration_ms": summary["duration_ms"],
                },
            )
        return summary

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_session(self, session_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the session does not exist
        """
        async with DatabaseService.get_session() as session:
            game = await self._sessions.get(session, session_id)
            if game is None:
                raise NotFoundError("GameSession", session_id)
            return self._session_to_dict(game)

    async def _owner_of(self, session_id: int) -> int:
        async with DatabaseService.get_session() as session:
            game = await self._sessions.get(session, session_id)
        if game is None:
            raise NotFoundError("GameSession", session_id)
        return game.player_id

    @staticmethod
    def _session_to_dict(game: GameSession) -> Dict[str, Any]:
        return {
            "session_id": game.id,
            "player_id": game.player_id,
            "activity_id": game.activity_id,
            "status": game.status,
            "started_at": game.started_at.isoformat(),
            "ended_at": game.ended_at.isoformat() if game.ended_at else None,
            "duration_ms": game.duration_ms,
            "outcome": game.outcome,
            "score": game.score,
            "max_score": game.max_score,
            "accuracy": game.accuracy,
            "difficulty": game.difficulty,
            "is_ghost": game.is_ghost,
            "rewards_granted": game.rewards_granted,
            "points_awarded": game.points_awarded,
            "xp_awarded": game.xp_awarded,
            "achievement_ids": list(game.achievement_ids or []),
            "formula": game.formula,
        }


def _merge_level_progress(
    first: LevelProgressResult, second: LevelProgressResult
) -> LevelProgressResult:
    return LevelProgressResult(
        leveled_up=first.leveled_up or second.leveled_up,
        levels_gained=first.levels_gained + second.levels_gained,
        final_level=second.final_level,
        final_xp=second.final_xp,
        final_xp_to_next=second.final_xp_to_next,
        xp_applied=first.xp_applied + second.xp_applied,
        level_up_results=[*first.level_up_results, *second.level_up_results],
        capped=second.capped,
        xp_discarded=first.xp_discarded + second.xp_discarded,
    )

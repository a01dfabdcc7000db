"""
Post-commit hooks for session completion.

Hooks run in list order after the completion transaction commits. Each hook
is isolated: a failure is logged with the session and player ids, recorded
on the CompletionResult, and the remaining hooks still run. Hooks never see
an uncommitted result and can never roll anything back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Protocol, Sequence

from src.core.event.types import RewardEvent
from src.core.logging.logger import get_logger
from src.modules.queue.jobs import ChallengeJobPayload, LeaderboardJobPayload
from src.modules.session.result import CompletionResult, HookFailure

if TYPE_CHECKING:
    from src.core.event.bus import EventBus
    from src.modules.player.directory import PlayerDirectory
    from src.modules.queue.service import JobQueueService

logger = get_logger(__name__)


class PostCommitHook(Protocol):
    name: str

    async def __call__(self, result: CompletionResult) -> None: ...


async def run_hooks(
    hooks: Sequence[PostCommitHook], result: CompletionResult
) -> List[HookFailure]:
    """Run every hook in order; collect failures instead of raising."""
    failures: List[HookFailure] = []
    for hook in hooks:
        try:
            await hook(result)
        except Exception as exc:
            logger.error(
                f"Post-commit hook '{hook.name}' failed",
                extra={
                    "hook": hook.name,
                    "session_id": result.session_id,
                    "player_id": result.player_id,
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            failures.append(HookFailure(hook=hook.name, error=str(exc), error_type=type(exc).__name__))
    return failures


class InvalidatePlayerCacheHook:
    name = "invalidate_player_cache"

    def __init__(self, directory: PlayerDirectory) -> None:
        self._directory = directory

    async def __call__(self, result: CompletionResult) -> None:
        await self._directory.invalidate(result.player_id)


class EmitCompletionEventsHook:
    """Analytics events for a completion, published in a fixed order."""

    name = "emit_completion_events"

    def __init__(self, event_bus: EventBus) -> None:
        self._bus = event_bus

    async def __call__(self, result: CompletionResult) -> None:
        base: dict[str, Any] = {
            "player_id": result.player_id,
            "session_id": result.session_id,
            "activity_id": result.activity_id,
        }

        await self._bus.publish(
            RewardEvent.SESSION_COMPLETED,
            {
                **base,
                "outcome": result.outcome,
                "policy": result.policy,
                "duration_ms": result.duration_ms,
                "points_awarded": result.points_awarded,
                "xp_awarded": result.xp_awarded,
                "deferred_steps": [d.step for d in result.deferred],
            },
        )

        if result.points_awarded > 0:
            await self._bus.publish(
                RewardEvent.POINTS_EARNED,
                {**base, "amount": result.points_awarded, "balance": result.balance, "formula": result.formula},
            )

        if result.leveled_up and result.level_progress is not None:
            await self._bus.publish(
                RewardEvent.PLAYER_LEVELED_UP,
                {
                    **base,
                    "new_level": result.level_progress.final_level,
                    "levels_gained": result.level_progress.levels_gained,
                    "rewards": [r.to_dict() for r in result.level_progress.level_up_results],
                },
            )

        for unlock in result.achievements:
            if unlock.already_unlocked:
                continue
            await self._bus.publish(RewardEvent.ACHIEVEMENT_UNLOCKED, {**base, **unlock.to_dict()})

        if result.streak is not None and result.streak.milestone_reached is not None:
            await self._bus.publish(
                RewardEvent.STREAK_MILESTONE,
                {
                    **base,
                    "streak_type": result.streak.streak_type,
                    "milestone": result.streak.milestone_reached,
                    "current": result.streak.current,
                    "best": result.streak.best,
                },
            )


class EnqueueChallengeProgressHook:
    name = "enqueue_challenge_progress"

    def __init__(self, queue: JobQueueService) -> None:
        self._queue = queue

    async def __call__(self, result: CompletionResult) -> None:
        if result.policy == "practice":
            return
        await self._queue.enqueue(
            ChallengeJobPayload(
                player_id=result.player_id,
                session_id=result.session_id,
                activity_id=result.activity_id,
                outcome=result.outcome,
                is_perfect=result.is_perfect,
                points_earned=result.points_awarded,
                xp_earned=result.xp_awarded,
                win_streak=result.streak.current if result.streak else 0,
                completed_at=result.ended_at,
            )
        )


class EnqueueLeaderboardRefreshHook:
    """Queues a full leaderboard recomputation for the player's brand. Off by default."""

    name = "enqueue_leaderboard_refresh"

    def __init__(self, queue: JobQueueService, enabled: bool = False) -> None:
        self._queue = queue
        self.enabled = enabled

    async def __call__(self, result: CompletionResult) -> None:
        if not self.enabled or result.policy == "practice":
            return
        await self._queue.enqueue(
            LeaderboardJobPayload(calculate_all=True, brand_id=result.brand_id),
            player_id=result.player_id,
            session_id=result.session_id,
        )

"""
Progression Service
===================

Purpose
-------
Owns the per-player progression row: level and XP, cumulative statistics,
per-activity stats and skill ratings.

Domain
------
- Lazily create progression rows
- Apply XP grants through the bounded level-up routine
- Record session statistics and per-activity stats
- Update per-activity skill ratings against a difficulty-derived opponent

All mutating methods run inside the caller's transaction; only reads open
their own session.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.database.models.progression.player_progression import PlayerProgression
from src.modules.progression.snapshot import ProgressionSnapshot
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.constants import LEVEL_CAP, STARTING_RATING
from src.modules.shared.exceptions import NotFoundError
from src.modules.shared.formulas import (
    LevelProgressResult,
    RatingChange,
    SessionFacts,
    apply_experience,
    compute_rating_delta,
    estimate_games_to_next_level,
    game_result,
    level_progress_percentage,
    opponent_rating,
    xp_to_next_level,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class ProgressionRepository(BaseRepository[PlayerProgression]):
    async def find_by_player(
        self, session: AsyncSession, player_id: int, for_update: bool = False
    ) -> Optional[PlayerProgression]:
        return await self.find_one_where(
            session, PlayerProgression.player_id == player_id, for_update=for_update
        )


class ProgressionService(BaseService):
    """
    Level, XP and statistics bookkeeping.

    Public Methods
    --------------
    - get_or_create() -> Load (optionally locked) or lazily create progression
    - grant_experience() -> Apply XP and resolve level-ups
    - record_session() -> Update cumulative and per-activity statistics
    - update_rating() -> Update a per-activity skill rating
    - get_progression() -> Read-only summary
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._repo = ProgressionRepository(
            model_class=PlayerProgression,
            logger=get_logger(f"{__name__}.ProgressionRepository"),
        )

    # ========================================================================
    # Transaction-scoped operations
    # ========================================================================

    async def get_or_create(
        self, session: AsyncSession, player_id: int, for_update: bool = True
    ) -> PlayerProgression:
        progression = await self._repo.find_by_player(session, player_id, for_update=for_update)
        if progression is not None:
            return progression

        progression = PlayerProgression(
            player_id=player_id,
            level=1,
            current_xp=0,
            xp_to_next_level=xp_to_next_level(1),
            total_xp=0,
            games_played=0,
            wins=0,
            losses=0,
            draws=0,
            current_streak=0,
            best_streak=0,
            total_play_time_ms=0,
            average_session_ms=0,
            activity_stats={},
            achievements_unlocked=0,
            recent_unlocks=[],
        )
        self._repo.add(session, progression)
        await self._repo.flush(session)

        self.log.info("Progression created", extra={"player_id": player_id})
        return progression

    async def reload(self, session: AsyncSession, player_id: int) -> PlayerProgression:
        """
        Fetch the current row, bypassing the identity map.

        Raises:
            NotFoundError: If the player has no progression yet
        """
        progression = await self._repo.find_by_player(session, player_id, for_update=True)
        if progression is None:
            raise NotFoundError("PlayerProgression", player_id)
        await session.refresh(progression)
        return progression

    def grant_experience(
        self,
        progression: PlayerProgression,
        xp: int,
        now: datetime,
    ) -> LevelProgressResult:
        """
        Apply an XP grant to a loaded progression row.

        `total_xp` grows by the XP actually kept; surplus discarded at the
        level cap is reported on the result.
        """
        level_cap = int(self.get_config("progression.level_cap", LEVEL_CAP))
        result = apply_experience(
            progression.level,
            progression.current_xp,
            progression.xp_to_next_level,
            xp,
            level_cap=level_cap,
        )

        progression.level = result.final_level
        progression.current_xp = result.final_xp
        progression.xp_to_next_level = result.final_xp_to_next
        progression.total_xp = progression.total_xp + result.xp_applied
        if result.leveled_up:
            progression.last_level_up = now

        if result.xp_discarded:
            self.log.warning(
                "XP discarded at level cap",
                extra={
                    "player_id": progression.player_id,
                    "level": result.final_level,
                    "xp_discarded": result.xp_discarded,
                },
            )
        if result.leveled_up:
            self.log.info(
                f"Player leveled up to {result.final_level}",
                extra={
                    "player_id": progression.player_id,
                    "levels_gained": result.levels_gained,
                    "new_level": result.final_level,
                },
            )
        return result

    def record_session(
        self,
        progression: PlayerProgression,
        activity_id: int,
        facts: SessionFacts,
        now: datetime,
        win_streak: Optional[tuple[int, int]] = None,
    ) -> None:
        """
        Update cumulative statistics for one completed session.

        Args:
            progression: Loaded progression row
            activity_id: Activity played
            facts: Session outcome facts
            now: Completion time
            win_streak: (current, best) win streak mirrors, if updated
        """
        progression.games_played = progression.games_played + 1
        if facts.outcome == "win":
            progression.wins = progression.wins + 1
        elif facts.outcome == "loss":
            progression.losses = progression.losses + 1
        elif facts.outcome == "draw":
            progression.draws = progression.draws + 1

        progression.total_play_time_ms = progression.total_play_time_ms + facts.duration_ms
        progression.average_session_ms = progression.total_play_time_ms // progression.games_played
        progression.last_played_at = now

        if win_streak is not None:
            progression.current_streak, progression.best_streak = win_streak

        key = str(activity_id)
        stats = {k: dict(v) for k, v in (progression.activity_stats or {}).items()}
        entry = stats.get(key, {"plays": 0, "wins": 0, "best_score": 0})
        entry["plays"] = entry.get("plays", 0) + 1
        if facts.outcome == "win":
            entry["wins"] = entry.get("wins", 0) + 1
        entry["best_score"] = max(entry.get("best_score", 0), facts.score)
        stats[key] = entry
        # Reassign so the JSON column is flushed
        progression.activity_stats = stats

    def update_rating(
        self,
        progression: PlayerProgression,
        activity_id: int,
        outcome: str,
        difficulty: Optional[str],
    ) -> RatingChange:
        """Update the per-activity rating against a difficulty-derived opponent."""
        starting = int(self.get_config("rating.starting_rating", STARTING_RATING))
        table = self.get_config("rating.opponents", None)
        default_difficulty = self.get_config("rating.default_difficulty", "medium")

        key = str(activity_id)
        stats = {k: dict(v) for k, v in (progression.activity_stats or {}).items()}
        entry = stats.get(key, {"plays": 0, "wins": 0, "best_score": 0})
        current = int(entry.get("rating", starting))

        change = compute_rating_delta(
            current,
            opponent_rating(difficulty, table, default_difficulty),
            game_result(outcome),
        )
        entry["rating"] = change.new_rating
        stats[key] = entry
        progression.activity_stats = stats

        self.log.debug(
            "Activity rating updated",
            extra={
                "player_id": progression.player_id,
                "activity_id": activity_id,
                "previous_rating": current,
                "new_rating": change.new_rating,
                "delta": change.delta,
                "difficulty": difficulty,
            },
        )
        return change

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_progression(self, player_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the player has no progression yet
        """
        async with DatabaseService.get_session() as session:
            progression = await self._repo.find_by_player(session, player_id)
            if progression is None:
                raise NotFoundError("PlayerProgression", player_id)

            snapshot = ProgressionSnapshot.from_model(progression)
            average_xp = progression.total_xp / progression.games_played if progression.games_played else 0.0
            return {
                **snapshot.to_dict(),
                "level_progress_percent": round(
                    level_progress_percentage(progression.current_xp, progression.xp_to_next_level),
                    2,
                ),
                "next_level_estimate": estimate_games_to_next_level(
                    progression.current_xp, progression.xp_to_next_level, average_xp
                ),
                "recent_unlocks": list(progression.recent_unlocks or []),
            }

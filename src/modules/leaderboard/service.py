"""
Leaderboard Service
===================

Purpose
-------
Materializes player rankings into `leaderboard_entries` and serves them.

Boards
------
A board is identified by (category, period, brand scope):

- Aggregate categories read a running total and only exist for `all_time`:
  points_balance, points_lifetime, xp_total, level, win_streak,
  daily_streak, rating
- games_won exists for every period; `all_time` reads the progression
  counter, shorter periods count won sessions since the period start
  (UTC midnight, Sunday, first of the month)

Only active players are ranked. A brand scope restricts the board to one
brand's players; boards without one use the "global" scope.

Each recalculation bumps the board's `snapshot_version` and stores the rank
change against the previous snapshot (positive means the player moved up).
Players who fell off the board are removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, desc, func, select

from src.core.database.base import utc_now
from src.core.database.service import DatabaseService
from src.core.event.types import RewardEvent
from src.core.logging.logger import get_logger
from src.database.models.core.player import Player
from src.database.models.economy.wallet import Wallet
from src.database.models.enums import (
    LeaderboardCategory,
    LeaderboardPeriod,
    SessionOutcome,
    SessionStatus,
    StreakType,
)
from src.database.models.progression.game_session import GameSession
from src.database.models.progression.leaderboard import GLOBAL_SCOPE, LeaderboardEntry
from src.database.models.progression.player_progression import PlayerProgression
from src.database.models.progression.streak import StreakRecord
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


MAX_LIMIT = 100

_PERIODIC_CATEGORIES = {LeaderboardCategory.GAMES_WON}


@dataclass(frozen=True)
class Ranking:
    player_id: int
    username: str
    value: int


def period_start(period: LeaderboardPeriod, now: datetime) -> Optional[datetime]:
    """Start of the period containing `now`; None for all_time."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period is LeaderboardPeriod.DAILY:
        return midnight
    if period is LeaderboardPeriod.WEEKLY:
        # Weeks start on Sunday
        return midnight - timedelta(days=(now.weekday() + 1) % 7)
    if period is LeaderboardPeriod.MONTHLY:
        return midnight.replace(day=1)
    return None


def scope_for(brand_id: Optional[str]) -> str:
    return brand_id or GLOBAL_SCOPE


class LeaderboardEntryRepository(BaseRepository[LeaderboardEntry]):
    async def board(
        self,
        session: AsyncSession,
        category: str,
        period: str,
        brand_scope: str,
        for_update: bool = False,
    ) -> List[LeaderboardEntry]:
        return await self.find_many_where(
            session,
            LeaderboardEntry.category == category,
            LeaderboardEntry.period == period,
            LeaderboardEntry.brand_scope == brand_scope,
            order_by=[LeaderboardEntry.rank],
            for_update=for_update,
        )


class LeaderboardService(BaseService):
    """
    Leaderboard calculation and reads.

    Public Methods
    --------------
    - calculate_leaderboard() -> Recompute one board
    - calculate_all_leaderboards() -> Recompute every standard board
    - get_leaderboard() -> Read a page of a board
    - get_player_rank() -> Read one player's position on a board
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._entries = LeaderboardEntryRepository(
            model_class=LeaderboardEntry,
            logger=get_logger(f"{__name__}.LeaderboardEntryRepository"),
        )

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def calculate_leaderboard(
        self,
        category: str,
        period: str = LeaderboardPeriod.ALL_TIME.value,
        brand_id: Optional[str] = None,
        limit: int = MAX_LIMIT,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Recompute one board and replace its snapshot.

        This is a **write operation** using get_transaction().

        Returns:
            Dict with category, period, brand_scope, total_entries and
            snapshot_version

        Raises:
            ValidationError: If the category, period or limit is invalid
        """
        board_category, board_period = self._validate_board(category, period)
        limit = self._validate_limit(limit)
        now = now or utc_now()
        brand_scope = scope_for(brand_id)

        self.log_operation(
            "calculate_leaderboard",
            category=board_category.value,
            period=board_period.value,
            brand_scope=brand_scope,
        )

        async with DatabaseService.get_transaction() as session:
            rankings = await self._rankings(
                session, board_category, board_period, brand_id, limit, now
            )

            previous = await self._entries.board(
                session, board_category.value, board_period.value, brand_scope, for_update=True
            )
            previous_by_player = {entry.player_id: entry for entry in previous}
            version = max((e.snapshot_version for e in previous), default=0) + 1

            ranked_ids = {r.player_id for r in rankings}
            dropped = [pid for pid in previous_by_player if pid not in ranked_ids]
            if dropped:
                await session.execute(
                    delete(LeaderboardEntry).where(
                        LeaderboardEntry.category == board_category.value,
                        LeaderboardEntry.period == board_period.value,
                        LeaderboardEntry.brand_scope == brand_scope,
                        LeaderboardEntry.player_id.in_(dropped),
                    )
                )

            for rank, ranking in enumerate(rankings, start=1):
                entry = previous_by_player.get(ranking.player_id)
                if entry is None:
                    self._entries.add(
                        session,
                        LeaderboardEntry(
                            player_id=ranking.player_id,
                            username=ranking.username,
                            category=board_category.value,
                            period=board_period.value,
                            brand_scope=brand_scope,
                            rank=rank,
                            rank_change=0,
                            value=ranking.value,
                            snapshot_version=version,
                        ),
                    )
                    continue

                entry.rank_change = entry.rank - rank if entry.rank > 0 else 0
                entry.rank = rank
                entry.username = ranking.username
                entry.value = ranking.value
                entry.snapshot_version = version

            await self._entries.flush(session)

        summary = {
            "category": board_category.value,
            "period": board_period.value,
            "brand_scope": brand_scope,
            "total_entries": len(rankings),
            "snapshot_version": version,
        }

        self.log.info(f"Leaderboard calculated: {board_category.value}", extra=summary)
        await self.emit_event(RewardEvent.LEADERBOARD_CALCULATED, summary)
        return summary

    async def calculate_all_leaderboards(
        self, brand_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Recompute every standard board, each in its own transaction.

        A failing board is logged and counted; the rest still run.
        """
        results: Dict[str, Any] = {"success": True, "calculated": 0, "errors": 0}

        for category, period in self.standard_boards():
            try:
                await self.calculate_leaderboard(category.value, period.value, brand_id, now=now)
                results["calculated"] += 1
            except Exception as exc:
                self.log_error(
                    "calculate_all_leaderboards",
                    exc,
                    category=category.value,
                    period=period.value,
                    brand_id=brand_id,
                )
                results["errors"] += 1
                results["success"] = False

        return results

    @staticmethod
    def standard_boards() -> List[Tuple[LeaderboardCategory, LeaderboardPeriod]]:
        boards = [
            (category, LeaderboardPeriod.ALL_TIME)
            for category in LeaderboardCategory
            if category not in _PERIODIC_CATEGORIES
        ]
        boards.extend(
            (LeaderboardCategory.GAMES_WON, period)
            for period in (
                LeaderboardPeriod.WEEKLY,
                LeaderboardPeriod.MONTHLY,
                LeaderboardPeriod.ALL_TIME,
            )
        )
        return boards

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_leaderboard(
        self,
        category: str,
        period: str = LeaderboardPeriod.ALL_TIME.value,
        brand_id: Optional[str] = None,
        limit: int = MAX_LIMIT,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Read a page of a board ordered by rank.

        Raises:
            ValidationError: If the board, limit or offset is invalid
        """
        board_category, board_period = self._validate_board(category, period)
        limit = self._validate_limit(limit)
        if offset < 0:
            raise ValidationError("offset", "Offset cannot be negative")

        async with DatabaseService.get_session() as session:
            stmt = (
                select(LeaderboardEntry)
                .where(
                    LeaderboardEntry.category == board_category.value,
                    LeaderboardEntry.period == board_period.value,
                    LeaderboardEntry.brand_scope == scope_for(brand_id),
                )
                .order_by(LeaderboardEntry.rank)
                .limit(limit)
                .offset(offset)
            )
            entries = (await session.execute(stmt)).scalars().all()
            return [self._entry_to_dict(entry) for entry in entries]

    async def get_player_rank(
        self,
        player_id: int,
        category: str,
        period: str = LeaderboardPeriod.ALL_TIME.value,
        brand_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the player is not on the board
        """
        board_category, board_period = self._validate_board(category, period)

        async with DatabaseService.get_session() as session:
            entry = await self._entries.find_one_where(
                session,
                LeaderboardEntry.player_id == player_id,
                LeaderboardEntry.category == board_category.value,
                LeaderboardEntry.period == board_period.value,
                LeaderboardEntry.brand_scope == scope_for(brand_id),
            )
            if entry is None:
                raise NotFoundError(
                    "LeaderboardEntry",
                    f"player_id={player_id}, board={board_category.value}/{board_period.value}",
                )
            return self._entry_to_dict(entry)

    # ========================================================================
    # RANKING QUERIES
    # ========================================================================

    async def _rankings(
        self,
        session: AsyncSession,
        category: LeaderboardCategory,
        period: LeaderboardPeriod,
        brand_id: Optional[str],
        limit: int,
        now: datetime,
    ) -> List[Ranking]:
        if category is LeaderboardCategory.RATING:
            return await self._rating_rankings(session, brand_id, limit)

        if category is LeaderboardCategory.GAMES_WON and period is not LeaderboardPeriod.ALL_TIME:
            won = func.count(GameSession.id).label("value")
            stmt = (
                select(Player.id, Player.username, won)
                .join(GameSession, GameSession.player_id == Player.id)
                .where(
                    GameSession.status == SessionStatus.COMPLETED.value,
                    GameSession.outcome == SessionOutcome.WIN.value,
                    GameSession.ended_at >= period_start(period, now),
                )
                .group_by(Player.id, Player.username)
                .order_by(desc(won), Player.id)
            )
        else:
            column, model, extra = self._aggregate_source(category)
            stmt = (
                select(Player.id, Player.username, column.label("value"))
                .join(model, model.player_id == Player.id)
                .where(*extra)
                .order_by(desc(column), *self._tiebreak(category), Player.id)
            )

        stmt = stmt.where(Player.is_active.is_(True)).limit(limit)
        if brand_id:
            stmt = stmt.where(Player.brand_id == brand_id)

        rows = (await session.execute(stmt)).all()
        return [Ranking(player_id=row[0], username=row[1], value=int(row[2] or 0)) for row in rows]

    @staticmethod
    def _aggregate_source(category: LeaderboardCategory) -> Tuple[Any, Any, List[Any]]:
        if category is LeaderboardCategory.POINTS_BALANCE:
            return Wallet.balance, Wallet, []
        if category is LeaderboardCategory.POINTS_LIFETIME:
            return Wallet.lifetime_earned, Wallet, []
        if category is LeaderboardCategory.XP_TOTAL:
            return PlayerProgression.total_xp, PlayerProgression, []
        if category is LeaderboardCategory.LEVEL:
            return PlayerProgression.level, PlayerProgression, []
        if category is LeaderboardCategory.GAMES_WON:
            return PlayerProgression.wins, PlayerProgression, []
        if category is LeaderboardCategory.WIN_STREAK:
            return (
                StreakRecord.current_length,
                StreakRecord,
                [StreakRecord.streak_type == StreakType.WIN.value],
            )
        if category is LeaderboardCategory.DAILY_STREAK:
            return (
                StreakRecord.current_length,
                StreakRecord,
                [StreakRecord.streak_type == StreakType.DAILY_LOGIN.value],
            )
        raise ValidationError("category", f"No ranking source for {category.value}")

    @staticmethod
    def _tiebreak(category: LeaderboardCategory) -> List[Any]:
        if category is LeaderboardCategory.LEVEL:
            return [desc(PlayerProgression.current_xp)]
        return []

    async def _rating_rankings(
        self, session: AsyncSession, brand_id: Optional[str], limit: int
    ) -> List[Ranking]:
        # Ratings live in per-activity JSON; rank by each player's best one
        stmt = (
            select(Player.id, Player.username, PlayerProgression.activity_stats)
            .join(PlayerProgression, PlayerProgression.player_id == Player.id)
            .where(Player.is_active.is_(True))
        )
        if brand_id:
            stmt = stmt.where(Player.brand_id == brand_id)

        rankings = []
        for player_id, username, stats in (await session.execute(stmt)).all():
            ratings = [
                int(entry["rating"])
                for entry in (stats or {}).values()
                if isinstance(entry, dict) and entry.get("rating")
            ]
            if ratings:
                rankings.append(Ranking(player_id=player_id, username=username, value=max(ratings)))

        rankings.sort(key=lambda r: (-r.value, r.player_id))
        return rankings[:limit]

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    @staticmethod
    def _validate_board(category: str, period: str) -> Tuple[LeaderboardCategory, LeaderboardPeriod]:
        try:
            board_category = LeaderboardCategory(str(category).lower())
        except ValueError:
            raise ValidationError(
                "category",
                f"Invalid leaderboard category: {category}. "
                f"Valid categories: {', '.join(c.value for c in LeaderboardCategory)}",
            ) from None

        try:
            board_period = LeaderboardPeriod(str(period).lower())
        except ValueError:
            raise ValidationError("period", f"Invalid leaderboard period: {period}") from None

        if board_period is not LeaderboardPeriod.ALL_TIME and board_category not in _PERIODIC_CATEGORIES:
            raise ValidationError(
                "period", f"{board_category.value} is only ranked for all_time"
            )
        return board_category, board_period

    @staticmethod
    def _validate_limit(limit: int) -> int:
        if limit <= 0:
            raise ValidationError("limit", "Limit must be positive")
        if limit > MAX_LIMIT:
            raise ValidationError("limit", f"Limit cannot exceed {MAX_LIMIT}")
        return limit

    @staticmethod
    def _entry_to_dict(entry: LeaderboardEntry) -> Dict[str, Any]:
        return {
            "rank": entry.rank,
            "player_id": entry.player_id,
            "username": entry.username,
            "value": entry.value,
            "rank_change": entry.rank_change,
            "category": entry.category,
            "period": entry.period,
            "brand_scope": entry.brand_scope,
            "snapshot_version": entry.snapshot_version,
        }

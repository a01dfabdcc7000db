"""
Player Directory
================

Read-only identity lookups for the rewards core: does the player exist, is
it active, and which premium flag, brand and boosts apply.

Profiles are served from an injected `PlayerCache` when one is configured
and fall back to the database; cache failures degrade to a database read.
Invalidation is explicit (`invalidate`), driven by the session
orchestrator's post-commit hooks.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.database.models.core.player import Player
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import InvalidOperationError, NotFoundError
from src.modules.shared.formulas import RewardMultipliers

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.cache.player import PlayerCache
    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


@dataclass(frozen=True)
class PlayerProfile:
    player_id: int
    username: str
    brand_id: Optional[str]
    is_active: bool
    is_premium: bool
    points_boost: float = 1.0
    xp_boost: float = 1.0
    boost_expires_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, player: Player) -> PlayerProfile:
        return cls(
            player_id=player.id,
            username=player.username,
            brand_id=player.brand_id,
            is_active=player.is_active,
            is_premium=player.is_premium,
            points_boost=player.points_boost_multiplier,
            xp_boost=player.xp_boost_multiplier,
            boost_expires_at=player.boost_expires_at,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PlayerProfile:
        expires = data.get("boost_expires_at")
        return cls(
            player_id=int(data["player_id"]),
            username=data["username"],
            brand_id=data.get("brand_id"),
            is_active=bool(data.get("is_active", True)),
            is_premium=bool(data.get("is_premium", False)),
            points_boost=float(data.get("points_boost", 1.0)),
            xp_boost=float(data.get("xp_boost", 1.0)),
            boost_expires_at=datetime.fromisoformat(expires) if expires else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["boost_expires_at"] = (
            self.boost_expires_at.isoformat() if self.boost_expires_at else None
        )
        return data

    def multipliers(self, current_streak: int, brand_multiplier: float) -> RewardMultipliers:
        return RewardMultipliers(
            is_premium=self.is_premium,
            current_streak=current_streak,
            brand_multiplier=brand_multiplier,
            points_boost=self.points_boost,
            xp_boost=self.xp_boost,
            boost_expires_at=self.boost_expires_at,
        )


class PlayerRepository(BaseRepository[Player]):
    pass


class PlayerDirectory(BaseService):
    """
    Cached player identity lookups.

    Public Methods
    --------------
    - get_profile() -> Profile from cache or database
    - require_active() -> Profile, raising when missing or inactive
    - invalidate() -> Drop a cached profile
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        cache: Optional[PlayerCache] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._cache = cache
        self._repo = PlayerRepository(
            model_class=Player, logger=get_logger(f"{__name__}.PlayerRepository")
        )

    async def get_profile(
        self, player_id: int, session: Optional[AsyncSession] = None
    ) -> PlayerProfile:
        """
        Raises:
            NotFoundError: If the player does not exist
        """
        if self._cache is not None:
            cached = await self._cache.get_profile(player_id)
            if cached is not None:
                return PlayerProfile.from_dict(cached)

        if session is not None:
            player = await self._repo.get(session, player_id)
        else:
            async with DatabaseService.get_session() as own_session:
                player = await self._repo.get(own_session, player_id)

        if player is None:
            raise NotFoundError("Player", player_id)

        profile = PlayerProfile.from_model(player)
        if self._cache is not None:
            await self._cache.set_profile(player_id, profile.to_dict())
        return profile

    async def require_active(
        self, player_id: int, session: Optional[AsyncSession] = None
    ) -> PlayerProfile:
        """
        Raises:
            NotFoundError: If the player does not exist
            InvalidOperationError: If the player is deactivated
        """
        profile = await self.get_profile(player_id, session=session)
        if not profile.is_active:
            raise InvalidOperationError("start_session", f"player {player_id} is inactive")
        return profile

    async def invalidate(self, player_id: int) -> bool:
        if self._cache is None:
            return False
        return await self._cache.invalidate_player(player_id)

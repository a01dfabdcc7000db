"""
Immutable views of a player's progression.

Snapshots decouple achievement evaluation and job payloads from live ORM
rows: evaluation reads a snapshot, and queued work carries one in its
payload.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

if TYPE_CHECKING:
    from src.database.models.progression.player_progression import PlayerProgression


@dataclass(frozen=True)
class ProgressionSnapshot:
    player_id: int
    level: int = 1
    current_xp: int = 0
    xp_to_next_level: int = 110
    total_xp: int = 0
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    current_streak: int = 0
    best_streak: int = 0
    total_play_time_ms: int = 0
    achievements_unlocked: int = 0
    activity_stats: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_model(cls, progression: PlayerProgression) -> ProgressionSnapshot:
        return cls(
            player_id=progression.player_id,
            level=progression.level,
            current_xp=progression.current_xp,
            xp_to_next_level=progression.xp_to_next_level,
            total_xp=progression.total_xp,
            games_played=progression.games_played,
            wins=progression.wins,
            losses=progression.losses,
            draws=progression.draws,
            current_streak=progression.current_streak,
            best_streak=progression.best_streak,
            total_play_time_ms=progression.total_play_time_ms,
            achievements_unlocked=progression.achievements_unlocked,
            activity_stats={k: dict(v) for k, v in (progression.activity_stats or {}).items()},
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProgressionSnapshot:
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: value for key, value in data.items() if key in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def activity(self, activity_id: Optional[int]) -> Dict[str, Any]:
        if activity_id is None:
            return {}
        return self.activity_stats.get(str(activity_id), {})

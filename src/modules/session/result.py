"""
Inputs and results of session completion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.modules.shared.exceptions import DeferredFailure
from src.modules.shared.formulas import (
    LevelProgressResult,
    PointsResult,
    RatingChange,
    SessionFacts,
)
from src.modules.streak.service import StreakResult


@dataclass(frozen=True)
class OutcomeFacts:
    """What the client reports when a session ends. Duration is measured server-side."""

    outcome: str
    score: int
    max_score: int
    accuracy: Optional[float] = None
    difficulty: Optional[str] = None

    def to_session_facts(self, duration_ms: int) -> SessionFacts:
        return SessionFacts(
            outcome=self.outcome,
            score=self.score,
            max_score=self.max_score,
            duration_ms=duration_ms,
            accuracy=self.accuracy,
        )


@dataclass(frozen=True)
class HookFailure:
    hook: str
    error: str
    error_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"hook": self.hook, "error": self.error, "error_type": self.error_type}


@dataclass
class CompletionResult:
    """
    Outcome of a committed session completion.

    `deferred` lists non-critical steps that were queued instead of run
    inline; `hook_failures` lists post-commit hooks that failed. Neither
    affects the committed state.
    """

    session_id: int
    player_id: int
    activity_id: int
    status: str
    outcome: str
    policy: str
    duration_ms: int
    ended_at: datetime
    brand_id: Optional[str] = None
    points_awarded: int = 0
    xp_awarded: int = 0
    formula: Optional[str] = None
    balance: Optional[int] = None
    points: Optional[PointsResult] = None
    level_progress: Optional[LevelProgressResult] = None
    streak: Optional[StreakResult] = None
    rating: Optional[RatingChange] = None
    achievements: List[Any] = field(default_factory=list)
    deferred: List[DeferredFailure] = field(default_factory=list)
    hook_failures: List[HookFailure] = field(default_factory=list)
    is_perfect: bool = False

    @property
    def achievement_ids(self) -> List[int]:
        return [a.achievement_id for a in self.achievements if not a.already_unlocked]

    @property
    def leveled_up(self) -> bool:
        return bool(self.level_progress and self.level_progress.leveled_up)

    def to_dict(self) -> Dict[str, Any]:
        level = self.level_progress
        return {
            "session_id": self.session_id,
            "player_id": self.player_id,
            "activity_id": self.activity_id,
            "status": self.status,
            "outcome": self.outcome,
            "policy": self.policy,
            "duration_ms": self.duration_ms,
            "ended_at": self.ended_at.isoformat(),
            "points_awarded": self.points_awarded,
            "xp_awarded": self.xp_awarded,
            "formula": self.formula,
            "balance": self.balance,
            "points_breakdown": self.points.breakdown.to_dict() if self.points else None,
            "level": (
                {
                    "leveled_up": level.leveled_up,
                    "levels_gained": level.levels_gained,
                    "final_level": level.final_level,
                    "final_xp": level.final_xp,
                    "xp_to_next_level": level.final_xp_to_next,
                    "capped": level.capped,
                    "xp_discarded": level.xp_discarded,
                    "rewards": [r.to_dict() for r in level.level_up_results],
                }
                if level
                else None
            ),
            "streak": self.streak.to_dict() if self.streak else None,
            "rating": (
                {"new_rating": self.rating.new_rating, "delta": self.rating.delta}
                if self.rating
                else None
            ),
            "achievements": [a.to_dict() for a in self.achievements],
            "deferred": [d.to_dict() for d in self.deferred],
            "hook_failures": [h.to_dict() for h in self.hook_failures],
        }

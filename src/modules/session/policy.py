"""
Reward policy applied by session completion.

`standard()` grants everything. `practice()` is the ghost mode: the session
still completes and moves the win streak, but nothing reward-bearing moves
and the progression mirror is left untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

PRACTICE_FORMULA = "ghost_mode_no_points"


@dataclass(frozen=True)
class RewardPolicy:
    name: str
    award_points: bool = True
    award_experience: bool = True
    update_streaks: bool = True
    record_statistics: bool = True
    update_rating: bool = True
    evaluate_achievements: bool = True
    advance_challenges: bool = True
    formula_override: Optional[str] = None

    @property
    def is_practice(self) -> bool:
        return not (self.award_points or self.award_experience)

    @classmethod
    def standard(cls) -> RewardPolicy:
        return cls(name="standard")

    @classmethod
    def practice(cls) -> RewardPolicy:
        return cls(
            name="practice",
            award_points=False,
            award_experience=False,
            record_statistics=False,
            update_rating=False,
            evaluate_achievements=False,
            advance_challenges=False,
            formula_override=PRACTICE_FORMULA,
        )

    @classmethod
    def for_session(cls, practice: bool) -> RewardPolicy:
        return cls.practice() if practice else cls.standard()

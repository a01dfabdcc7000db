"""
Arcadia Reward Formulas

Purpose
-------
Pure calculation functions for the reward core: points, experience,
level progression, skill rating and streak arithmetic. Every function is
deterministic given its inputs; the current time is always passed in.

Design Notes
------------
- No database, cache, or config access (tunables are parameters)
- Multiplicative factors apply after additive bonuses are summed
- Integer results are floored, never rounded up
- The level-up loop is bounded by the level cap

Usage
-----
    from src.modules.shared.formulas import compute_points

    result = compute_points(facts, scoring, multipliers, now=utc_now())
    result.total, result.breakdown, result.formula
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .constants import (
    CONSOLATION_RATE,
    DEFAULT_BACKOFF_MINUTES,
    DEFAULT_BASE_POINTS,
    DEFAULT_OPPONENT_RATINGS,
    GAME_RESULT_SCORES,
    K_FACTOR_FLOOR,
    K_FACTOR_STEPS,
    LEVEL_CAP,
    LEVEL_TITLES,
    LEVEL_UNLOCKS,
    LEVEL_UP_POINTS_PER_LEVEL,
    LEVEL_XP_BASE,
    LEVEL_XP_SCALE,
    OUTCOME_XP_MULTIPLIERS,
    PREMIUM_POINTS_BONUS_RATE,
    SPEED_BONUS_MIN_TIME_REMAINING,
    SPEED_BONUS_RATE,
    STREAK_BONUS_SCALE,
    STREAK_MILESTONES,
    STREAK_MULTIPLIER_CAP,
    STREAK_MULTIPLIER_STEP,
    XP_BASE_RATE,
    XP_PERFORMANCE_BONUS_RATE,
    XP_PREMIUM_BONUS_RATE,
)
from .exceptions import ValidationError


# ============================================================================
# INPUT TYPES
# ============================================================================


@dataclass(frozen=True)
class SessionFacts:
    """Outcome facts of one finished session."""

    outcome: str
    score: int
    max_score: int
    duration_ms: int
    accuracy: Optional[float] = None

    @property
    def score_ratio(self) -> float:
        if self.max_score <= 0:
            return 0.0
        return max(0.0, min(1.0, self.score / self.max_score))

    @property
    def is_perfect(self) -> bool:
        return self.max_score > 0 and self.score == self.max_score


@dataclass(frozen=True)
class ActivityScoring:
    """Scoring knobs declared by an activity."""

    base_points: int = DEFAULT_BASE_POINTS
    time_limit_seconds: Optional[int] = None
    time_bonus: bool = False
    streak_bonus: bool = True
    accuracy_multiplier: Optional[float] = None


@dataclass(frozen=True)
class RewardMultipliers:
    """Player- and brand-derived modifiers applied to a session."""

    is_premium: bool = False
    current_streak: int = 0
    brand_multiplier: float = 1.0
    points_boost: Optional[float] = None
    xp_boost: Optional[float] = None
    boost_expires_at: Optional[datetime] = None


# ============================================================================
# RESULT TYPES
# ============================================================================


@dataclass(frozen=True)
class PointsBreakdown:
    base_points: int
    score_multiplier: float
    accuracy_bonus: float
    speed_bonus: float
    streak_bonus: int
    premium_bonus: int
    brand_multiplier: float
    boost_multiplier: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PointsResult:
    total: int
    breakdown: PointsBreakdown
    formula: str


@dataclass(frozen=True)
class ExperienceBreakdown:
    base_xp: float
    outcome_multiplier: float
    performance_bonus: float
    premium_bonus: int
    boost_multiplier: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ExperienceResult:
    total: int
    breakdown: ExperienceBreakdown


@dataclass(frozen=True)
class LevelUpReward:
    """Reward metadata for one level crossed."""

    new_level: int
    xp_overflow: int
    new_xp_requirement: int
    points: int
    title: Optional[str] = None
    unlocks: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["unlocks"] = list(self.unlocks)
        return data


@dataclass(frozen=True)
class LevelProgressResult:
    """
    Outcome of applying an XP grant to a level/XP position.

    `xp_applied` is the part of the grant that was kept; it differs from the
    grant only when the level cap forced surplus XP to be discarded.
    """

    leveled_up: bool
    levels_gained: int
    final_level: int
    final_xp: int
    final_xp_to_next: int
    xp_applied: int
    level_up_results: List[LevelUpReward] = field(default_factory=list)
    capped: bool = False
    xp_discarded: int = 0

    @property
    def reward_points(self) -> int:
        return sum(reward.points for reward in self.level_up_results)


@dataclass(frozen=True)
class RatingChange:
    new_rating: int
    delta: int
    expected_score: float
    k_factor: int


# ============================================================================
# SHARED HELPERS
# ============================================================================


def effective_boost(
    multiplier: Optional[float],
    expires_at: Optional[datetime],
    now: datetime,
) -> float:
    """
    Resolve a boost multiplier, treating missing or expired boosts as 1.0.

    Example:
        >>> effective_boost(2.0, None, now)
        2.0
        >>> effective_boost(2.0, now - timedelta(seconds=1), now)
        1.0
    """
    if not multiplier:
        return 1.0
    if expires_at is not None and now >= expires_at:
        return 1.0
    return float(multiplier)


def _fmt_number(value: float) -> str:
    return f"{value:g}"


# ============================================================================
# POINTS
# ============================================================================


def streak_bonus(streak: int) -> int:
    """
    Non-linear streak bonus: floor(10 * ln(streak + 1) * streak).

    Example:
        >>> streak_bonus(2)
        21
    """
    if streak <= 0:
        return 0
    return math.floor(STREAK_BONUS_SCALE * math.log(streak + 1) * streak)


def speed_bonus(
    base_points: int,
    duration_ms: int,
    time_limit_seconds: Optional[int],
    outcome: str,
) -> float:
    """Bonus of up to 50% of base for wins finished well inside the time limit."""
    if not time_limit_seconds or outcome != "win":
        return 0.0
    time_remaining = max(0.0, 1 - duration_ms / (time_limit_seconds * 1000))
    if time_remaining <= SPEED_BONUS_MIN_TIME_REMAINING:
        return 0.0
    return base_points * time_remaining * SPEED_BONUS_RATE


def build_formula_string(breakdown: PointsBreakdown, total: int) -> str:
    """
    Human-readable explanation of a points calculation.

    Example:
        "100 base × 80% score + 21 streak = 101"
    """
    parts = [f"{breakdown.base_points} base"]
    if breakdown.score_multiplier < 1:
        parts.append(f"× {breakdown.score_multiplier * 100:.0f}% score")
    if breakdown.accuracy_bonus > 0:
        parts.append(f"+ {math.floor(breakdown.accuracy_bonus)} accuracy")
    if breakdown.speed_bonus > 0:
        parts.append(f"+ {math.floor(breakdown.speed_bonus)} speed")
    if breakdown.streak_bonus > 0:
        parts.append(f"+ {breakdown.streak_bonus} streak")
    if breakdown.premium_bonus > 0:
        parts.append(f"+ {breakdown.premium_bonus} premium")
    if breakdown.brand_multiplier != 1:
        parts.append(f"× {_fmt_number(breakdown.brand_multiplier)} brand")
    if breakdown.boost_multiplier != 1:
        parts.append(f"× {_fmt_number(breakdown.boost_multiplier)} boost")
    parts.append(f"= {total}")
    return " ".join(parts)


def compute_points(
    facts: SessionFacts,
    scoring: ActivityScoring,
    multipliers: RewardMultipliers,
    now: datetime,
) -> PointsResult:
    """
    Calculate points earned by a session.

    Total = floor((base × scoreRatio + accuracy + speed + streak + premium)
                  × brand × boost), never negative.

    Args:
        facts: Session outcome facts
        scoring: Activity scoring configuration
        multipliers: Premium flag, win streak, brand and boost multipliers
        now: Reference time for boost expiry

    Returns:
        PointsResult with total, breakdown and formula string
    """
    base = scoring.base_points or DEFAULT_BASE_POINTS
    score_multiplier = facts.score_ratio

    accuracy_bonus = 0.0
    if facts.accuracy is not None and scoring.accuracy_multiplier:
        accuracy_bonus = base * (facts.accuracy / 100) * (scoring.accuracy_multiplier - 1)

    speed = 0.0
    if scoring.time_bonus:
        speed = speed_bonus(base, facts.duration_ms, scoring.time_limit_seconds, facts.outcome)

    streak = streak_bonus(multipliers.current_streak) if scoring.streak_bonus else 0
    premium = math.floor(base * PREMIUM_POINTS_BONUS_RATE) if multipliers.is_premium else 0

    brand = multipliers.brand_multiplier or 1.0
    boost = effective_boost(multipliers.points_boost, multipliers.boost_expires_at, now)

    core = base * score_multiplier + accuracy_bonus + speed
    total = max(0, math.floor((core + streak + premium) * brand * boost))

    breakdown = PointsBreakdown(
        base_points=base,
        score_multiplier=score_multiplier,
        accuracy_bonus=accuracy_bonus,
        speed_bonus=speed,
        streak_bonus=streak,
        premium_bonus=premium,
        brand_multiplier=brand,
        boost_multiplier=boost,
    )
    return PointsResult(total=total, breakdown=breakdown, formula=build_formula_string(breakdown, total))


def consolation_points(base_points: int, is_premium: bool) -> int:
    """
    Minimum points for a loss: 10% of base, plus 10% of that for premium.

    Example:
        >>> consolation_points(100, is_premium=True)
        11
    """
    consolation = math.floor((base_points or DEFAULT_BASE_POINTS) * CONSOLATION_RATE)
    premium = math.floor(consolation * CONSOLATION_RATE) if is_premium else 0
    return consolation + premium


# ============================================================================
# EXPERIENCE
# ============================================================================


def compute_experience(
    facts: SessionFacts,
    scoring: ActivityScoring,
    multipliers: RewardMultipliers,
    now: datetime,
) -> ExperienceResult:
    """
    Calculate XP earned by a session.

    base XP = base points × 0.5, scaled by the outcome table
    {win 1.0, draw 0.5, loss 0.25, incomplete 0}, plus a performance bonus
    of up to 20% of base XP and a flat premium bonus, times the XP boost.

    Raises:
        ValidationError: If the outcome is not a known outcome
    """
    if facts.outcome not in OUTCOME_XP_MULTIPLIERS:
        raise ValidationError("outcome", f"Unknown session outcome '{facts.outcome}'")

    base_xp = (scoring.base_points or DEFAULT_BASE_POINTS) * XP_BASE_RATE
    outcome_multiplier = OUTCOME_XP_MULTIPLIERS[facts.outcome]
    performance = base_xp * facts.score_ratio * XP_PERFORMANCE_BONUS_RATE
    premium = math.floor(base_xp * XP_PREMIUM_BONUS_RATE) if multipliers.is_premium else 0
    boost = effective_boost(multipliers.xp_boost, multipliers.boost_expires_at, now)

    total = max(0, math.floor((base_xp * outcome_multiplier + performance + premium) * boost))

    return ExperienceResult(
        total=total,
        breakdown=ExperienceBreakdown(
            base_xp=base_xp,
            outcome_multiplier=outcome_multiplier,
            performance_bonus=performance,
            premium_bonus=premium,
            boost_multiplier=boost,
        ),
    )


# ============================================================================
# LEVELING
# ============================================================================


def xp_to_next_level(level: int) -> int:
    """
    XP required to leave `level`: floor(level × 100 × (1 + level × 0.1)).

    Example:
        >>> [xp_to_next_level(n) for n in (1, 2, 3)]
        [110, 240, 390]
    """
    return math.floor(level * LEVEL_XP_BASE * (1 + level * LEVEL_XP_SCALE))


def level_up_rewards(level: int) -> LevelUpReward:
    """Static reward table entry for reaching `level` (overflow fields zeroed)."""
    return LevelUpReward(
        new_level=level,
        xp_overflow=0,
        new_xp_requirement=xp_to_next_level(level),
        points=level * LEVEL_UP_POINTS_PER_LEVEL,
        title=LEVEL_TITLES.get(level),
        unlocks=LEVEL_UNLOCKS.get(level, ()),
    )


def apply_experience(
    level: int,
    current_xp: int,
    xp_to_next: int,
    xp_gained: int,
    level_cap: int = LEVEL_CAP,
) -> LevelProgressResult:
    """
    Apply an XP grant, resolving every level-up it causes.

    The loop runs at most `level_cap` times. Once the cap is reached, XP
    beyond `xp_to_next - 1` is discarded so `current_xp < xp_to_next` holds
    at rest; the discarded amount is reported.

    Raises:
        ValidationError: If xp_gained is negative or level is below 1

    Example:
        >>> result = apply_experience(1, 0, 110, 500)
        >>> result.final_level, result.final_xp, result.levels_gained
        (3, 150, 2)
    """
    if xp_gained < 0:
        raise ValidationError("xp_gained", f"xp_gained must be non-negative, got {xp_gained}")
    if level < 1:
        raise ValidationError("level", f"level must be at least 1, got {level}")

    level = min(level, level_cap)
    if xp_to_next <= 0:
        xp_to_next = xp_to_next_level(level)
    xp = max(0, current_xp) + xp_gained

    results: List[LevelUpReward] = []
    for _ in range(level_cap):
        if xp < xp_to_next or level >= level_cap:
            break
        overflow = xp - xp_to_next
        level += 1
        xp_to_next = xp_to_next_level(level)
        reward = level_up_rewards(level)
        results.append(
            LevelUpReward(
                new_level=level,
                xp_overflow=overflow,
                new_xp_requirement=xp_to_next,
                points=reward.points,
                title=reward.title,
                unlocks=reward.unlocks,
            )
        )
        xp = overflow

    discarded = 0
    if level >= level_cap and xp >= xp_to_next:
        discarded = xp - (xp_to_next - 1)
        xp = xp_to_next - 1

    return LevelProgressResult(
        leveled_up=bool(results),
        levels_gained=len(results),
        final_level=level,
        final_xp=xp,
        final_xp_to_next=xp_to_next,
        xp_applied=xp_gained - discarded,
        level_up_results=results,
        capped=level >= level_cap,
        xp_discarded=discarded,
    )


def total_xp_for(level: int, current_xp: int) -> int:
    """Lifetime XP implied by a level/XP position."""
    return current_xp + sum(xp_to_next_level(n) for n in range(1, level))


def level_progress_percentage(current_xp: int, xp_to_next: int) -> float:
    if xp_to_next <= 0:
        return 100.0
    return min(100.0, current_xp / xp_to_next * 100)


def estimate_games_to_next_level(
    current_xp: int, xp_to_next: int, average_xp_per_game: float
) -> Dict[str, int]:
    """
    Estimate games needed to level up at the player's average XP rate.

    Returns:
        {"games_needed": int, "xp_remaining": int}
    """
    xp_remaining = max(0, xp_to_next - current_xp)
    if average_xp_per_game <= 0:
        return {"games_needed": 0 if xp_remaining == 0 else -1, "xp_remaining": xp_remaining}
    return {
        "games_needed": max(0, math.ceil(xp_remaining / average_xp_per_game)),
        "xp_remaining": xp_remaining,
    }


# ============================================================================
# RATING
# ============================================================================


def k_factor(current_rating: int) -> int:
    """
    Rating volatility step function.

    Example:
        >>> [k_factor(r) for r in (1200, 1500, 2000, 2400)]
        [40, 32, 24, 16]
    """
    for upper_bound, k in K_FACTOR_STEPS:
        if current_rating < upper_bound:
            return k
    return K_FACTOR_FLOOR


def game_result(outcome: str) -> float:
    """Map a session outcome to an Elo result score (win 1, draw 0.5, loss 0)."""
    try:
        return GAME_RESULT_SCORES[outcome]
    except KeyError:
        raise ValidationError("outcome", f"Unknown session outcome '{outcome}'") from None


def opponent_rating(
    difficulty: Optional[str],
    table: Optional[Mapping[str, int]] = None,
    default_difficulty: str = "medium",
) -> int:
    """Opponent rating implied by a declared difficulty; unknown values use the default."""
    ratings = table or DEFAULT_OPPONENT_RATINGS
    if difficulty in ratings:
        return int(ratings[difficulty])  # type: ignore[index]
    return int(ratings.get(default_difficulty, DEFAULT_OPPONENT_RATINGS["medium"]))


def compute_rating_delta(
    current_rating: int,
    opponent: int,
    result: float,
    k: Optional[int] = None,
) -> RatingChange:
    """
    Logistic expected-score rating update.

    expected = 1 / (1 + 10^((opponent - current) / 400))
    delta = round(k × (result - expected)); new = max(0, current + delta)

    Example:
        >>> compute_rating_delta(1200, 1200, 0.5, 32).delta
        0
    """
    if k is None:
        k = k_factor(current_rating)
    expected = 1 / (1 + 10 ** ((opponent - current_rating) / 400))
    delta = _round_half_up(k * (result - expected))
    return RatingChange(
        new_rating=max(0, current_rating + delta),
        delta=delta,
        expected_score=expected,
        k_factor=k,
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


# ============================================================================
# STREAKS
# ============================================================================


def streak_multiplier(current: int) -> float:
    """
    min(3.0, 1.0 + current × 0.05).

    Example:
        >>> streak_multiplier(10)
        1.5
    """
    return min(STREAK_MULTIPLIER_CAP, 1.0 + current * STREAK_MULTIPLIER_STEP)


def milestone_crossed(
    previous: int,
    current: int,
    milestones: Sequence[int] = STREAK_MILESTONES,
) -> Optional[int]:
    """First milestone m (in list order) with previous < m <= current."""
    for milestone in milestones:
        if previous < milestone <= current:
            return milestone
    return None


# ============================================================================
# JOB QUEUE
# ============================================================================


def backoff_delay(
    attempts: int, table_minutes: Sequence[int] = DEFAULT_BACKOFF_MINUTES
) -> timedelta:
    """
    Delay before the next attempt after `attempts` failures.

    Indexes the table at min(attempts, len(table) - 1).
    """
    if not table_minutes:
        return timedelta(0)
    index = min(max(attempts, 0), len(table_minutes) - 1)
    return timedelta(minutes=table_minutes[index])

"""
Unit tests for the reward formulas.

Tests points, experience, leveling, rating, streak arithmetic and backoff.
"""

from datetime import timedelta

import pytest

from src.modules.shared.exceptions import ValidationError
from src.modules.shared.formulas import (
    ActivityScoring,
    RewardMultipliers,
    SessionFacts,
    apply_experience,
    backoff_delay,
    compute_experience,
    compute_points,
    compute_rating_delta,
    consolation_points,
    effective_boost,
    estimate_games_to_next_level,
    k_factor,
    milestone_crossed,
    opponent_rating,
    streak_bonus,
    streak_multiplier,
    total_xp_for,
    xp_to_next_level,
)
from tests.conftest import NOW


def win(score=100, max_score=100, duration_ms=30_000, accuracy=None):
    return SessionFacts("win", score, max_score, duration_ms, accuracy)


class TestPoints:
    """compute_points and its bonuses."""

    def test_partial_score_with_streak(self):
        """80/100 on a two-win streak yields 80 + 21."""
        result = compute_points(
            win(score=80), ActivityScoring(), RewardMultipliers(current_streak=2), NOW
        )

        assert result.total == 101
        assert result.formula == "100 base × 80% score + 21 streak = 101"
        assert result.breakdown.streak_bonus == 21

    def test_premium_bonus_is_ten_percent_of_base(self):
        result = compute_points(win(), ActivityScoring(), RewardMultipliers(is_premium=True), NOW)

        assert result.total == 110
        assert result.formula == "100 base + 10 premium = 110"

    def test_brand_and_boost_multiply_after_bonuses(self):
        multipliers = RewardMultipliers(brand_multiplier=1.5, points_boost=2.0)

        result = compute_points(win(), ActivityScoring(), multipliers, NOW)

        assert result.total == 300
        assert result.formula == "100 base × 1.5 brand × 2 boost = 300"

    def test_expired_boost_is_ignored(self):
        multipliers = RewardMultipliers(
            brand_multiplier=1.5,
            points_boost=2.0,
            boost_expires_at=NOW - timedelta(seconds=1),
        )

        result = compute_points(win(), ActivityScoring(), multipliers, NOW)

        assert result.total == 150
        assert result.breakdown.boost_multiplier == 1.0

    def test_streak_bonus_disabled_by_activity(self):
        result = compute_points(
            win(), ActivityScoring(streak_bonus=False), RewardMultipliers(current_streak=5), NOW
        )

        assert result.total == 100

    def test_speed_bonus_requires_time_remaining(self):
        scoring = ActivityScoring(time_limit_seconds=60, time_bonus=True)

        fast = compute_points(win(duration_ms=15_000), scoring, RewardMultipliers(), NOW)
        slow = compute_points(win(duration_ms=45_000), scoring, RewardMultipliers(), NOW)

        assert fast.total == 137
        assert "37 speed" in fast.formula
        assert slow.total == 100

    def test_speed_bonus_only_for_wins(self):
        scoring = ActivityScoring(time_limit_seconds=60, time_bonus=True)
        loss = SessionFacts("loss", 100, 100, 5_000)

        result = compute_points(loss, scoring, RewardMultipliers(), NOW)

        assert result.breakdown.speed_bonus == 0

    def test_accuracy_bonus(self):
        scoring = ActivityScoring(accuracy_multiplier=1.5)

        result = compute_points(win(accuracy=80.0), scoring, RewardMultipliers(), NOW)

        assert result.total == 140

    def test_zero_score_floors_at_zero(self):
        result = compute_points(
            SessionFacts("loss", 0, 100, 1_000), ActivityScoring(), RewardMultipliers(), NOW
        )

        assert result.total == 0

    def test_streak_bonus_values(self):
        assert streak_bonus(0) == 0
        assert streak_bonus(1) == 6
        assert streak_bonus(2) == 21

    def test_consolation_points(self):
        assert consolation_points(100, is_premium=False) == 10
        assert consolation_points(100, is_premium=True) == 11

    def test_effective_boost(self):
        assert effective_boost(None, None, NOW) == 1.0
        assert effective_boost(2.0, None, NOW) == 2.0
        assert effective_boost(2.0, NOW + timedelta(hours=1), NOW) == 2.0
        assert effective_boost(2.0, NOW, NOW) == 1.0


class TestExperience:
    """compute_experience outcome table and bonuses."""

    def test_perfect_win(self):
        result = compute_experience(win(), ActivityScoring(), RewardMultipliers(), NOW)

        assert result.total == 60

    def test_premium_adds_flat_bonus(self):
        result = compute_experience(
            win(), ActivityScoring(), RewardMultipliers(is_premium=True), NOW
        )

        assert result.total == 67

    def test_loss_is_quarter_base(self):
        loss = SessionFacts("loss", 80, 100, 1_000)

        result = compute_experience(loss, ActivityScoring(), RewardMultipliers(), NOW)

        assert result.total == 20

    def test_xp_boost(self):
        result = compute_experience(win(), ActivityScoring(), RewardMultipliers(xp_boost=2.0), NOW)

        assert result.total == 120

    def test_unknown_outcome_rejected(self):
        with pytest.raises(ValidationError):
            compute_experience(
                SessionFacts("forfeit", 1, 1, 0), ActivityScoring(), RewardMultipliers(), NOW
            )


class TestLeveling:
    """XP curve and bounded level-up resolution."""

    def test_xp_curve(self):
        assert [xp_to_next_level(n) for n in (1, 2, 3)] == [110, 240, 390]

    def test_multi_level_grant(self):
        result = apply_experience(1, 0, 110, 500)

        assert (result.final_level, result.final_xp, result.levels_gained) == (3, 150, 2)
        assert result.final_xp_to_next == 390
        assert [r.new_level for r in result.level_up_results] == [2, 3]
        assert result.level_up_results[1].unlocks == ("Daily Challenges",)

    def test_no_level_up(self):
        result = apply_experience(1, 50, 110, 20)

        assert result.leveled_up is False
        assert result.final_xp == 70

    def test_cap_discards_surplus(self):
        """At the cap the XP stays strictly below the requirement."""
        result = apply_experience(1, 0, 110, 10_000, level_cap=3)

        assert result.final_level == 3
        assert result.final_xp == 389
        assert result.capped is True
        assert result.xp_discarded == 9_261
        assert result.xp_applied == 110 + 240 + 389

    def test_already_at_cap(self):
        result = apply_experience(3, 0, 390, 1_000, level_cap=3)

        assert result.levels_gained == 0
        assert result.final_xp < result.final_xp_to_next

    def test_rejects_negative_xp(self):
        with pytest.raises(ValidationError):
            apply_experience(1, 0, 110, -1)

    def test_rejects_level_below_one(self):
        with pytest.raises(ValidationError):
            apply_experience(0, 0, 110, 10)

    def test_total_xp_for(self):
        assert total_xp_for(3, 150) == 110 + 240 + 150

    def test_estimate_games_to_next_level(self):
        assert estimate_games_to_next_level(50, 110, 20) == {"games_needed": 3, "xp_remaining": 60}
        assert estimate_games_to_next_level(50, 110, 0)["games_needed"] == -1


class TestRating:
    """Expected-score rating updates."""

    def test_k_factor_steps(self):
        assert [k_factor(r) for r in (1200, 1500, 2000, 2400)] == [40, 32, 24, 16]

    def test_even_draw_does_not_move(self):
        assert compute_rating_delta(1200, 1200, 0.5, 32).delta == 0

    def test_win_against_equal_opponent(self):
        change = compute_rating_delta(1200, 1200, 1.0)

        assert change.delta == 20
        assert change.new_rating == 1220

    def test_loss_against_stronger_opponent_costs_little(self):
        change = compute_rating_delta(1200, opponent_rating("hard"), 0.0)

        assert change.delta == -4

    def test_win_against_weaker_opponent_gains_less(self):
        weak = compute_rating_delta(1200, opponent_rating("easy"), 1.0)
        strong = compute_rating_delta(1200, opponent_rating("hard"), 1.0)

        assert weak.delta < strong.delta
        assert (weak.delta, strong.delta) == (4, 36)

    def test_rating_never_negative(self):
        assert compute_rating_delta(10, 10, 0.0, 40).new_rating == 0

    def test_unknown_difficulty_uses_default(self):
        assert opponent_rating("nightmare") == 1200
        assert opponent_rating("easy") == 800
        assert opponent_rating("hard", {"hard": 1700, "medium": 1300}) == 1700


class TestStreakArithmetic:
    def test_multiplier_caps_at_three(self):
        assert streak_multiplier(0) == 1.0
        assert streak_multiplier(10) == 1.5
        assert streak_multiplier(100) == 3.0

    def test_milestone_crossed(self):
        assert milestone_crossed(2, 3) == 3
        assert milestone_crossed(3, 4) is None
        assert milestone_crossed(0, 10) == 3
        assert milestone_crossed(6, 7, [7, 14]) == 7


class TestBackoff:
    def test_table_indexed_by_attempts(self):
        assert backoff_delay(0) == timedelta(minutes=1)
        assert backoff_delay(1) == timedelta(minutes=5)
        assert backoff_delay(4) == timedelta(minutes=1440)

    def test_attempts_beyond_table_use_last_entry(self):
        assert backoff_delay(10, [1, 2]) == timedelta(minutes=2)

    def test_empty_table(self):
        assert backoff_delay(3, []) == timedelta(0)

"""
Unit tests for leaderboard period boundaries and board validation.
"""

from datetime import datetime, timezone

import pytest

from src.database.models.enums import LeaderboardCategory, LeaderboardPeriod
from src.modules.leaderboard.service import LeaderboardService, period_start, scope_for
from src.modules.shared.exceptions import ValidationError
from tests.conftest import NOW


class TestPeriodStart:
    def test_daily_starts_at_midnight(self):
        assert period_start(LeaderboardPeriod.DAILY, NOW) == datetime(2025, 3, 12, tzinfo=timezone.utc)

    def test_weekly_starts_on_sunday(self):
        # NOW is a Wednesday
        start = period_start(LeaderboardPeriod.WEEKLY, NOW)

        assert start == datetime(2025, 3, 9, tzinfo=timezone.utc)
        assert start.weekday() == 6

    def test_sunday_is_its_own_week_start(self):
        sunday = datetime(2025, 3, 9, 23, 59, tzinfo=timezone.utc)

        assert period_start(LeaderboardPeriod.WEEKLY, sunday) == datetime(2025, 3, 9, tzinfo=timezone.utc)

    def test_monthly_starts_on_the_first(self):
        assert period_start(LeaderboardPeriod.MONTHLY, NOW) == datetime(2025, 3, 1, tzinfo=timezone.utc)

    def test_all_time_has_no_start(self):
        assert period_start(LeaderboardPeriod.ALL_TIME, NOW) is None


class TestBoards:
    def test_standard_boards(self):
        boards = LeaderboardService.standard_boards()

        assert len(boards) == 10
        assert (LeaderboardCategory.GAMES_WON, LeaderboardPeriod.WEEKLY) in boards
        assert (LeaderboardCategory.GAMES_WON, LeaderboardPeriod.MONTHLY) in boards
        assert (LeaderboardCategory.RATING, LeaderboardPeriod.ALL_TIME) in boards
        assert all(
            period is LeaderboardPeriod.ALL_TIME
            for category, period in boards
            if category is not LeaderboardCategory.GAMES_WON
        )

    def test_scope(self):
        assert scope_for("acme") == "acme"
        assert scope_for(None) != "acme"

    def test_aggregates_are_all_time_only(self):
        with pytest.raises(ValidationError):
            LeaderboardService._validate_board("xp_total", "weekly")

    def test_unknown_category(self):
        with pytest.raises(ValidationError):
            LeaderboardService._validate_board("fastest_lap", "all_time")

    def test_board_names_are_case_insensitive(self):
        assert LeaderboardService._validate_board("GAMES_WON", "Weekly") == (
            LeaderboardCategory.GAMES_WON,
            LeaderboardPeriod.WEEKLY,
        )

    @pytest.mark.parametrize("limit", [0, -1, 101])
    def test_limit_bounds(self, limit):
        with pytest.raises(ValidationError):
            LeaderboardService._validate_limit(limit)

    def test_limit_max_allowed(self):
        assert LeaderboardService._validate_limit(100) == 100

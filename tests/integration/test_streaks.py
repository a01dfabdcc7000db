"""
Integration Tests for StreakService
===================================

Purpose
-------
Verify win streaks driven by session completions and the daily-login
streak with its expiry sweep.
"""

from datetime import timedelta

import pytest

from src.modules.session.result import OutcomeFacts
from tests.conftest import NOW, published_events


@pytest.mark.integration
class TestWinStreaks:
    async def test_sequence_with_a_loss(self, container, make_player, make_activity, mock_event_bus):
        # Arrange
        player_id = await make_player()
        activity_id = await make_activity()
        outcomes = ["win", "win", "loss", "win", "win", "win"]

        # Act
        results = []
        for outcome in outcomes:
            session_id = await container.sessions.start_session(player_id, activity_id)
            results.append(
                await container.sessions.complete_session(session_id, OutcomeFacts(outcome, 50, 100))
            )

        # Assert
        assert [r.streak.current for r in results] == [1, 2, 0, 1, 2, 3]
        assert [r.streak.milestone_reached for r in results] == [None, None, None, None, None, 3]
        streaks = await container.streaks.get_player_streaks(player_id)
        assert streaks["win"]["current"] == 3
        assert streaks["win"]["best"] == 3
        assert published_events(mock_event_bus).count("streak.milestone") == 1
        progression = await container.progression.get_progression(player_id)
        assert progression["current_streak"] == 3
        assert progression["best_streak"] == 3

    async def test_draw_keeps_streak(self, container, make_player, make_activity):
        player_id = await make_player()
        activity_id = await make_activity()

        for outcome in ("win", "draw"):
            session_id = await container.sessions.start_session(player_id, activity_id)
            result = await container.sessions.complete_session(session_id, OutcomeFacts(outcome, 50, 100))

        assert result.streak.current == 1
        assert result.streak.broken is False


@pytest.mark.integration
class TestDailyLogin:
    async def test_consecutive_days(self, container, make_player):
        player_id = await make_player()

        first = await container.streaks.record_daily_login(player_id, now=NOW)
        same_day = await container.streaks.record_daily_login(player_id, now=NOW + timedelta(hours=2))
        next_day = await container.streaks.record_daily_login(player_id, now=NOW + timedelta(days=1))

        assert first.current == 1
        assert same_day.current == 1
        assert next_day.current == 2
        assert next_day.continued is True
        assert next_day.expires_at.date() == (NOW + timedelta(days=2)).date()

    async def test_missed_day_restarts(self, container, make_player):
        player_id = await make_player()
        await container.streaks.record_daily_login(player_id, now=NOW)

        result = await container.streaks.record_daily_login(player_id, now=NOW + timedelta(days=2))

        assert result.current == 1
        assert result.broken is True
        assert result.best == 1

    async def test_milestone_event(self, container, make_player, mock_event_bus):
        player_id = await make_player()

        for day in range(3):
            await container.streaks.record_daily_login(player_id, now=NOW + timedelta(days=day))

        assert published_events(mock_event_bus) == ["streak.milestone"]

    async def test_expire_stale_streaks(self, container, make_player):
        lapsed = await make_player()
        fresh = await make_player()
        await container.streaks.record_daily_login(lapsed, now=NOW)
        await container.streaks.record_daily_login(fresh, now=NOW + timedelta(days=2))

        expired = await container.streaks.expire_stale_streaks(now=NOW + timedelta(days=2, hours=1))

        assert expired == 1
        assert (await container.streaks.get_player_streaks(lapsed))["daily_login"]["current"] == 0
        assert (await container.streaks.get_player_streaks(fresh))["daily_login"]["current"] == 1
        assert (await container.streaks.get_player_streaks(lapsed))["daily_login"]["best"] == 1

"""
Unit tests for the in-process EventBus.
"""

import asyncio

import pytest

from src.core.event.bus import EventBus
from src.core.event.types import ListenerPriority, RewardEvent
from src.core.logging.logger import LogContext, get_log_context


@pytest.fixture
def bus():
    return EventBus(critical_timeout_seconds=0.05, high_timeout_seconds=0.05)


class TestSubscription:
    def test_listener_must_take_one_argument(self, bus):
        with pytest.raises(ValueError):
            bus.subscribe("session.completed", lambda a, b: None)

    def test_duplicate_identifier_is_ignored(self, bus):
        bus.subscribe("session.completed", lambda payload: None, identifier="analytics")
        bus.subscribe("session.completed", lambda payload: None, identifier="analytics")

        assert bus.listener_count() == 1

    def test_unsubscribe(self, bus):
        listener_id = bus.subscribe("session.completed", lambda payload: None)

        assert bus.unsubscribe("session.completed", listener_id) is True
        assert bus.listener_count() == 0


class TestPublish:
    async def test_priority_order(self, bus):
        calls = []
        bus.subscribe("points.earned", lambda p: calls.append("normal"), identifier="n")
        bus.subscribe(
            "points.earned", lambda p: calls.append("critical"), priority=ListenerPriority.CRITICAL, identifier="c"
        )
        bus.subscribe("points.earned", lambda p: calls.append("high"), priority=ListenerPriority.HIGH, identifier="h")

        await bus.publish("points.earned", {"amount": 86})

        assert calls == ["critical", "high", "normal"]

    async def test_wildcard_subscription(self, bus):
        seen = []
        bus.subscribe("session.*", lambda p: seen.append(p["session_id"]))

        await bus.publish("session.completed", {"session_id": 11})
        await bus.publish("points.earned", {"session_id": 12})

        assert seen == [11]

    async def test_failing_listener_is_isolated(self, bus):
        def broken(payload):
            raise RuntimeError("analytics down")

        bus.subscribe("session.completed", broken, identifier="broken")
        bus.subscribe("session.completed", lambda p: "ok", identifier="ok")

        results = await bus.publish("session.completed", {})

        assert sorted(results, key=str) == [None, "ok"]
        assert bus.get_stats()["listener_errors"] == 1

    async def test_slow_critical_listener_times_out(self, bus):
        async def slow(payload):
            await asyncio.sleep(1)

        bus.subscribe("session.completed", slow, priority=ListenerPriority.CRITICAL)

        assert await bus.publish("session.completed", {}) == [None]

    async def test_once_listener_runs_once(self, bus):
        calls = []
        bus.subscribe("session.completed", lambda p: calls.append(1), once=True)

        await bus.publish("session.completed", {})
        await bus.publish("session.completed", {})

        assert calls == [1]

    async def test_low_priority_runs_in_background(self, bus):
        calls = []

        async def record(payload):
            calls.append(payload["n"])

        bus.subscribe("session.completed", record, priority=ListenerPriority.LOW)

        assert await bus.publish("session.completed", {"n": 1}) == []
        await bus.drain()
        assert calls == [1]

    async def test_event_name_is_scoped_to_listeners(self, bus):
        seen = []
        bus.subscribe(RewardEvent.POINTS_EARNED, lambda p: seen.append(get_log_context().get("event_name")))

        with LogContext(player_id=3):
            await bus.publish(RewardEvent.POINTS_EARNED, {})
            after = get_log_context()

        assert seen == ["points.earned"]
        assert "event_name" not in after
        assert after["player_id"] == "3"

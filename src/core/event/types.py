"""
Event names and listener records for the Arcadia reward sink.

Listeners run by priority: CRITICAL and HIGH one at a time with a timeout,
NORMAL concurrently, LOW in the background (awaited only by `drain()`).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

EventPayload = dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class RewardEvent:
    """Names of the events the reward core publishes."""

    SESSION_STARTED = "session.started"
    SESSION_COMPLETED = "session.completed"
    SESSION_ABANDONED = "session.abandoned"
    POINTS_EARNED = "points.earned"
    POINTS_SPENT = "points.spent"
    PLAYER_LEVELED_UP = "player.leveled_up"
    ACHIEVEMENT_UNLOCKED = "achievement.unlocked"
    STREAK_MILESTONE = "streak.milestone"
    CHALLENGE_COMPLETED = "challenge.completed"
    LEADERBOARD_CALCULATED = "leaderboard.calculated"


class ListenerPriority(Enum):
    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100

    @property
    def is_sequential(self) -> bool:
        return self in (ListenerPriority.CRITICAL, ListenerPriority.HIGH)


@dataclass(slots=True, frozen=True)
class EventListener:
    """A subscribed callback; `identifier` dedupes and unsubscribes it."""

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        if identifier is None:
            name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", "callback")
            identifier = f"{getattr(callback, '__module__', 'unknown')}.{name}@{event_name}"
        return cls(callback=callback, priority=priority, identifier=identifier, once=once)

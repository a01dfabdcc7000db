"""
EventBus: in-process analytics/event sink for Arcadia.

Purpose
-------
Decouple the rewards core from whoever consumes its domain events
(analytics, notifications, cache warmers). Publishers never block on or fail
because of a listener.

Execution Model
---------------
- CRITICAL / HIGH: sequential, ordered, awaited with timeout
- NORMAL: concurrent (asyncio.gather), awaited
- LOW: fire-and-forget background tasks

Every listener runs inside its own error boundary. A raising or timing-out
listener is logged with the event name and listener id, and its result slot
is None.

Event names are dotted ("session.completed"); subscriptions may use
shell-style wildcards ("session.*", "*").
"""

from __future__ import annotations

import asyncio
import fnmatch
import inspect
from typing import Any, Dict, List, Optional

from src.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from src.core.logging.logger import LogContext, get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Tiered-concurrency event bus.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("player.leveled_up", on_level_up, priority=ListenerPriority.HIGH)
    >>> await bus.publish("player.leveled_up", {"player_id": 123, "new_level": 10})
    """

    def __init__(
        self,
        *,
        critical_timeout_seconds: float = 5.0,
        high_timeout_seconds: float = 5.0,
    ) -> None:
        self._listeners: Dict[str, List[EventListener]] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._critical_timeout = critical_timeout_seconds
        self._high_timeout = high_timeout_seconds
        self._published: int = 0
        self._listener_errors: int = 0

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """
        Ensure callback accepts exactly one parameter.

        Raises
        ------
        ValueError:
            If callback signature is invalid.
        """
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # Built-ins may not expose a signature
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", repr(callback))
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event or wildcard pattern.

        Returns
        -------
        str:
            The listener identifier (for unsubscribing later).
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        bucket.sort(key=lambda lst: lst.priority.value)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [lst for lst in bucket if lst.identifier != identifier]
        removed = len(remaining) != len(bucket)
        self._listeners[event_name] = remaining
        return removed

    def clear(self) -> None:
        """Remove all listeners from all events."""
        self._listeners.clear()

    def listener_count(self) -> int:
        return sum(len(bucket) for bucket in self._listeners.values())

    def _extract_listeners(self, event_name: str) -> List[EventListener]:
        matched: List[EventListener] = []
        for pattern, bucket in self._listeners.items():
            if pattern != event_name and not fnmatch.fnmatchcase(event_name, pattern):
                continue
            matched.extend(bucket)
            if any(lst.once for lst in bucket):
                self._listeners[pattern] = [lst for lst in bucket if not lst.once]
        matched.sort(key=lambda lst: lst.priority.value)
        return matched

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns
        -------
        list[Any]:
            Results from CRITICAL/HIGH/NORMAL listeners (None for failures).
        """
        self._published += 1
        # Scoped so the event name does not stick to the publisher's later logs
        with LogContext(event_name=event_name):
            return await self._dispatch(event_name, data)

    async def _dispatch(self, event_name: str, data: EventPayload) -> list[Any]:
        listeners = self._extract_listeners(event_name)
        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        results: list[Any] = []

        # Listeners are sorted, so CRITICAL runs before HIGH
        for listener in listeners:
            if listener.priority.is_sequential:
                timeout = (
                    self._critical_timeout
                    if listener.priority == ListenerPriority.CRITICAL
                    else self._high_timeout
                )
                results.append(await self._run_with_timeout(listener, event_name, data, timeout))

        normal = [lst for lst in listeners if lst.priority == ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *[self._run_listener(lst, event_name, data) for lst in normal]
                )
            )

        for listener in listeners:
            if listener.priority == ListenerPriority.LOW:
                task = asyncio.get_running_loop().create_task(
                    self._run_listener(listener, event_name, data),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload)

        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload), timeout=timeout
            )
        except asyncio.TimeoutError:
            self._listener_errors += 1
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self, listener: EventListener, event_name: str, payload: EventPayload
    ) -> Any:
        try:
            result = listener.callback(payload)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            self._listener_errors += 1
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    async def drain(self) -> None:
        """Wait for in-flight LOW-priority listeners (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def get_stats(self) -> Dict[str, int]:
        return {
            "published": self._published,
            "listener_errors": self._listener_errors,
            "listeners": self.listener_count(),
        }

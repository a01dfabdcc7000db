"""
Per-player in-process locks.

Serializes mutations of one player's reward rows (progression, wallet,
streaks, sessions) inside this process. Cross-process safety comes from the
database: row locks and `version_id_col` conflict detection.

Locks are reference counted and dropped once no task holds or waits on them,
so the registry does not grow with the player population.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class PlayerLockRegistry:
    """Keyed asyncio.Lock registry."""

    def __init__(self) -> None:
        self._locks: Dict[int, Tuple[asyncio.Lock, int]] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, player_id: int) -> AsyncIterator[None]:
        """Hold the player's lock for the duration of the block."""
        lock, waiters = self._locks.get(player_id, (asyncio.Lock(), 0))
        self._locks[player_id] = (lock, waiters + 1)

        start = time.perf_counter()
        try:
            async with lock:
                wait_ms = (time.perf_counter() - start) * 1000
                if wait_ms > 100:
                    logger.debug(
                        "Waited for player lock",
                        extra={"player_id": player_id, "wait_ms": round(wait_ms, 2)},
                    )
                yield
        finally:
            lock, waiters = self._locks[player_id]
            if waiters <= 1:
                del self._locks[player_id]
            else:
                self._locks[player_id] = (lock, waiters - 1)


# Process-wide registry shared by the session orchestrator and wallet spends
player_locks = PlayerLockRegistry()

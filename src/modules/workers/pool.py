"""
WorkerPool: owns the long-lived worker tasks.

One task per worker shares a stop event. `stop()` signals every loop and
waits for them to finish their current batch; tasks still running after the
grace period are cancelled.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from src.core.logging.logger import get_logger

from .base import JobWorker

logger = get_logger(__name__)


class WorkerPool:
    def __init__(self, workers: Sequence[JobWorker]) -> None:
        self.workers: List[JobWorker] = list(workers)
        self._stop_event = asyncio.Event()
        self._tasks: Dict[str, asyncio.Task[None]] = {}

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    def start(self) -> None:
        if self.is_running:
            logger.warning("WorkerPool already running")
            return

        self._stop_event = asyncio.Event()
        self._tasks = {
            worker.name: asyncio.create_task(
                worker.run(stop_event=self._stop_event), name=worker.name
            )
            for worker in self.workers
        }
        logger.info("WorkerPool started", extra={"workers": list(self._tasks)})

    async def stop(self, timeout: Optional[float] = 30.0) -> None:
        if not self._tasks:
            return

        self._stop_event.set()
        tasks = list(self._tasks.values())
        _, pending = await asyncio.wait(tasks, timeout=timeout)

        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                "Cancelled workers that did not stop in time",
                extra={"workers": [t.get_name() for t in pending]},
            )
            await asyncio.gather(*pending, return_exceptions=True)

        self._tasks = {}
        logger.info("WorkerPool stopped")

    async def run_once(self) -> Dict[str, int]:
        """Process one batch per worker. Used by housekeeping and tests."""
        return {worker.name: await worker.process_batch() for worker in self.workers}

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "workers": {
                name: ("running" if not task.done() else "stopped")
                for name, task in self._tasks.items()
            },
        }

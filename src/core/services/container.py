"""
Service Container
=================

Purpose
-------
Builds the domain services once, in dependency order, and exposes them as
read-only properties. Entry points (the worker process, housekeeping, tests
and any embedding API layer) obtain services from here rather than
constructing them.

Responsibilities
----------------
- Construct every service with (config_manager, event_bus, logger) plus its
  collaborators
- Build the job workers and the pool that runs them
- Record per-service construction time for diagnostics

Non-Responsibilities
--------------------
- Database, Redis and logging lifecycles (the entry point owns those)
- Starting workers (the entry point calls `worker_pool.start()`)
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional, TypeVar

from src.core.logging.logger import get_logger
from src.modules.achievement import AchievementService
from src.modules.activity import ActivityService
from src.modules.challenge import ChallengeService
from src.modules.leaderboard import LeaderboardService
from src.modules.player import PlayerDirectory
from src.modules.progression import ProgressionService
from src.modules.queue import JobQueueService
from src.modules.session import SessionService
from src.modules.shared.locks import PlayerLockRegistry, player_locks
from src.modules.streak import StreakService
from src.modules.wallet import WalletService
from src.modules.workers import AchievementWorker, ChallengeWorker, LeaderboardWorker, WorkerPool

if TYPE_CHECKING:
    from logging import Logger

    from src.core.cache.player import PlayerCache
    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus

T = TypeVar("T")


class ServiceContainer:
    """
    Dependency container for the rewards core.

    Usage:
        container = ServiceContainer(ConfigManager, event_bus, logger, player_cache=cache)
        container.initialize()
        result = await container.sessions.complete_session(session_id, facts)
    """

    def __init__(
        self,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        player_cache: Optional[PlayerCache] = None,
        locks: Optional[PlayerLockRegistry] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._player_cache = player_cache
        self._locks = locks or player_locks

        self._services: Dict[str, Any] = {}
        self._service_init_times: Dict[str, float] = {}
        self._initialized = False

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        start = time.perf_counter()

        progression = self._create_service("progression", ProgressionService)
        wallet = self._create_service("wallet", WalletService, locks=self._locks)
        streaks = self._create_service("streaks", StreakService)
        activities = self._create_service("activities", ActivityService)
        directory = self._create_service("directory", PlayerDirectory, cache=self._player_cache)
        queue = self._create_service("queue", JobQueueService)
        achievements = self._create_service(
            "achievements",
            AchievementService,
            progression_service=progression,
            wallet_service=wallet,
            locks=self._locks,
        )
        self._create_service("leaderboards", LeaderboardService)
        challenges = self._create_service(
            "challenges",
            ChallengeService,
            progression_service=progression,
            wallet_service=wallet,
            locks=self._locks,
        )
        self._create_service(
            "sessions",
            SessionService,
            directory=directory,
            activities=activities,
            progression=progression,
            wallet=wallet,
            streaks=streaks,
            achievements=achievements,
            queue=queue,
            locks=self._locks,
        )

        self._services["worker_pool"] = WorkerPool(
            [
                AchievementWorker(queue, self._config_manager, achievements),
                LeaderboardWorker(queue, self._config_manager, self._services["leaderboards"]),
                ChallengeWorker(queue, self._config_manager, challenges),
            ]
        )

        self._initialized = True
        self._logger.info(
            "Service container initialized",
            extra={
                "service_count": len(self._service_init_times),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        await self.worker_pool.stop()
        self._services.clear()
        self._initialized = False
        self._logger.info("Service container shut down")

    def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "workers": self.worker_pool.get_status() if self._initialized else None,
        }

    def _create_service(self, name: str, cls: type[T], **dependencies: Any) -> T:
        start = time.perf_counter()
        try:
            instance = cls(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(f"{cls.__module__}.{cls.__name__}"),
                **dependencies,
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._services[name] = instance
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    def _get(self, name: str) -> Any:
        if not self._initialized or name not in self._services:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._services[name]

    # ========================================================================
    # Services
    # ========================================================================

    @property
    def progression(self) -> ProgressionService:
        return self._get("progression")

    @property
    def wallet(self) -> WalletService:
        return self._get("wallet")

    @property
    def streaks(self) -> StreakService:
        return self._get("streaks")

    @property
    def activities(self) -> ActivityService:
        return self._get("activities")

    @property
    def directory(self) -> PlayerDirectory:
        return self._get("directory")

    @property
    def queue(self) -> JobQueueService:
        return self._get("queue")

    @property
    def achievements(self) -> AchievementService:
        return self._get("achievements")

    @property
    def leaderboards(self) -> LeaderboardService:
        return self._get("leaderboards")

    @property
    def challenges(self) -> ChallengeService:
        return self._get("challenges")

    @property
    def sessions(self) -> SessionService:
        return self._get("sessions")

    @property
    def worker_pool(self) -> WorkerPool:
        return self._get("worker_pool")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

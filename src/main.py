"""
Arcadia Rewards Core - Worker Process Entry Point
=================================================

Bootstrap
---------
- Logging and configuration validation
- Database initialization and health check
- Redis-backed player cache (optional; the core runs uncached without it)
- Service container and worker pool
- Graceful shutdown on SIGTERM / SIGINT

Run with `python -m src.main`.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Optional

from src.core.cache import PlayerCache
from src.core.config.config import Config
from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.event import event_bus
from src.core.logging.logger import get_logger, get_logging_health, setup_logging, shutdown_logging
from src.core.redis import RedisService
from src.core.services.container import ServiceContainer

logger = get_logger(__name__)


# ============================================================================
# Application Bootstrap
# ============================================================================


async def _connect_cache() -> Optional[PlayerCache]:
    try:
        await RedisService.initialize()
    except RuntimeError:
        logger.warning("Redis unavailable; player profiles will not be cached")
        return None
    return PlayerCache.from_client(RedisService.client())


async def _startup() -> ServiceContainer:
    """Initialize infrastructure and build the services."""
    logger.info("========== ARCADIA REWARDS CORE STARTING ==========")

    # Step 1: Validate configuration early
    try:
        Config.validate()
        ConfigManager.initialize()
        logger.info("✓ Configuration loaded")
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    # Step 2: Database
    try:
        await DatabaseService.initialize()
        if not await DatabaseService.health_check():
            raise RuntimeError("database health check failed")
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    # Step 3: Cache
    player_cache = await _connect_cache()

    # Step 4: Services
    try:
        container = ServiceContainer(
            ConfigManager,
            event_bus,
            get_logger("src.core.services.container"),
            player_cache=player_cache,
        )
        container.initialize()
        logger.info("✓ Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    return container


# ============================================================================
# Application Shutdown
# ============================================================================


async def _shutdown(container: Optional[ServiceContainer]) -> None:
    """Stop workers, then release infrastructure. Each step runs regardless of the others."""
    logger.info("========== SHUTDOWN START ==========")

    if container is not None:
        try:
            await container.shutdown()
            logger.info("✓ Workers stopped")
        except Exception as exc:
            logger.error(f"Service container shutdown error: {exc}", exc_info=True)

    try:
        await event_bus.drain()
    except Exception as exc:
        logger.error(f"Event bus drain error: {exc}", exc_info=True)

    try:
        await RedisService.shutdown()
    except Exception as exc:
        logger.error(f"Redis shutdown error: {exc}", exc_info=True)

    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logging_health = get_logging_health()
    if logging_health["records_dropped"] or logging_health["listener_errors"]:
        logger.warning("Logging pipeline lost records during this run", extra=logging_health)

    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Application Entrypoint
# ============================================================================


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            logger.debug(f"{sig.name} handler not supported on this platform")


async def main() -> None:
    """
    Lifecycle:
        1. Initialize infrastructure and services
        2. Start the worker pool
        3. Wait for a shutdown signal
        4. Stop workers and release infrastructure
    """
    setup_logging()
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    container: Optional[ServiceContainer] = None
    try:
        container = await _startup()
        container.worker_pool.start()
        logger.info("Worker pool running; waiting for shutdown signal")
        await stop_event.wait()
        logger.info("Shutdown signal received")

    except asyncio.CancelledError:
        logger.warning("Main task cancelled; shutting down gracefully")
        raise

    finally:
        await _shutdown(container)
        shutdown_logging()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Stopped via keyboard interrupt")
    except Exception as exc:
        logger.critical(f"Startup failure: {exc}", exc_info=True)
        sys.exit(1)

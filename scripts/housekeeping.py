#!/usr/bin/env python3
"""
housekeeping.py
---------------

Scheduled maintenance for the rewards core. Meant for cron or a one-off
operator shell.

USAGE (from the project root):
  python -m scripts.housekeeping streaks              # Expire lapsed daily-login streaks
  python -m scripts.housekeeping jobs [--days N]      # Purge old completed jobs
  python -m scripts.housekeeping leaderboards [--brand B]
  python -m scripts.housekeeping queue-health         # Print queue counts as JSON
  python -m scripts.housekeeping dead-letters         # List failed jobs
  python -m scripts.housekeeping retry JOB_ID         # Requeue one dead-lettered job
  python -m scripts.housekeeping all                  # streaks + jobs
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Dict

from src.core.config.manager import ConfigManager
from src.core.database.service import DatabaseService
from src.core.event import event_bus
from src.core.logging.logger import LogContext, get_logger, setup_logging, shutdown_logging
from src.core.services.container import ServiceContainer

logger = get_logger("scripts.housekeeping")


async def cmd_streaks(container: ServiceContainer, args: argparse.Namespace) -> Dict[str, Any]:
    return {"expired_streaks": await container.streaks.expire_stale_streaks()}


async def cmd_jobs(container: ServiceContainer, args: argparse.Namespace) -> Dict[str, Any]:
    return {"deleted_jobs": await container.queue.cleanup_completed_jobs(days_old=args.days)}


async def cmd_leaderboards(container: ServiceContainer, args: argparse.Namespace) -> Dict[str, Any]:
    return await container.leaderboards.calculate_all_leaderboards(brand_id=args.brand)


async def cmd_queue_health(container: ServiceContainer, args: argparse.Namespace) -> Dict[str, Any]:
    return await container.queue.get_queue_health()


async def cmd_dead_letters(container: ServiceContainer, args: argparse.Namespace) -> Dict[str, Any]:
    jobs = await container.queue.get_failed_jobs(limit=args.limit)
    return {
        "failed_jobs": [
            {
                "job_id": job.id,
                "job_type": job.job_type,
                "player_id": job.player_id,
                "session_id": job.session_id,
                "attempts": job.attempts,
                "last_error": (job.last_error or {}).get("message"),
            }
            for job in jobs
        ]
    }


async def cmd_retry(container: ServiceContainer, args: argparse.Namespace) -> Dict[str, Any]:
    job = await container.queue.retry_failed(args.job_id)
    return {"job_id": job.id, "status": job.status}


async def cmd_all(container: ServiceContainer, args: argparse.Namespace) -> Dict[str, Any]:
    return {**await cmd_streaks(container, args), **await cmd_jobs(container, args)}


COMMANDS: Dict[str, Callable[[ServiceContainer, argparse.Namespace], Awaitable[Dict[str, Any]]]] = {
    "streaks": cmd_streaks,
    "jobs": cmd_jobs,
    "leaderboards": cmd_leaderboards,
    "queue-health": cmd_queue_health,
    "dead-letters": cmd_dead_letters,
    "retry": cmd_retry,
    "all": cmd_all,
}


async def run(args: argparse.Namespace) -> Dict[str, Any]:
    ConfigManager.initialize()
    await DatabaseService.initialize()
    container = ServiceContainer(ConfigManager, event_bus, get_logger("src.core.services.container"))
    container.initialize()

    try:
        async with LogContext(component="housekeeping", operation=args.command):
            return await COMMANDS[args.command](container, args)
    finally:
        await event_bus.drain()
        await DatabaseService.shutdown()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Arcadia rewards housekeeping")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("streaks")
    jobs = sub.add_parser("jobs")
    jobs.add_argument("--days", type=int, default=None, help="Retention window in days")
    leaderboards = sub.add_parser("leaderboards")
    leaderboards.add_argument("--brand", default=None)
    sub.add_parser("queue-health")
    dead = sub.add_parser("dead-letters")
    dead.add_argument("--limit", type=int, default=100)
    retry = sub.add_parser("retry")
    retry.add_argument("job_id", type=int)
    all_cmd = sub.add_parser("all")
    all_cmd.add_argument("--days", type=int, default=None)
    return parser


def main() -> None:
    args = build_parser().parse_args()
    setup_logging()
    try:
        result = asyncio.run(run(args))
    except Exception as exc:
        logger.error(f"Housekeeping '{args.command}' failed: {exc}", exc_info=True)
        sys.exit(1)
    finally:
        shutdown_logging()
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()

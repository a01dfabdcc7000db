"""
Pytest Configuration and Fixtures for the Arcadia Rewards Tests
================================================================

Purpose
-------
Centralized fixtures for the rewards core test suite: database lifecycle,
service container, mocks and test-data factories.

Responsibilities
----------------
- Point the process at a throwaway SQLite database before `src` is imported
- Create a fresh schema per test through DatabaseService
- Build a ServiceContainer with a mock event sink and its own player locks
- Factories for players, activities, achievements and challenges

Non-Responsibilities
--------------------
- Test implementation (delegated to test files)
- Production configuration (test-specific only)

Architecture Notes
------------------
- Unit tests use mocks (fast, isolated)
- Integration tests run against SQLite via aiosqlite; every test gets its
  own database file so no state leaks between tests
- ConfigManager overrides are reset after every test
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./data/arcadia-test.db")
os.environ.setdefault("LOG_FILE_ENABLED", "false")

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from src.core.config.manager import ConfigManager  # noqa: E402
from src.core.database.service import DatabaseService  # noqa: E402
from src.core.logging.logger import get_logger  # noqa: E402
from src.core.services.container import ServiceContainer  # noqa: E402
from src.database.models import (  # noqa: E402
    AchievementDefinition,
    Activity,
    BrandConfig,
    DailyChallenge,
    Player,
)
from src.modules.shared.locks import PlayerLockRegistry  # noqa: E402

logger = get_logger(__name__)

# Fixed clock for deterministic time math
NOW = datetime(2025, 3, 12, 15, 30, tzinfo=timezone.utc)


def published_events(bus: MagicMock) -> list[str]:
    """Event names published on a mock bus, in order."""
    return [call.args[0] for call in bus.publish.await_args_list]


def event_payloads(bus: MagicMock, name: str) -> list[dict[str, Any]]:
    return [call.args[1] for call in bus.publish.await_args_list if call.args[0] == name]


# ============================================================================
# CONFIGURATION
# ============================================================================


@pytest.fixture(autouse=True)
def reset_config() -> Any:
    """Fresh defaults and no overrides for every test."""
    ConfigManager.reset()
    ConfigManager.initialize()
    yield ConfigManager
    ConfigManager.reset()


@pytest.fixture
def now() -> datetime:
    return NOW


# ============================================================================
# DATABASE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[type[DatabaseService], None]:
    """
    Initialize DatabaseService against a per-test SQLite file and create the schema.

    Scope: function (clean slate per test)
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'rewards.db'}"
    await DatabaseService.initialize(url)
    await DatabaseService.create_all()

    yield DatabaseService

    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[Any, None]:
    """A plain session for arranging and asserting rows directly."""
    async with DatabaseService.get_session() as session:
        yield session


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus() -> MagicMock:
    """Mock event sink recording every publish."""
    bus = MagicMock()
    bus.publish = AsyncMock(return_value=[])
    bus.drain = AsyncMock()
    return bus


@pytest.fixture
def mock_config_manager() -> MagicMock:
    """Mock ConfigManager returning the caller's default for every key."""
    config = MagicMock()
    config.get = MagicMock(side_effect=lambda key, default=None: default)
    return config


@pytest.fixture
def mock_logger() -> MagicMock:
    return MagicMock()


# ============================================================================
# SERVICE CONTAINER FIXTURES
# ============================================================================


@pytest.fixture
def player_locks() -> PlayerLockRegistry:
    return PlayerLockRegistry()


@pytest.fixture
def container(database, mock_event_bus, player_locks) -> ServiceContainer:
    """Fully wired services over the test database."""
    services = ServiceContainer(
        ConfigManager,
        mock_event_bus,
        get_logger("tests.container"),
        locks=player_locks,
    )
    services.initialize()
    return services


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def make_player(database) -> Callable[..., Awaitable[int]]:
    counter = {"n": 0}

    async def _make(
        username: Optional[str] = None,
        brand_id: Optional[str] = None,
        is_premium: bool = False,
        is_active: bool = True,
        **fields: Any,
    ) -> int:
        counter["n"] += 1
        async with DatabaseService.get_transaction() as session:
            player = Player(
                username=username or f"player{counter['n']}",
                brand_id=brand_id,
                is_premium=is_premium,
                is_active=is_active,
                **fields,
            )
            session.add(player)
            await session.flush()
            return player.id

    return _make


@pytest.fixture
def make_activity(database) -> Callable[..., Awaitable[int]]:
    counter = {"n": 0}

    async def _make(
        slug: Optional[str] = None,
        base_points: int = 100,
        streak_bonus: bool = True,
        **fields: Any,
    ) -> int:
        counter["n"] += 1
        async with DatabaseService.get_transaction() as session:
            activity = Activity(
                slug=slug or f"activity-{counter['n']}",
                name=fields.pop("name", f"Activity {counter['n']}"),
                base_points=base_points,
                streak_bonus=streak_bonus,
                **fields,
            )
            session.add(activity)
            await session.flush()
            return activity.id

    return _make


@pytest.fixture
def make_brand_multiplier(database) -> Callable[..., Awaitable[None]]:
    async def _make(brand_id: str, multiplier: float, activity_id: Optional[int] = None) -> None:
        async with DatabaseService.get_transaction() as session:
            session.add(
                BrandConfig(brand_id=brand_id, activity_id=activity_id, points_multiplier=multiplier)
            )

    return _make


@pytest.fixture
def make_achievement(database) -> Callable[..., Awaitable[int]]:
    async def _make(
        code: str,
        criteria_type: str,
        target_value: int = 1,
        reward_points: int = 0,
        reward_xp: int = 0,
        **fields: Any,
    ) -> int:
        async with DatabaseService.get_transaction() as session:
            definition = AchievementDefinition(
                code=code,
                name=fields.pop("name", code.replace("_", " ").title()),
                criteria_type=criteria_type,
                target_value=target_value,
                reward_points=reward_points,
                reward_xp=reward_xp,
                **fields,
            )
            session.add(definition)
            await session.flush()
            return definition.id

    return _make


@pytest.fixture
def make_challenge(database) -> Callable[..., Awaitable[int]]:
    async def _make(
        code: str,
        challenge_type: str,
        target_value: int,
        starts_at: datetime = NOW - timedelta(hours=12),
        ends_at: datetime = NOW + timedelta(hours=12),
        **fields: Any,
    ) -> int:
        async with DatabaseService.get_transaction() as session:
            challenge = DailyChallenge(
                code=code,
                title=fields.pop("title", code.replace("_", " ").title()),
                challenge_type=challenge_type,
                target_value=target_value,
                starts_at=starts_at,
                ends_at=ends_at,
                **fields,
            )
            session.add(challenge)
            await session.flush()
            return challenge.id

    return _make

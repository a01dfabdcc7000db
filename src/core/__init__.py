"""
Core infrastructure layer for Arcadia.

Re-exports the infrastructure primitives services commonly need:

- Configuration (Config, ConfigManager)
- Database subsystem (DatabaseService)
- Redis client lifecycle (RedisService)
- Logging (setup_logging, get_logger)
- Infrastructure exceptions

Feature modules still import domain types from their own packages.
"""

from __future__ import annotations

from src.core.config import Config, ConfigManager
from src.core.database import DatabaseService
from src.core.exceptions import (
    ArcadiaInfrastructureException,
    CacheError,
    ConfigurationError,
    ErrorSeverity,
)
from src.core.logging import get_logger, setup_logging
from src.core.redis import RedisService

__all__ = [
    # Configuration
    "Config",
    "ConfigManager",
    # Database
    "DatabaseService",
    # Redis
    "RedisService",
    # Logging
    "setup_logging",
    "get_logger",
    # Infrastructure Exceptions
    "ArcadiaInfrastructureException",
    "ConfigurationError",
    "CacheError",
    "ErrorSeverity",
]

"""
Database subsystem for Arcadia.

Provides the async SQLAlchemy engine and session management, plus the ORM
base classes and mixins used by model definitions.
"""

from src.core.database.base import (
    Base,
    IdMixin,
    JSONType,
    TimestampMixin,
    TZDateTime,
    utc_now,
)
from src.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "IdMixin",
    "TimestampMixin",
    "TZDateTime",
    "JSONType",
    "utc_now",
    # Main service
    "DatabaseService",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]

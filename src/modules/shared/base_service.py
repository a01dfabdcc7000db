"""
Base Service Foundation

Purpose
-------
Foundation class for the Arcadia domain services. Services implement the
reward rules, own their transaction boundaries through DatabaseService,
and publish domain events to the event sink.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access through ConfigManager
- Event emission that never fails the caller
- Validation helpers raising ValidationError

What this class does NOT do:
- Manage database transactions (DatabaseService does)
- Handle SQLAlchemy sessions

Usage
-----
    class WalletService(BaseService):
        def __init__(self, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.exceptions import ConfigurationError

from .exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Dynamic configuration (class or instance exposing `get`)
        event_bus: Event sink for domain events
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Safely retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and the key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Publish a domain event.

        The sink is fire-and-forget with respect to the caller: a publish
        failure is logged, never raised.
        """
        try:
            await self._events.publish(event_type, {**data, **(context or {})})
        except Exception as exc:
            self.log_error("emit_event", exc, event_type=event_type)

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        self.log.error(
            f"Service error during {operation}: {error}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )

    def validate_positive_int(self, value: int, name: str) -> None:
        """Raise ValidationError unless value is an int > 0."""
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(name, f"{name} must be a positive integer, got {value}")

    def validate_non_negative_int(self, value: int, name: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                name, f"{name} must be a non-negative integer, got {value}"
            )

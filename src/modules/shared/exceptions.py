"""
Domain exceptions for Arcadia.

Purpose
-------
Define the structured, domain-specific exception hierarchy for reward logic.
These exceptions are raised by services for business rule violations,
state-machine violations and concurrency outcomes. The (excluded) API layer
translates them into responses; workers record them on job rows.

Design Notes
------------
- All domain exceptions inherit from `ArcadiaDomainException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and a stable `error_code`.
- `TransactionConflictError` and `TransactionTimeoutError` are the only
  retryable domain errors; callers may safely repeat the operation because
  the failed attempt rolled back completely.
- `DeferredFailure` is never raised to callers. It is the record attached to
  a completion result when a non-critical step was queued for retry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from src.core.exceptions import ErrorSeverity


class ArcadiaDomainException(Exception):
    """
    Base exception for all Arcadia domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise ArcadiaDomainException(
        ...     "Reward grant failed",
        ...     {"reason": "wallet locked"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class NotFoundError(ArcadiaDomainException):
    """
    Raised when a player, activity, session or job cannot be found.

    Args:
        resource_type: Type of resource (e.g., "Player", "Session")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(ArcadiaDomainException):
    """
    Raised when input facts fail domain validation.

    Negative scores, a non-positive max score, accuracy outside [0, 100] and
    similar malformed inputs.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidStateError(ArcadiaDomainException):
    """
    Raised when a state-machine transition is not allowed.

    Args:
        resource: Resource type whose state blocks the transition
        current_state: State the resource is in
        attempted: Transition that was attempted

    Example:
        >>> raise InvalidStateError("Session", "completed", "complete")
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource: str, current_state: str, attempted: str) -> None:
        self.resource = resource
        self.current_state = current_state
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {resource} in state '{current_state}'",
            details={
                "resource": resource,
                "current_state": current_state,
                "attempted": attempted,
            },
            error_code="INVALID_STATE",
        )


class InvalidOperationError(ArcadiaDomainException):
    """
    Raised when an action violates a business rule.

    Args:
        action: Description of the invalid action
        reason: Explanation of why it's not allowed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


class InsufficientResourcesError(ArcadiaDomainException):
    """
    Raised when a wallet lacks the balance for a redemption.

    Args:
        resource: Name of the resource type (e.g., "points")
        required: Amount required for the action
        current: Amount player currently has
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource: str, required: int, current: int) -> None:
        self.resource = resource
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient {resource}: need {required:,}, have {current:,}",
            details={
                "resource": resource,
                "required": required,
                "current": current,
                "deficit": required - current,
            },
            error_code=f"INSUFFICIENT_{resource.upper()}",
        )


class TransactionConflictError(ArcadiaDomainException):
    """
    Raised when concurrent-mutation retries are exhausted.

    Args:
        resource: Resource whose version kept changing underneath us
        attempts: Number of attempts made
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, resource: str, attempts: int) -> None:
        self.resource = resource
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification of {resource} after {attempts} attempts",
            details={"resource": resource, "attempts": attempts},
            error_code="TRANSACTION_CONFLICT",
        )


class TransactionTimeoutError(ArcadiaDomainException):
    """
    Raised when a bounded transaction exceeds its deadline.

    The transaction is rolled back before this is raised.

    Args:
        operation: Operation that timed out
        timeout_seconds: Deadline that was exceeded
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"{operation} exceeded {timeout_seconds}s and was rolled back",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
            error_code="TRANSACTION_TIMEOUT",
        )


@dataclass
class DeferredFailure:
    """A non-critical step that failed inline and was queued for retry."""

    step: str
    error: str
    error_type: str
    job_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(
        cls, step: str, exc: BaseException, job_id: Optional[int] = None
    ) -> "DeferredFailure":
        return cls(step=step, error=str(exc), error_type=type(exc).__name__, job_id=job_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "error": self.error,
            "error_type": self.error_type,
            "job_id": self.job_id,
            "details": self.details,
        }


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """
    Check if an exception represents a transient error that can be retried.

    Args:
        exc: Exception to check

    Returns:
        True if error is retryable, False otherwise.
    """
    if isinstance(exc, ArcadiaDomainException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, ArcadiaDomainException):
        return exc.severity
    return ErrorSeverity.ERROR  # Default for unknown exceptions


def should_alert(exc: Exception) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)

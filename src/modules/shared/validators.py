"""
Arcadia Domain Validators

Purpose
-------
Raise-on-error validation of reward inputs. Validators accept plain data,
raise structured domain exceptions on failure and return None on success.

Usage
-----
    from src.modules.shared.validators import validate_session_facts

    validate_session_facts(facts)
    # Raises: ValidationError("max_score", ...) when max_score <= 0
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .constants import OUTCOME_XP_MULTIPLIERS
from .exceptions import InsufficientResourcesError, ValidationError

if TYPE_CHECKING:
    from .formulas import SessionFacts


def validate_session_facts(facts: SessionFacts) -> None:
    """
    Validate session outcome facts before any reward is computed.

    Raises:
        ValidationError: On a negative score, max score <= 0, accuracy
            outside [0, 100], negative duration, or an unknown outcome
    """
    if facts.outcome not in OUTCOME_XP_MULTIPLIERS:
        raise ValidationError("outcome", f"Unknown session outcome '{facts.outcome}'")
    if facts.score < 0:
        raise ValidationError("score", "Score cannot be negative")
    if facts.max_score <= 0:
        raise ValidationError("max_score", "Max score must be positive")
    if facts.accuracy is not None and not (0 <= facts.accuracy <= 100):
        raise ValidationError("accuracy", "Accuracy must be between 0 and 100")
    if facts.duration_ms < 0:
        raise ValidationError("duration_ms", "Duration cannot be negative")


def validate_resource_cost(resource: str, required: int, available: int) -> None:
    """
    Raises:
        InsufficientResourcesError: If available < required
    """
    if available < required:
        raise InsufficientResourcesError(resource, required, available)


def validate_positive_amount(field: str, amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(field, f"{field} must be a positive integer, got {amount}")

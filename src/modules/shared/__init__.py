"""
Arcadia Shared Module

Purpose
-------
Domain-level foundations for the reward modules:
- Domain exceptions and error handling
- Base service and repository patterns
- Reward constants and pure formulas
- Domain validation utilities

Architecture
------------
- BaseService: Foundation for service classes (logging, config, events)
- BaseRepository: Type-safe database access patterns
- Domain exceptions: Caller-facing errors and deferred failures
- Formulas: Pure calculation functions for points, XP, levels, rating
- Validators: Domain validation with structured error raising
- Constants: Reward values and tables

Usage
-----
    from src.modules.shared import (
        BaseService,
        BaseRepository,
        NotFoundError,
        compute_points,
    )
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    ArcadiaDomainException,
    DeferredFailure,
    ErrorSeverity,
    InsufficientResourcesError,
    InvalidOperationError,
    InvalidStateError,
    NotFoundError,
    TransactionConflictError,
    TransactionTimeoutError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)
from .formulas import (
    ActivityScoring,
    ExperienceResult,
    LevelProgressResult,
    LevelUpReward,
    PointsResult,
    RatingChange,
    RewardMultipliers,
    SessionFacts,
    apply_experience,
    backoff_delay,
    compute_experience,
    compute_points,
    compute_rating_delta,
    consolation_points,
    k_factor,
    xp_to_next_level,
)
from .validators import validate_resource_cost, validate_session_facts

__all__ = [
    # Base patterns
    "BaseRepository",
    "BaseService",
    # Exceptions
    "ArcadiaDomainException",
    "DeferredFailure",
    "ErrorSeverity",
    "InsufficientResourcesError",
    "InvalidOperationError",
    "InvalidStateError",
    "NotFoundError",
    "TransactionConflictError",
    "TransactionTimeoutError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
    # Formulas
    "ActivityScoring",
    "ExperienceResult",
    "LevelProgressResult",
    "LevelUpReward",
    "PointsResult",
    "RatingChange",
    "RewardMultipliers",
    "SessionFacts",
    "apply_experience",
    "backoff_delay",
    "compute_experience",
    "compute_points",
    "compute_rating_delta",
    "consolation_points",
    "k_factor",
    "xp_to_next_level",
    # Validators
    "validate_resource_cost",
    "validate_session_facts",
]

"""
Achievement module: typed criteria, pure evaluation, unlock persistence.
"""

from .criteria import Criterion, UnsupportedCriterion, parse_criterion
from .evaluator import Evaluation, EvaluationContext, evaluate
from .service import AchievementService, UnlockResult

__all__ = [
    "AchievementService",
    "UnlockResult",
    "Criterion",
    "UnsupportedCriterion",
    "parse_criterion",
    "Evaluation",
    "EvaluationContext",
    "evaluate",
]

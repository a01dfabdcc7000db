"""
Session module: lifecycle and atomic reward orchestration.
"""

from .hooks import PostCommitHook, run_hooks
from .policy import RewardPolicy
from .result import CompletionResult, HookFailure, OutcomeFacts
from .service import SessionService

__all__ = [
    "SessionService",
    "RewardPolicy",
    "OutcomeFacts",
    "CompletionResult",
    "HookFailure",
    "PostCommitHook",
    "run_hooks",
]

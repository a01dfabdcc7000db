"""
Activity module: activity catalogue and brand multiplier lookups.
"""

from .service import ActivityService, scoring_for

__all__ = ["ActivityService", "scoring_for"]

"""
Job queue ORM models.
"""

from .job import JobRecord

__all__ = ["JobRecord"]

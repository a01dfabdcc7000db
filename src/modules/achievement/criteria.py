"""
Typed achievement criteria.

An AchievementDefinition stores `criteria_type`, `criteria_version` and
free-form `criteria_params`. `parse_criterion` turns that triple into one of
a closed set of variants so evaluation can dispatch exhaustively. Anything
the parser does not recognise becomes `UnsupportedCriterion`, which the
evaluator reports instead of silently scoring zero.

Domain-scoped criteria read a caller-supplied progress block shaped like:

    {
        "units_completed": int,
        "domain_completed": bool,
        "final_assessment_perfect": bool,
        "unit_streak": int,
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from src.database.models.enums import CriteriaType

SUPPORTED_CRITERIA_VERSION = 1


@dataclass(frozen=True)
class StatCriterion:
    """Reads one counter from the progression snapshot."""

    kind: str
    stat: str


@dataclass(frozen=True)
class PerfectScoreCriterion:
    kind: str = CriteriaType.PERFECT_SCORE.value


@dataclass(frozen=True)
class AccuracyCriterion:
    """
    Scores 1 when the session accuracy reaches `min_accuracy`.

    Without `min_accuracy` in the params the definition's target value is the
    threshold and the criterion is met by a single qualifying session.
    """

    min_accuracy: Optional[float] = None
    kind: str = CriteriaType.ACCURACY.value


@dataclass(frozen=True)
class PointsEarnedCriterion:
    kind: str = CriteriaType.POINTS_EARNED.value


@dataclass(frozen=True)
class DomainCriterion:
    """
    Reads the secondary-domain progress block.

    `flag` criteria score 1 when the key is truthy; counter criteria score
    the key's integer value. `minimum` turns a counter into a flag
    (first_unit is "units_completed >= 1").
    """

    kind: str
    key: str
    flag: bool = False
    minimum: Optional[int] = None


@dataclass(frozen=True)
class UnsupportedCriterion:
    kind: str
    version: int
    reason: str
    params: Dict[str, Any] = field(default_factory=dict)


Criterion = Union[
    StatCriterion,
    PerfectScoreCriterion,
    AccuracyCriterion,
    PointsEarnedCriterion,
    DomainCriterion,
    UnsupportedCriterion,
]


_STAT_FIELDS: Dict[str, str] = {
    CriteriaType.GAMES_PLAYED.value: "games_played",
    CriteriaType.WINS.value: "wins",
    CriteriaType.STREAK.value: "current_streak",
    CriteriaType.LEVEL_REACHED.value: "level",
}

_DOMAIN_CRITERIA: Dict[str, DomainCriterion] = {
    CriteriaType.FIRST_UNIT.value: DomainCriterion(
        kind=CriteriaType.FIRST_UNIT.value, key="units_completed", minimum=1
    ),
    CriteriaType.UNITS_COMPLETED.value: DomainCriterion(
        kind=CriteriaType.UNITS_COMPLETED.value, key="units_completed"
    ),
    CriteriaType.DOMAIN_COMPLETED.value: DomainCriterion(
        kind=CriteriaType.DOMAIN_COMPLETED.value, key="domain_completed", flag=True
    ),
    CriteriaType.PERFECT_FINAL_ASSESSMENT.value: DomainCriterion(
        kind=CriteriaType.PERFECT_FINAL_ASSESSMENT.value,
        key="final_assessment_perfect",
        flag=True,
    ),
    CriteriaType.UNIT_STREAK.value: DomainCriterion(
        kind=CriteriaType.UNIT_STREAK.value, key="unit_streak"
    ),
}


def parse_criterion(
    criteria_type: str,
    version: int = SUPPORTED_CRITERIA_VERSION,
    params: Optional[Mapping[str, Any]] = None,
) -> Criterion:
    """
    Build the typed variant for a stored criteria definition.

    Never raises: unknown types, newer schema versions and `custom` all map
    to UnsupportedCriterion.
    """
    params = dict(params or {})

    if version != SUPPORTED_CRITERIA_VERSION:
        return UnsupportedCriterion(
            kind=criteria_type,
            version=version,
            reason=f"criteria version {version} is not supported",
            params=params,
        )

    if criteria_type in _STAT_FIELDS:
        return StatCriterion(kind=criteria_type, stat=_STAT_FIELDS[criteria_type])
    if criteria_type == CriteriaType.PERFECT_SCORE.value:
        return PerfectScoreCriterion()
    if criteria_type == CriteriaType.ACCURACY.value:
        threshold = params.get("min_accuracy")
        return AccuracyCriterion(
            min_accuracy=float(threshold) if threshold is not None else None
        )
    if criteria_type == CriteriaType.POINTS_EARNED.value:
        return PointsEarnedCriterion()
    if criteria_type in _DOMAIN_CRITERIA:
        return _DOMAIN_CRITERIA[criteria_type]
    if criteria_type == CriteriaType.CUSTOM.value:
        return UnsupportedCriterion(
            kind=criteria_type,
            version=version,
            reason="custom criteria have no evaluator",
            params=params,
        )

    return UnsupportedCriterion(
        kind=criteria_type,
        version=version,
        reason=f"unknown criteria type '{criteria_type}'",
        params=params,
    )

"""
Pure achievement evaluation.

`evaluate(definition, context)` has no I/O: the caller loads the definition
and assembles an EvaluationContext (progression snapshot, optional recent
session facts, scope identifiers, domain progress, wallet lifetime total).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Set

from src.modules.achievement.criteria import (
    AccuracyCriterion,
    Criterion,
    DomainCriterion,
    PerfectScoreCriterion,
    PointsEarnedCriterion,
    StatCriterion,
    UnsupportedCriterion,
    parse_criterion,
)
from src.modules.progression.snapshot import ProgressionSnapshot
from src.modules.shared.formulas import SessionFacts


class DefinitionLike(Protocol):
    criteria_type: str
    criteria_version: int
    criteria_params: Dict[str, Any]
    target_value: int
    scope_filter: Optional[str]


@dataclass(frozen=True)
class EvaluationContext:
    snapshot: ProgressionSnapshot
    recent_session: Optional[SessionFacts] = None
    activity_id: Optional[int] = None
    activity_slug: Optional[str] = None
    domain_id: Optional[str] = None
    domain_progress: Mapping[str, Any] = field(default_factory=dict)
    lifetime_points: int = 0

    @property
    def player_id(self) -> int:
        return self.snapshot.player_id

    def scope_ids(self) -> Set[str]:
        ids = set()
        if self.activity_id is not None:
            ids.add(str(self.activity_id))
        if self.activity_slug:
            ids.add(self.activity_slug)
        if self.domain_id:
            ids.add(self.domain_id)
        return ids


@dataclass(frozen=True)
class Evaluation:
    meets: bool
    current_value: int
    target_value: int
    progress_percent: float
    unsupported: bool = False
    reason: Optional[str] = None


def _progress(current: int, target: int) -> float:
    if target <= 0:
        return 0.0
    return min(100.0, current / target * 100)


def _current_value(criterion: Criterion, context: EvaluationContext, target: int) -> int:
    if isinstance(criterion, StatCriterion):
        return int(getattr(context.snapshot, criterion.stat, 0) or 0)

    if isinstance(criterion, PerfectScoreCriterion):
        facts = context.recent_session
        return 1 if facts is not None and facts.score == facts.max_score else 0

    if isinstance(criterion, AccuracyCriterion):
        facts = context.recent_session
        if facts is None or facts.accuracy is None:
            return 0
        threshold = criterion.min_accuracy if criterion.min_accuracy is not None else target
        return 1 if facts.accuracy >= threshold else 0

    if isinstance(criterion, PointsEarnedCriterion):
        return int(context.lifetime_points)

    if isinstance(criterion, DomainCriterion):
        raw = context.domain_progress.get(criterion.key)
        if criterion.flag:
            return 1 if raw else 0
        value = int(raw or 0)
        if criterion.minimum is not None:
            return 1 if value >= criterion.minimum else 0
        return value

    # UnsupportedCriterion is handled by the caller
    return 0


def evaluate(definition: DefinitionLike, context: EvaluationContext) -> Evaluation:
    """
    Evaluate one definition against a context.

    A set `scope_filter` that matches none of the context's scope ids
    short-circuits to not met with value 0. So does an unsupported
    criterion, flagged `unsupported=True` with the parser's reason.
    """
    target = int(definition.target_value or 0)

    if definition.scope_filter and definition.scope_filter not in context.scope_ids():
        return Evaluation(meets=False, current_value=0, target_value=target, progress_percent=0.0)

    criterion = parse_criterion(
        definition.criteria_type,
        definition.criteria_version or 1,
        definition.criteria_params,
    )
    if isinstance(criterion, UnsupportedCriterion):
        return Evaluation(
            meets=False,
            current_value=0,
            target_value=target,
            progress_percent=0.0,
            unsupported=True,
            reason=criterion.reason,
        )

    current = _current_value(criterion, context, target)
    if isinstance(criterion, AccuracyCriterion) and criterion.min_accuracy is None:
        # Target doubles as the accuracy threshold; one qualifying session unlocks
        target = 1
    return Evaluation(
        meets=current >= target,
        current_value=current,
        target_value=target,
        progress_percent=_progress(current, target),
    )

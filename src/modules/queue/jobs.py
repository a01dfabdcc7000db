"""
Typed, versioned job payloads.

Every JobRecord payload is a JSON object carrying `"v": 1` plus the fields
of one variant below. `parse_payload` maps a stored (job_type, payload) pair
back to its variant; unknown job types, other versions and malformed
payloads become `UnsupportedJobPayload`, which workers dead-letter without
retrying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from src.database.models.enums import JobType, LeaderboardPeriod
from src.modules.progression.snapshot import ProgressionSnapshot
from src.modules.shared.formulas import SessionFacts

PAYLOAD_VERSION = 1


def _facts_to_dict(facts: Optional[SessionFacts]) -> Optional[Dict[str, Any]]:
    if facts is None:
        return None
    return {
        "outcome": facts.outcome,
        "score": facts.score,
        "max_score": facts.max_score,
        "duration_ms": facts.duration_ms,
        "accuracy": facts.accuracy,
    }


def _facts_from_dict(data: Optional[Mapping[str, Any]]) -> Optional[SessionFacts]:
    if not data:
        return None
    accuracy = data.get("accuracy")
    return SessionFacts(
        outcome=str(data["outcome"]),
        score=int(data["score"]),
        max_score=int(data["max_score"]),
        duration_ms=int(data.get("duration_ms", 0)),
        accuracy=float(accuracy) if accuracy is not None else None,
    )


@dataclass(frozen=True)
class AchievementJobPayload:
    """
    Deferred achievement check for one completed session.

    `snapshot` is the progression at enqueue time, kept for diagnostics; the
    worker re-reads progression before evaluating.
    """

    player_id: int
    session_id: Optional[int] = None
    activity_id: Optional[int] = None
    activity_slug: Optional[str] = None
    facts: Optional[SessionFacts] = None
    snapshot: Optional[ProgressionSnapshot] = None
    domain_id: Optional[str] = None
    domain_progress: Dict[str, Any] = field(default_factory=dict)

    job_type = JobType.ACHIEVEMENT

    def to_payload(self) -> Dict[str, Any]:
        return {
            "v": PAYLOAD_VERSION,
            "player_id": self.player_id,
            "session_id": self.session_id,
            "activity_id": self.activity_id,
            "activity_slug": self.activity_slug,
            "facts": _facts_to_dict(self.facts),
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "domain_id": self.domain_id,
            "domain_progress": dict(self.domain_progress),
        }

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> AchievementJobPayload:
        snapshot = data.get("snapshot")
        return cls(
            player_id=int(data["player_id"]),
            session_id=data.get("session_id"),
            activity_id=data.get("activity_id"),
            activity_slug=data.get("activity_slug"),
            facts=_facts_from_dict(data.get("facts")),
            snapshot=ProgressionSnapshot.from_dict(snapshot) if snapshot else None,
            domain_id=data.get("domain_id"),
            domain_progress=dict(data.get("domain_progress") or {}),
        )


@dataclass(frozen=True)
class LeaderboardJobPayload:
    """Recompute one board, or every board when `calculate_all` is set."""

    category: Optional[str] = None
    period: str = LeaderboardPeriod.ALL_TIME.value
    brand_id: Optional[str] = None
    limit: int = 100
    calculate_all: bool = False

    job_type = JobType.LEADERBOARD

    def to_payload(self) -> Dict[str, Any]:
        return {
            "v": PAYLOAD_VERSION,
            "category": self.category,
            "period": self.period,
            "brand_id": self.brand_id,
            "limit": self.limit,
            "calculate_all": self.calculate_all,
        }

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> LeaderboardJobPayload:
        calculate_all = bool(data.get("calculate_all", False))
        category = data.get("category")
        if not calculate_all and not category:
            raise ValueError("leaderboard payload needs a category or calculate_all")
        return cls(
            category=category,
            period=str(data.get("period") or LeaderboardPeriod.ALL_TIME.value),
            brand_id=data.get("brand_id"),
            limit=int(data.get("limit") or 100),
            calculate_all=calculate_all,
        )


@dataclass(frozen=True)
class ChallengeJobPayload:
    """Session facts needed to advance the player's daily challenges."""

    player_id: int
    session_id: int
    activity_id: int
    outcome: str
    is_perfect: bool = False
    points_earned: int = 0
    xp_earned: int = 0
    win_streak: int = 0
    completed_at: Optional[datetime] = None

    job_type = JobType.CHALLENGE

    def to_payload(self) -> Dict[str, Any]:
        return {
            "v": PAYLOAD_VERSION,
            "player_id": self.player_id,
            "session_id": self.session_id,
            "activity_id": self.activity_id,
            "outcome": self.outcome,
            "is_perfect": self.is_perfect,
            "points_earned": self.points_earned,
            "xp_earned": self.xp_earned,
            "win_streak": self.win_streak,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> ChallengeJobPayload:
        completed_at = data.get("completed_at")
        return cls(
            player_id=int(data["player_id"]),
            session_id=int(data["session_id"]),
            activity_id=int(data["activity_id"]),
            outcome=str(data["outcome"]),
            is_perfect=bool(data.get("is_perfect", False)),
            points_earned=int(data.get("points_earned", 0)),
            xp_earned=int(data.get("xp_earned", 0)),
            win_streak=int(data.get("win_streak", 0)),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        )


@dataclass(frozen=True)
class UnsupportedJobPayload:
    job_type: str
    version: Any
    reason: str
    raw: Dict[str, Any] = field(default_factory=dict)


JobPayload = Union[
    AchievementJobPayload,
    LeaderboardJobPayload,
    ChallengeJobPayload,
    UnsupportedJobPayload,
]

_PARSERS = {
    JobType.ACHIEVEMENT.value: AchievementJobPayload,
    JobType.LEADERBOARD.value: LeaderboardJobPayload,
    JobType.CHALLENGE.value: ChallengeJobPayload,
}


def parse_payload(job_type: str, payload: Optional[Mapping[str, Any]]) -> JobPayload:
    """Decode a stored payload. Never raises."""
    raw = dict(payload or {})
    version = raw.get("v")

    parser = _PARSERS.get(job_type)
    if parser is None:
        return UnsupportedJobPayload(job_type, version, f"unknown job type '{job_type}'", raw)
    if version != PAYLOAD_VERSION:
        return UnsupportedJobPayload(job_type, version, f"unsupported payload version {version!r}", raw)

    try:
        return parser.from_payload(raw)
    except (KeyError, TypeError, ValueError) as exc:
        return UnsupportedJobPayload(job_type, version, f"malformed payload: {exc}", raw)

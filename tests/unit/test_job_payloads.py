"""
Unit tests for typed job payloads.

parse_payload must never raise: anything it cannot decode becomes an
UnsupportedJobPayload that the workers dead-letter.
"""

from src.modules.progression.snapshot import ProgressionSnapshot
from src.modules.queue.jobs import (
    AchievementJobPayload,
    ChallengeJobPayload,
    LeaderboardJobPayload,
    UnsupportedJobPayload,
    parse_payload,
)
from src.modules.shared.formulas import SessionFacts
from tests.conftest import NOW


class TestEncoding:
    def test_payloads_carry_version(self):
        assert LeaderboardJobPayload(category="level").to_payload()["v"] == 1
        assert AchievementJobPayload(player_id=3).to_payload()["v"] == 1

    def test_achievement_payload_decodes_nested_values(self):
        payload = AchievementJobPayload(
            player_id=3,
            session_id=11,
            activity_id=7,
            facts=SessionFacts("win", 80, 100, 42_000, accuracy=91.0),
            snapshot=ProgressionSnapshot(player_id=3, level=4, wins=12),
            domain_progress={"units_completed": 2},
        )

        decoded = parse_payload("achievement", payload.to_payload())

        assert decoded == payload

    def test_challenge_payload_keeps_completion_time(self):
        payload = ChallengeJobPayload(
            player_id=3, session_id=11, activity_id=7, outcome="win", completed_at=NOW
        )

        decoded = parse_payload("challenge", payload.to_payload())

        assert isinstance(decoded, ChallengeJobPayload)
        assert decoded.completed_at == NOW


class TestUnsupported:
    def test_unknown_job_type(self):
        decoded = parse_payload("email", {"v": 1})

        assert isinstance(decoded, UnsupportedJobPayload)
        assert "unknown job type" in decoded.reason

    def test_other_version(self):
        decoded = parse_payload("achievement", {"v": 2, "player_id": 1})

        assert isinstance(decoded, UnsupportedJobPayload)
        assert decoded.version == 2

    def test_missing_version(self):
        assert isinstance(parse_payload("achievement", {"player_id": 1}), UnsupportedJobPayload)

    def test_malformed_payload(self):
        decoded = parse_payload("challenge", {"v": 1, "player_id": 1})

        assert isinstance(decoded, UnsupportedJobPayload)
        assert decoded.reason.startswith("malformed payload")

    def test_leaderboard_needs_category_or_all(self):
        assert isinstance(parse_payload("leaderboard", {"v": 1}), UnsupportedJobPayload)
        assert parse_payload("leaderboard", {"v": 1, "calculate_all": True}).calculate_all is True

    def test_none_payload(self):
        assert isinstance(parse_payload("achievement", None), UnsupportedJobPayload)

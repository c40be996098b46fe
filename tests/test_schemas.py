"""Tests for tritium/schemas - session file validation."""

from typing import Any

import pytest

from tritium.schemas import SESSION_STATE_SCHEMA, validate_session_state


@pytest.fixture
def valid_session() -> dict[str, Any]:
    """A session file as written after a few cycles."""
    return {
        "project_name": "pong",
        "project_type": "web-game",
        "description": "Build Pong",
        "cycle_count": 2,
        "last_health": "PASS",
        "last_phase": "test",
        "cycle_history": [
            {"cycle": 1, "phase": "improve", "summary": "Added paddles", "confidence": 7},
            {"cycle": 2, "phase": "test", "summary": "Wrote tests", "confidence": None},
        ],
        "phase_scores": {"improve": 7},
        "total_elapsed_secs": 812.5,
        "agent_session_id": None,
    }


class TestSessionStateSchema:
    """Tests for the schema definition."""

    def test_required_fields(self) -> None:
        """The schema requires every field needed to resume."""
        assert set(SESSION_STATE_SCHEMA["required"]) == {
            "project_type",
            "description",
            "cycle_count",
            "last_health",
            "last_phase",
            "cycle_history",
            "phase_scores",
            "total_elapsed_secs",
        }


class TestValidateSessionState:
    """Tests for validate_session_state."""

    def test_valid(self, valid_session: dict[str, Any]) -> None:
        """A well-formed session passes."""
        assert validate_session_state(valid_session) == (True, [])

    def test_not_an_object(self) -> None:
        """A non-object is rejected."""
        is_valid, errors = validate_session_state(["nope"])
        assert not is_valid
        assert "JSON object" in errors[0]

    def test_missing_field(self, valid_session: dict[str, Any]) -> None:
        """Each missing required field is reported."""
        del valid_session["cycle_count"]
        is_valid, errors = validate_session_state(valid_session)
        assert not is_valid
        assert "Missing required field: cycle_count" in errors

    def test_negative_cycle_count(self, valid_session: dict[str, Any]) -> None:
        """cycle_count must be a non-negative integer."""
        valid_session["cycle_count"] = -1
        assert not validate_session_state(valid_session)[0]

    def test_boolean_cycle_count(self, valid_session: dict[str, Any]) -> None:
        """Booleans are not accepted as integers."""
        valid_session["cycle_count"] = True
        assert not validate_session_state(valid_session)[0]

    def test_bad_health(self, valid_session: dict[str, Any]) -> None:
        """last_health must be a known status."""
        valid_session["last_health"] = "GREAT"
        is_valid, errors = validate_session_state(valid_session)
        assert not is_valid
        assert "Invalid last_health" in errors[0]

    def test_bad_history_entry(self, valid_session: dict[str, Any]) -> None:
        """History entries need cycle, phase and summary."""
        valid_session["cycle_history"].append({"cycle": 3})
        is_valid, errors = validate_session_state(valid_session)
        assert not is_valid
        assert "cycle_history[2]" in errors[0]

    def test_score_out_of_range(self, valid_session: dict[str, Any]) -> None:
        """Phase scores must be 0-10."""
        valid_session["phase_scores"]["polish"] = 11
        assert not validate_session_state(valid_session)[0]

    def test_negative_elapsed(self, valid_session: dict[str, Any]) -> None:
        """Elapsed time cannot be negative."""
        valid_session["total_elapsed_secs"] = -5
        assert not validate_session_state(valid_session)[0]

"""Session file schema.

The session file lets an interrupted build resume with its cycle count,
history, phase scores and elapsed time intact.
"""

from typing import Any


SESSION_STATE_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "title": "SessionState",
    "description": "Persisted state of one build-and-improve run",
    "required": [
        "project_type",
        "description",
        "cycle_count",
        "last_health",
        "last_phase",
        "cycle_history",
        "phase_scores",
        "total_elapsed_secs",
    ],
    "properties": {
        "project_name": {"type": "string"},
        "project_type": {
            "type": "string",
            "enum": ["web-game", "web-app", "api", "cli", "library", "self", "unknown"],
        },
        "description": {"type": "string"},
        "cycle_count": {"type": "integer", "minimum": 0},
        "last_health": {
            "type": "string",
            "enum": ["PASS", "WARN", "FAIL", "unknown"],
        },
        "last_phase": {"type": "string"},
        "cycle_history": {
            "type": "array",
            "maxItems": 10,
            "items": {
                "type": "object",
                "required": ["cycle", "phase", "summary"],
                "properties": {
                    "cycle": {"type": "integer"},
                    "phase": {"type": "string"},
                    "summary": {"type": "string"},
                    "confidence": {"type": ["integer", "null"], "minimum": 0, "maximum": 10},
                    "timestamp": {"type": "string", "format": "date-time"},
                    "duration_seconds": {"type": "number"},
                    "response_length": {"type": "integer"},
                },
            },
        },
        "phase_scores": {
            "type": "object",
            "additionalProperties": {"type": "integer", "minimum": 0, "maximum": 10},
        },
        "total_elapsed_secs": {"type": "number", "minimum": 0},
        "agent_session_id": {"type": ["string", "null"]},
        "updated_at": {"type": "string", "format": "date-time"},
    },
}

VALID_HEALTH_VALUES = ("PASS", "WARN", "FAIL", "unknown")


def validate_session_state(data: Any) -> tuple[bool, list[str]]:
    """Validate a loaded session file against the schema.

    Args:
        data: Decoded JSON value

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    if not isinstance(data, dict):
        return False, ["Session file must contain a JSON object"]

    errors: list[str] = []

    for field in SESSION_STATE_SCHEMA["required"]:
        if field not in data:
            errors.append(f"Missing required field: {field}")

    cycle_count = data.get("cycle_count")
    if "cycle_count" in data and (
        not isinstance(cycle_count, int) or isinstance(cycle_count, bool) or cycle_count < 0
    ):
        errors.append("Field 'cycle_count' must be a non-negative integer")

    if "last_health" in data and data["last_health"] not in VALID_HEALTH_VALUES:
        errors.append(
            f"Invalid last_health: {data['last_health']}. "
            f"Must be one of: {list(VALID_HEALTH_VALUES)}"
        )

    history = data.get("cycle_history")
    if "cycle_history" in data:
        if not isinstance(history, list):
            errors.append("Field 'cycle_history' must be an array")
        else:
            for i, entry in enumerate(history):
                if not isinstance(entry, dict) or not {"cycle", "phase", "summary"} <= entry.keys():
                    errors.append(f"cycle_history[{i}] must have cycle, phase and summary")

    scores = data.get("phase_scores")
    if "phase_scores" in data:
        if not isinstance(scores, dict):
            errors.append("Field 'phase_scores' must be an object")
        else:
            for phase, score in scores.items():
                if not isinstance(score, int) or not 0 <= score <= 10:
                    errors.append(f"phase_scores['{phase}'] must be an integer 0-10")

    elapsed = data.get("total_elapsed_secs")
    if "total_elapsed_secs" in data and (
        not isinstance(elapsed, (int, float)) or elapsed < 0
    ):
        errors.append("Field 'total_elapsed_secs' must be a non-negative number")

    return len(errors) == 0, errors

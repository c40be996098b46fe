"""JSON schemas for files this tool persists."""

from tritium.schemas.session_state import (
    SESSION_STATE_SCHEMA,
    validate_session_state,
)

__all__ = [
    "SESSION_STATE_SCHEMA",
    "validate_session_state",
]

"""Session state: what a run has done so far, persisted for --resume."""

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .config import HISTORY_LIMIT, SESSION_FILE_NAME
from .schemas.session_state import validate_session_state


logger = logging.getLogger(__name__)


def _get_utc_timestamp() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class CycleRecord:
    """One finished cycle. Immutable once recorded."""

    cycle: int
    phase: str
    summary: str
    confidence: int | None = None
    timestamp: str = field(default_factory=_get_utc_timestamp)
    duration_seconds: float = 0.0
    response_length: int = 0

    def history_line(self) -> str:
        """One-line form used in prompt history."""
        line = f"Cycle #{self.cycle} ({self.phase}): {self.summary}"
        if self.confidence is not None:
            line += f" [confidence {self.confidence}/10]"
        return line

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle": self.cycle,
            "phase": self.phase,
            "summary": self.summary,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
            "duration_seconds": self.duration_seconds,
            "response_length": self.response_length,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CycleRecord":
        return cls(
            cycle=int(data["cycle"]),
            phase=str(data["phase"]),
            summary=str(data["summary"]),
            confidence=data.get("confidence"),
            timestamp=data.get("timestamp") or _get_utc_timestamp(),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            response_length=int(data.get("response_length", 0)),
        )


@dataclass
class SessionState:
    """Persisted record of a run."""

    description: str
    project_type: str = "unknown"
    project_name: str = ""
    cycle_count: int = 0
    last_health: str = "unknown"
    last_phase: str = "unknown"
    cycle_history: list[CycleRecord] = field(default_factory=list)
    phase_scores: dict[str, int] = field(default_factory=dict)
    total_elapsed_secs: float = 0.0
    agent_session_id: str | None = None

    def record_cycle(self, record: CycleRecord) -> None:
        """Append to history, keeping only the most recent entries."""
        self.cycle_history.append(record)
        del self.cycle_history[:-HISTORY_LIMIT]
        if record.confidence is not None:
            self.phase_scores[record.phase] = record.confidence

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "project_name": self.project_name,
            "project_type": self.project_type,
            "description": self.description,
            "cycle_count": self.cycle_count,
            "last_health": self.last_health,
            "last_phase": self.last_phase,
            "cycle_history": [r.to_dict() for r in self.cycle_history],
            "phase_scores": dict(self.phase_scores),
            "total_elapsed_secs": round(self.total_elapsed_secs, 1),
            "agent_session_id": self.agent_session_id,
            "updated_at": _get_utc_timestamp(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionState":
        """Create SessionState from a validated dictionary."""
        return cls(
            description=data["description"],
            project_type=data.get("project_type", "unknown"),
            project_name=data.get("project_name", ""),
            cycle_count=data.get("cycle_count", 0),
            last_health=data.get("last_health", "unknown"),
            last_phase=data.get("last_phase", "unknown"),
            cycle_history=[
                CycleRecord.from_dict(r) for r in data.get("cycle_history", [])
            ][-HISTORY_LIMIT:],
            phase_scores=dict(data.get("phase_scores", {})),
            total_elapsed_secs=float(data.get("total_elapsed_secs", 0.0)),
            agent_session_id=data.get("agent_session_id"),
        )


class SessionStore:
    """Reads and writes the session file inside a project directory."""

    def __init__(self, output_dir: Path) -> None:
        self.path = output_dir / SESSION_FILE_NAME

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> SessionState:
        """
        Read the session file.

        Returns:
            The stored SessionState

        Raises:
            FileNotFoundError: If there is no session file
            ValueError: If the file is not valid JSON or fails validation
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Session file is not valid JSON: {e}") from e

        is_valid, errors = validate_session_state(data)
        if not is_valid:
            raise ValueError("Invalid session file: " + "; ".join(errors))
        return SessionState.from_dict(data)

    def save(self, state: SessionState) -> None:
        """Write the session file atomically. Failures are logged, not raised."""
        temp_file = self.path.with_suffix(".json.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
            temp_file.replace(self.path)
        except OSError as e:
            print(f"⚠️ Error writing session file: {e}")
            if temp_file.exists():
                temp_file.unlink()
            return
        logger.debug("Session saved to %s", self.path)

"""Tritium Coder: autonomous build-and-improve loop for local coding models."""

from .agent_client import (
    AgentResponse,
    ClaudeAgent,
    CodingAgent,
    OpenClawAgent,
    create_agent,
    extract_confidence,
)
from .checkpoint import CheckpointManager, GitOperationError
from .config import *
from .controller import (
    CycleController,
    GenerationError,
    PreflightError,
    RunState,
    TimeBudget,
    preflight,
)
from .health import HealthChecker, HealthReport, HealthStatus, derive_status
from .logging_utils import LoggingManager
from .model_runtime import OllamaRuntime
from .phases import MaturityTier, Phase, maturity_tier, select_phase
from .project_type import ProjectType, derive_project_name, detect_project_type
from .session import CycleRecord, SessionState, SessionStore
from .vision import VisionFeedback, VisionGate


__version__ = "1.0.0"
__all__ = [
    "AgentResponse",
    "CheckpointManager",
    "ClaudeAgent",
    "CodingAgent",
    "CycleController",
    "CycleRecord",
    "GenerationError",
    "GitOperationError",
    "HealthChecker",
    "HealthReport",
    "HealthStatus",
    "LoggingManager",
    "MaturityTier",
    "OllamaRuntime",
    "OpenClawAgent",
    "Phase",
    "PreflightError",
    "ProjectType",
    "RunState",
    "SessionState",
    "SessionStore",
    "TimeBudget",
    "VisionFeedback",
    "VisionGate",
    # Pure decision helpers
    "derive_project_name",
    "derive_status",
    "detect_project_type",
    "extract_confidence",
    "maturity_tier",
    "preflight",
    "select_phase",
    # Factories
    "create_agent",
]

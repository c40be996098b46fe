"""Phase selection: which task the coding agent works on next."""

from dataclasses import dataclass
from enum import Enum

from .config import REFACTOR_FILE_LINES
from .health import HealthReport, HealthStatus


class Phase(str, Enum):
    """Single task type executed by the coding agent in one cycle."""

    FIX = "fix"
    IMPROVE = "improve"
    FEATURES = "features"
    TEST = "test"
    RUNTESTS = "runtests"
    POLISH = "polish"
    REFACTOR = "refactor"
    CONSOLIDATE = "consolidate"
    DOCS = "docs"

    @property
    def is_constructive(self) -> bool:
        """Constructive phases are checkpointed after they run."""
        return self in CONSTRUCTIVE_PHASES

    @property
    def triggers_vision(self) -> bool:
        """Phases after which the vision gate may run."""
        return self in VISION_TRIGGER_PHASES


CONSTRUCTIVE_PHASES = frozenset(
    {
        Phase.IMPROVE,
        Phase.FEATURES,
        Phase.POLISH,
        Phase.DOCS,
        Phase.REFACTOR,
        Phase.CONSOLIDATE,
    }
)

VISION_TRIGGER_PHASES = frozenset({Phase.RUNTESTS, Phase.POLISH})


class MaturityTier(str, Enum):
    """Coarse project age, derived from the cycle number."""

    EARLY = "early"
    MID = "mid"
    LATE = "late"


EARLY_TIER_MAX_CYCLE = 3
MID_TIER_MAX_CYCLE = 10

# Round-robin order per tier, indexed by (cycle - 1) mod len
TIER_PHASES: dict[MaturityTier, tuple[Phase, ...]] = {
    MaturityTier.EARLY: (Phase.IMPROVE, Phase.TEST, Phase.RUNTESTS, Phase.FEATURES),
    MaturityTier.MID: (
        Phase.IMPROVE,
        Phase.RUNTESTS,
        Phase.FEATURES,
        Phase.POLISH,
        Phase.TEST,
        Phase.DOCS,
    ),
    MaturityTier.LATE: (
        Phase.CONSOLIDATE,
        Phase.RUNTESTS,
        Phase.POLISH,
        Phase.DOCS,
        Phase.REFACTOR,
        Phase.TEST,
    ),
}

TIER_GUIDANCE: dict[MaturityTier, str] = {
    MaturityTier.EARLY: (
        "EARLY STAGE: get the core working end to end. Favor correctness and a "
        "complete basic experience over extra features."
    ),
    MaturityTier.MID: (
        "MID STAGE: the core works. Deepen it with features, tests and visual "
        "quality, without breaking what already works."
    ),
    MaturityTier.LATE: (
        "LATE STAGE: the project is mature. Consolidate, simplify, document and "
        "harden. Avoid large new features."
    ),
}

DIAGNOSTIC_FAILURE_THRESHOLD = 3


def maturity_tier(cycle: int) -> MaturityTier:
    """Early for cycles 1-3, mid for 4-10, late after that."""
    if cycle <= EARLY_TIER_MAX_CYCLE:
        return MaturityTier.EARLY
    if cycle <= MID_TIER_MAX_CYCLE:
        return MaturityTier.MID
    return MaturityTier.LATE


def select_phase(
    cycle: int,
    health: HealthReport | None,
    consecutive_failures: int,
    refactor_threshold: int = REFACTOR_FILE_LINES,
) -> Phase:
    """
    Pick the next phase. Pure function of its arguments.

    Args:
        cycle: Current cycle number (1-based)
        health: Latest health report, or None if no check has run yet
        consecutive_failures: Current FAIL streak
        refactor_threshold: Line count above which the largest file forces a refactor

    Returns:
        The phase to run this cycle
    """
    if health is None:
        if cycle != 1:
            return Phase.FIX
    elif health.status == HealthStatus.FAIL:
        if consecutive_failures >= DIAGNOSTIC_FAILURE_THRESHOLD:
            return Phase.RUNTESTS
        return Phase.FIX
    elif health.status == HealthStatus.WARN:
        return Phase.FIX
    elif health.largest_file_lines > refactor_threshold:
        return Phase.REFACTOR

    phases = TIER_PHASES[maturity_tier(cycle)]
    return phases[(cycle - 1) % len(phases)]


@dataclass
class FailureCounter:
    """Consecutive FAIL streak across health checks."""

    count: int = 0

    def update(self, status: HealthStatus) -> int:
        """+1 on FAIL, reset on PASS, unchanged on WARN. Returns the new count."""
        if status == HealthStatus.FAIL:
            self.count += 1
        elif status == HealthStatus.PASS:
            self.count = 0
        return self.count

"""The build-and-improve loop.

Each cycle: health check, phase selection, agent call, record, checkpoint,
optional vision gate with one fix pass, session save. The loop runs while
more than ``MIN_CYCLE_SECONDS`` of the budget remain and is the failure
boundary for everything that happens inside a cycle.
"""

import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .agent_client import AgentResponse, CodingAgent
from .browser import PlaywrightDriver
from .checkpoint import CheckpointManager
from .config import (
    CYCLE_PAUSE_SECONDS,
    GENERATE_TIMEOUT,
    GENERATED_SOURCE_PATTERNS,
    IGNORED_DIRS,
    MIN_CYCLE_SECONDS,
    SESSION_FILE_NAME,
    VISION_FIX_MIN_SECONDS,
    AgentBackend,
    ProjectConfig,
)
from .error_messages import PreflightMessages, VisionWarnings
from .health import HealthChecker, HealthReport, HealthStatus
from .logging_utils import LoggingManager
from .model_runtime import OllamaRuntime, url_reachable
from .phases import FailureCounter, Phase, maturity_tier, select_phase
from .project_type import ProjectType
from .prompts import PromptContext, build_generate_prompt, build_prompt
from .reporting import RunSummary, list_project_files
from .session import CycleRecord, SessionState, SessionStore
from .tracing import TracingManager
from .vision import VisionFeedback, VisionGate


logger = logging.getLogger(__name__)


class PreflightError(Exception):
    """A required external service is missing; the run cannot start."""


class GenerationError(Exception):
    """Initial generation produced no files."""


@dataclass
class TimeBudget:
    """Wall-clock budget for one invocation."""

    duration_seconds: float
    clock: Callable[[], float] = time.monotonic
    started_at: float = field(init=False)

    def __post_init__(self) -> None:
        self.started_at = self.clock()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def remaining(self) -> float:
        return self.duration_seconds - self.elapsed()

    def clamp(self, timeout: float) -> float:
        """Lesser of ``timeout`` and the remaining budget, never negative."""
        return max(0.0, min(timeout, self.remaining()))


@dataclass
class RunState:
    """Mutable state of one run, threaded through the controller."""

    session: SessionState
    health: HealthReport | None = None
    failures: FailureCounter = field(default_factory=FailureCounter)
    vision_feedback: VisionFeedback | None = None
    degraded_cycles: int = 0
    elapsed_before_start: float = 0.0

    @property
    def cycle(self) -> int:
        return self.session.cycle_count


def has_source_files(output_dir: Path) -> bool:
    """Whether the project already has code (html, js, css or py)."""
    for pattern in GENERATED_SOURCE_PATTERNS:
        for path in output_dir.rglob(pattern):
            if not any(part in IGNORED_DIRS for part in path.relative_to(output_dir).parts):
                return True
    return False


def has_any_files(output_dir: Path) -> bool:
    """Whether anything besides the session file exists in the project."""
    return any(
        path.is_file() and path.name != SESSION_FILE_NAME for path in output_dir.rglob("*")
    )


def preflight(
    config: ProjectConfig,
    runtime: OllamaRuntime,
    driver: PlaywrightDriver | None,
    vision_requested: bool,
) -> bool:
    """
    Verify required services before the loop starts.

    Args:
        config: Tool configuration
        runtime: Model runtime client
        driver: Browser driver, if one was created
        vision_requested: Whether the operator wants the vision gate

    Returns:
        Whether the vision gate can run

    Raises:
        PreflightError: If the model runtime or the agent gateway is missing
    """
    if not runtime.is_reachable():
        raise PreflightError(PreflightMessages.runtime_unreachable(runtime.base_url))

    if config.runtime.manage_models and not runtime.has_model(config.runtime.coder_model):
        raise PreflightError(PreflightMessages.coder_model_missing(config.runtime.coder_model))

    agent = config.agent
    if agent.backend == AgentBackend.OPENCLAW:
        cli_name, gateway_url = "openclaw", agent.gateway_url
    else:
        cli_name, gateway_url = "claude", agent.proxy_url
    if shutil.which(cli_name) is None:
        raise PreflightError(PreflightMessages.cli_not_found(cli_name, agent.backend.value))
    if not url_reachable(gateway_url):
        raise PreflightError(
            PreflightMessages.gateway_unreachable(gateway_url, agent.backend.value)
        )

    if not vision_requested:
        return False
    if not runtime.has_model(config.vision.model):
        print(VisionWarnings.model_missing(config.vision.model))
        return False
    if driver is None or not driver.can_screenshot():
        print(VisionWarnings.browser_missing())
        return False
    return True


class CycleController:
    """Runs the loop for one project until the budget is spent."""

    def __init__(
        self,
        *,
        state: RunState,
        config: ProjectConfig,
        output_dir: Path,
        project_type: ProjectType,
        agent: CodingAgent,
        runtime: OllamaRuntime,
        health_checker: HealthChecker,
        checkpoints: CheckpointManager,
        store: SessionStore,
        budget: TimeBudget,
        vision_gate: VisionGate | None = None,
        logging_manager: LoggingManager | None = None,
        logs_dir: Path | None = None,
        tracing: TracingManager | None = None,
        tool_root: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.state = state
        self.config = config
        self.output_dir = output_dir
        self.project_type = project_type
        self.agent = agent
        self.runtime = runtime
        self.health_checker = health_checker
        self.checkpoints = checkpoints
        self.store = store
        self.budget = budget
        self.vision_gate = vision_gate
        self.logging_manager = logging_manager
        self.logs_dir = logs_dir
        self.tracing = tracing or TracingManager()
        self.tool_root = tool_root
        self._sleep = sleep

    @property
    def session(self) -> SessionState:
        return self.state.session

    # =========================================================================
    # Helpers
    # =========================================================================

    def _prompt_context(self, vision_feedback: str = "") -> PromptContext:
        return PromptContext(
            description=self.session.description,
            output_dir=self.output_dir,
            project_name=self.session.project_name,
            project_type=self.project_type,
            cycle=self.state.cycle,
            health=self.state.health,
            history=list(self.session.cycle_history),
            vision_feedback=vision_feedback,
            tool_root=self.tool_root,
        )

    def _load_coder(self) -> None:
        if self.config.runtime.manage_models:
            self.runtime.load(self.config.runtime.coder_model, self.config.runtime.keep_alive)

    def _call_agent(self, prompt: str, timeout: float, label: str) -> AgentResponse:
        self._load_coder()
        print(f"🤖 CODE   phase={label} timeout={int(timeout)}")
        response = self.agent.invoke(prompt, timeout)
        self.session.agent_session_id = self.agent.session_id
        if response.is_empty:
            reason = "timed out" if response.timed_out else "empty or failed"
            print(f"🤖 CODE   response=EMPTY ({reason})")
        else:
            print(f"🤖 CODE   response_len={len(response.text)}")
        return response

    def _record(self, phase: str, response: AgentResponse) -> CycleRecord:
        record = CycleRecord(
            cycle=self.state.cycle,
            phase=phase,
            summary=response.summary,
            confidence=response.confidence,
            duration_seconds=response.duration_seconds,
            response_length=len(response.text),
        )
        self.session.record_cycle(record)
        if response.is_empty:
            self.state.degraded_cycles += 1
        else:
            print(f"   {record.summary}")
        if self.logging_manager and self.logs_dir:
            self.logging_manager.log_cycle(
                self.logs_dir,
                record.to_dict(),
                self.state.health.to_dict() if self.state.health else {},
            )
        return record

    def _run_health_check(self) -> HealthReport:
        report = self.health_checker.check(self.output_dir, self.project_type)
        self.state.health = report
        streak = self.state.failures.update(report.status)
        self.session.last_health = report.status.value
        print(
            f"🩺 HEALTH {report.status.value} ({report.reason}) "
            f"mode={report.mode.value} errors={report.error_count} fail_streak={streak}"
        )
        return report

    def save_session(self) -> None:
        """Persist the session with the up-to-date elapsed total."""
        self.session.total_elapsed_secs = self.state.elapsed_before_start + self.budget.elapsed()
        self.store.save(self.session)

    # =========================================================================
    # Phases
    # =========================================================================

    def generate_initial(self) -> bool:
        """
        Build the project from scratch if the output directory has no code.

        Returns:
            True if generation ran

        Raises:
            GenerationError: If the agent created no files
        """
        if has_source_files(self.output_dir):
            return False

        print("🏗️ GENERATE initial code (empty directory)")
        prompt = build_generate_prompt(self._prompt_context())
        response = self._call_agent(prompt, self.budget.clamp(GENERATE_TIMEOUT), "generate")

        if not has_any_files(self.output_dir):
            print("❌ GENERATE FAILED: no files created")
            raise GenerationError(PreflightMessages.generation_failed(str(self.output_dir)))

        self.session.record_cycle(
            CycleRecord(
                cycle=0,
                phase="generate",
                summary=response.summary,
                confidence=response.confidence,
                duration_seconds=response.duration_seconds,
                response_length=len(response.text),
            )
        )
        self.checkpoints.checkpoint("initial generation")
        self.save_session()
        return True

    def run_cycle(self) -> Phase:
        """Run one full cycle and return the phase it executed."""
        self.session.cycle_count += 1
        cycle = self.session.cycle_count
        tier = maturity_tier(cycle)

        print("=" * 64)
        print(
            f"🔄 CYCLE  #{cycle}  tier={tier.value}  "
            f"elapsed={int(self.budget.elapsed() // 60)}m  "
            f"remaining={int(self.budget.remaining() // 60)}m"
        )
        print("=" * 64)

        with self.tracing.span("cycle", cycle=cycle, tier=tier.value) as span:
            if cycle == 1 or self.health_checker.can_check(self.project_type):
                self._run_health_check()

            phase = select_phase(
                cycle,
                self.state.health,
                self.state.failures.count,
                self.config.health.refactor_lines,
            )
            self.session.last_phase = phase.value
            span.set_attribute("cycle.phase", phase.value)

            prompt = build_prompt(phase, self._prompt_context())
            timeout = self.budget.clamp(self.config.agent.phase_timeout)
            response = self._call_agent(prompt, timeout, phase.value)
            self._record(phase.value, response)

            if phase.is_constructive:
                self.checkpoints.checkpoint(f"cycle-{cycle}-{phase.value}")

            health_failed = (
                self.state.health is not None
                and self.state.health.status == HealthStatus.FAIL
            )
            if phase.triggers_vision and not health_failed:
                self._vision_pass(cycle, phase)

        return phase

    def _vision_pass(self, cycle: int, phase: Phase) -> None:
        if self.vision_gate is None:
            return

        print(f"👁️ VISION GATE triggered after {phase.value} phase")
        feedback = self.vision_gate.run(self.output_dir, self.budget.remaining)
        if not feedback:
            return

        self.state.vision_feedback = feedback
        try:
            timeout = self.budget.clamp(self.config.agent.phase_timeout)
            if timeout <= VISION_FIX_MIN_SECONDS:
                print("👁️ VISION FIX skipped: not enough time left")
                return
            print("👁️ VISION FIX addressing vision gate feedback")
            prompt = build_prompt(Phase.FIX, self._prompt_context(feedback.render()))
            response = self._call_agent(prompt, timeout, "vision-fix")
            self._record("vision-fix", response)
            self.checkpoints.checkpoint(f"cycle-{cycle}-vision-fix")
        finally:
            self.state.vision_feedback = None

    # =========================================================================
    # Loop
    # =========================================================================

    def run(self) -> RunSummary:
        """Run cycles until the budget is spent, then finish the run."""
        while self.budget.remaining() > MIN_CYCLE_SECONDS:
            try:
                self.run_cycle()
            except Exception as e:
                self.state.degraded_cycles += 1
                logger.exception("Cycle %d failed", self.state.cycle)
                print(f"⚠️ CYCLE  #{self.state.cycle} failed: {type(e).__name__}: {e}")
            self.state.vision_feedback = None
            self.save_session()
            print(f"💾 SESSION saved ({self.store.path.name})")

            if self.budget.remaining() > MIN_CYCLE_SECONDS:
                self._sleep(CYCLE_PAUSE_SECONDS)

        return self.finish()

    def finish(self) -> RunSummary:
        """Final health check, final checkpoint, session save, summary."""
        if self.health_checker.can_check(self.project_type):
            try:
                self._run_health_check()
            except Exception:
                logger.exception("Final health check failed")

        total = self.state.elapsed_before_start + self.budget.elapsed()
        self.checkpoints.checkpoint(
            f"final: {self.state.cycle} cycles in {int(total // 60)}m"
        )
        self.save_session()

        final_health = self.state.health.status.value if self.state.health else "unknown"
        print(f"✅ DONE   cycles={self.state.cycle} total_time={int(total)}s health={final_health}")

        return RunSummary(
            project_name=self.session.project_name,
            output_dir=self.output_dir,
            cycles=self.state.cycle,
            elapsed_seconds=total,
            final_health=final_health,
            degraded_cycles=self.state.degraded_cycles,
            files=list_project_files(self.output_dir),
        )

"""Pytest configuration and fixtures for Tritium Coder tests."""

import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator
from unittest.mock import MagicMock, patch

import pytest

from tritium.agent_client import AgentResponse, CodingAgent
from tritium.config import AgentBackend, ProjectConfig
from tritium.health import CheckMode, HealthChecker, HealthReport
from tritium.session import SessionState


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config() -> dict[str, Any]:
    """Sample .tritium.json contents."""
    return {
        "runtime": {
            "url": "http://gpu-box:11434",
            "coder_model": "qwen3-coder:30b",
            "keep_alive": "1h",
        },
        "agent": {"backend": "openclaw", "thinking": "high", "phase_timeout": 600},
        "vision": {"enabled": False, "model": "llava:13b"},
        "health": {"oversized_lines": 800, "refactor_lines": 1600},
        "retry": {"max_retries": 4},
        "tracing": {"enabled": True, "exporter": "none"},
    }


@pytest.fixture
def project_config() -> ProjectConfig:
    """Default configuration with model management off, so runtimes stay quiet."""
    config = ProjectConfig()
    config.runtime.manage_models = False
    return config


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Temporarily clear relevant environment variables."""
    env_vars = [
        "OTEL_TRACING_ENABLED",
        "OTEL_EXPORTER_OTLP_ENDPOINT",
        "OPENCLAW_GATEWAY_TOKEN",
        "ANTHROPIC_API_KEY",
    ]
    original = {k: os.environ.get(k) for k in env_vars}

    for var in env_vars:
        if var in os.environ:
            del os.environ[var]

    yield

    for var, value in original.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]


# ============================================================================
# Health Fixtures
# ============================================================================


def make_report(
    loads: bool = True,
    renders: bool = True,
    interactive: bool = True,
    error_count: int = 0,
    survival_seconds: float = 12.0,
    **kwargs: Any,
) -> HealthReport:
    """Browser-mode HealthReport with passing defaults."""
    return HealthReport(
        mode=CheckMode.BROWSER,
        loads=loads,
        renders=renders,
        interactive=interactive,
        error_count=error_count,
        survival_seconds=survival_seconds,
        **kwargs,
    )


@pytest.fixture
def passing_report() -> HealthReport:
    """A report whose status is PASS."""
    return make_report()


@pytest.fixture
def failing_report() -> HealthReport:
    """A report whose status is FAIL (blank render)."""
    return make_report(renders=False)


@pytest.fixture
def warning_report() -> HealthReport:
    """A report whose status is WARN (one console error)."""
    return make_report(error_count=1, errors=["TypeError: x is undefined"])


# ============================================================================
# Project Fixtures
# ============================================================================


@pytest.fixture
def web_project(temp_dir: Path) -> Path:
    """Output directory holding a minimal browser artifact."""
    (temp_dir / "index.html").write_text(
        "<!doctype html><html><body><canvas id='game'></canvas>"
        "<script src='game.js'></script></body></html>"
    )
    (temp_dir / "game.js").write_text("const canvas = document.getElementById('game');\n")
    return temp_dir


@pytest.fixture
def session_state() -> SessionState:
    """A fresh session for a web game."""
    return SessionState(
        description="Build a Tetris clone with levels",
        project_type="web-game",
        project_name="build-a-tetris-clone-with-leve",
    )


# ============================================================================
# Boundary Fakes
# ============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """A controllable clock."""
    return FakeClock()


@pytest.fixture
def fake_agent() -> MagicMock:
    """Coding agent double that answers every prompt with a confident summary."""
    agent = MagicMock(spec=CodingAgent)
    agent.backend = AgentBackend.CLAUDE
    agent.session_id = "sess-123"
    agent.invoke.return_value = AgentResponse(
        text="Fixed the collision bug.\nCONFIDENCE: 7", duration_seconds=4.2
    )
    return agent


@pytest.fixture
def fake_health_checker() -> Callable[[HealthReport], MagicMock]:
    """Factory for a health checker double that always returns ``report``."""

    def _make(report: HealthReport) -> MagicMock:
        checker = MagicMock(spec=HealthChecker)
        checker.check.return_value = report
        checker.can_check.return_value = True
        return checker

    return _make


# ============================================================================
# Subprocess Fixtures
# ============================================================================


@pytest.fixture
def mock_subprocess() -> Generator[MagicMock, None, None]:
    """Mock subprocess.run for CLI and git command testing."""
    with patch("subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(returncode=0, stdout="success", stderr="")
        yield mock_run

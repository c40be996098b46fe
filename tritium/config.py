"""Configuration constants and settings for Tritium Coder."""

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class AgentBackend(str, Enum):
    """Supported coding-agent backends."""

    CLAUDE = "claude"
    OPENCLAW = "openclaw"


# Model defaults
DEFAULT_CODER_MODEL = "qwen3-coder-next"
DEFAULT_VISION_MODEL = "qwen3-vl:32b"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_CODER_KEEP_ALIVE = "30m"
DEFAULT_AGENT_BACKEND = AgentBackend.CLAUDE

# Local service endpoints
DEFAULT_PROXY_URL = "http://localhost:8082"
DEFAULT_GATEWAY_URL = "http://127.0.0.1:18789"
DEFAULT_GATEWAY_TOKEN = "tritium-local-dev"
DEFAULT_THINKING_LEVEL = "medium"

# Time budget (seconds)
DEFAULT_HOURS = 4.0
MIN_CYCLE_SECONDS = 300
DEFAULT_PHASE_TIMEOUT = 900
GENERATE_TIMEOUT = 900
CYCLE_PAUSE_SECONDS = 3

# Vision gate
VISION_MIN_REMAINING_SECONDS = 600
VISION_FIX_MIN_SECONDS = 60
VISION_REVIEW_TIMEOUT = 180
# Capture and critique stop once less than this is left in the budget
VISION_STEP_MIN_SECONDS = 30
MAX_SCREENSHOTS_PER_RESOLUTION = 25
MODEL_SWAP_PAUSE_SECONDS = 2

# Health check
HEALTH_VIEWPORT = (1280, 720)
HEALTH_LOAD_TIMEOUT = 15
HEALTH_SURVIVAL_SECONDS = 10
HEALTH_MAX_ERRORS = 30
HEALTH_CRITICAL_ERRORS = 5
HEALTH_MIN_SURVIVAL_SECONDS = 5
CANVAS_NONBLANK_THRESHOLD = 10
OVERSIZED_FILE_LINES = 1500
REFACTOR_FILE_LINES = 3000

# Prompt context
HISTORY_LIMIT = 10
SUMMARY_MAX_LENGTH = 200

# File names
CONFIG_FILE_NAME = ".tritium.json"
SESSION_FILE_NAME = ".tritium-session.json"
GUIDANCE_FILE_NAME = "CLAUDE.md"
SCREENSHOTS_DIR_NAME = "screenshots"
LOGS_DIR_NAME = "logs"
PROJECT_NAME_MAX_LENGTH = 30

# Source files that count as "the project exists" for initial generation
GENERATED_SOURCE_PATTERNS = ("*.html", "*.js", "*.css", "*.py")

# Source files scanned by static checks and the oversized-file pass
SOURCE_FILE_EXTENSIONS = {
    ".py",
    ".js",
    ".mjs",
    ".ts",
    ".tsx",
    ".jsx",
    ".html",
    ".css",
    ".go",
    ".rs",
    ".sh",
}

# Directories never scanned
IGNORED_DIRS = {
    ".git",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    "dist",
    "build",
    SCREENSHOTS_DIR_NAME,
    LOGS_DIR_NAME,
}


@dataclass
class RuntimeSettings:
    """Model-serving runtime settings."""

    url: str = DEFAULT_OLLAMA_URL
    coder_model: str = DEFAULT_CODER_MODEL
    keep_alive: str = DEFAULT_CODER_KEEP_ALIVE
    manage_models: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RuntimeSettings":
        """Create RuntimeSettings from dictionary."""
        return cls(
            url=data.get("url", DEFAULT_OLLAMA_URL),
            coder_model=data.get("coder_model", DEFAULT_CODER_MODEL),
            keep_alive=data.get("keep_alive", DEFAULT_CODER_KEEP_ALIVE),
            manage_models=data.get("manage_models", True),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "url": self.url,
            "coder_model": self.coder_model,
            "keep_alive": self.keep_alive,
            "manage_models": self.manage_models,
        }


@dataclass
class AgentSettings:
    """Coding-agent invocation settings."""

    backend: AgentBackend = DEFAULT_AGENT_BACKEND
    model: str | None = None
    proxy_url: str = DEFAULT_PROXY_URL
    gateway_url: str = DEFAULT_GATEWAY_URL
    thinking: str = DEFAULT_THINKING_LEVEL
    phase_timeout: int = DEFAULT_PHASE_TIMEOUT

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AgentSettings":
        """Create AgentSettings from dictionary."""
        try:
            backend = AgentBackend(data.get("backend", DEFAULT_AGENT_BACKEND.value))
        except ValueError:
            backend = DEFAULT_AGENT_BACKEND

        return cls(
            backend=backend,
            model=data.get("model"),
            proxy_url=data.get("proxy_url", DEFAULT_PROXY_URL),
            gateway_url=data.get("gateway_url", DEFAULT_GATEWAY_URL),
            thinking=data.get("thinking", DEFAULT_THINKING_LEVEL),
            phase_timeout=data.get("phase_timeout", DEFAULT_PHASE_TIMEOUT),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "backend": self.backend.value,
            "proxy_url": self.proxy_url,
            "gateway_url": self.gateway_url,
            "thinking": self.thinking,
            "phase_timeout": self.phase_timeout,
        }
        if self.model:
            result["model"] = self.model
        return result


@dataclass
class VisionSettings:
    """Vision gate settings."""

    enabled: bool = True
    model: str = DEFAULT_VISION_MODEL
    review_timeout: int = VISION_REVIEW_TIMEOUT
    max_screenshots: int = MAX_SCREENSHOTS_PER_RESOLUTION

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VisionSettings":
        """Create VisionSettings from dictionary."""
        return cls(
            enabled=data.get("enabled", True),
            model=data.get("model", DEFAULT_VISION_MODEL),
            review_timeout=data.get("review_timeout", VISION_REVIEW_TIMEOUT),
            max_screenshots=data.get("max_screenshots", MAX_SCREENSHOTS_PER_RESOLUTION),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "enabled": self.enabled,
            "model": self.model,
            "review_timeout": self.review_timeout,
            "max_screenshots": self.max_screenshots,
        }


@dataclass
class HealthSettings:
    """Health check thresholds."""

    load_timeout: int = HEALTH_LOAD_TIMEOUT
    survival_seconds: int = HEALTH_SURVIVAL_SECONDS
    oversized_lines: int = OVERSIZED_FILE_LINES
    refactor_lines: int = REFACTOR_FILE_LINES
    # Browser artifacts fall back to static checks when no browser is available
    static_fallback: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HealthSettings":
        """Create HealthSettings from dictionary."""
        return cls(
            load_timeout=data.get("load_timeout", HEALTH_LOAD_TIMEOUT),
            survival_seconds=data.get("survival_seconds", HEALTH_SURVIVAL_SECONDS),
            oversized_lines=data.get("oversized_lines", OVERSIZED_FILE_LINES),
            refactor_lines=data.get("refactor_lines", REFACTOR_FILE_LINES),
            static_fallback=data.get("static_fallback", True),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "load_timeout": self.load_timeout,
            "survival_seconds": self.survival_seconds,
            "oversized_lines": self.oversized_lines,
            "refactor_lines": self.refactor_lines,
            "static_fallback": self.static_fallback,
        }


@dataclass
class RetrySettings:
    """Retry configuration settings for runtime HTTP calls."""

    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 10.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RetrySettings":
        """Create RetrySettings from dictionary."""
        return cls(
            max_retries=data.get("max_retries", 2),
            base_delay=data.get("base_delay", 1.0),
            max_delay=data.get("max_delay", 10.0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "max_retries": self.max_retries,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
        }


@dataclass
class TracingSettings:
    """OpenTelemetry tracing configuration settings."""

    enabled: bool = False
    service_name: str = "tritium-coder"
    exporter: str = "console"  # "console", "otlp", or "none"
    otlp_endpoint: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TracingSettings":
        """Create TracingSettings from dictionary."""
        return cls(
            enabled=data.get("enabled", False),
            service_name=data.get("service_name", "tritium-coder"),
            exporter=data.get("exporter", "console"),
            otlp_endpoint=data.get("otlp_endpoint"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "enabled": self.enabled,
            "service_name": self.service_name,
            "exporter": self.exporter,
        }
        if self.otlp_endpoint:
            result["otlp_endpoint"] = self.otlp_endpoint
        return result


@dataclass
class ProjectConfig:
    """Tool configuration loaded from .tritium.json."""

    runtime: RuntimeSettings = field(default_factory=RuntimeSettings)
    agent: AgentSettings = field(default_factory=AgentSettings)
    vision: VisionSettings = field(default_factory=VisionSettings)
    health: HealthSettings = field(default_factory=HealthSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    tracing: TracingSettings = field(default_factory=TracingSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectConfig":
        """Create ProjectConfig from dictionary."""
        return cls(
            runtime=RuntimeSettings.from_dict(data.get("runtime", {})),
            agent=AgentSettings.from_dict(data.get("agent", {})),
            vision=VisionSettings.from_dict(data.get("vision", {})),
            health=HealthSettings.from_dict(data.get("health", {})),
            retry=RetrySettings.from_dict(data.get("retry", {})),
            tracing=TracingSettings.from_dict(data.get("tracing", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "runtime": self.runtime.to_dict(),
            "agent": self.agent.to_dict(),
            "vision": self.vision.to_dict(),
            "health": self.health.to_dict(),
            "retry": self.retry.to_dict(),
            "tracing": self.tracing.to_dict(),
        }


def load_project_config(config_path: Path | None = None) -> ProjectConfig | None:
    """
    Load tool configuration from .tritium.json.

    Args:
        config_path: Optional path to config file. Defaults to .tritium.json in cwd.

    Returns:
        ProjectConfig if file exists and is valid, None otherwise.
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILE_NAME

    if not config_path.exists():
        return None

    try:
        with open(config_path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("top-level value must be an object")
        return ProjectConfig.from_dict(data)
    except (OSError, json.JSONDecodeError, ValueError, AttributeError) as e:
        print(f"Warning: Failed to load config from {config_path}: {e}")
        return None


def get_gateway_token() -> str:
    """Return the OpenClaw gateway token, falling back to the local-dev default."""
    return os.environ.get("OPENCLAW_GATEWAY_TOKEN", DEFAULT_GATEWAY_TOKEN)


def get_proxy_env_vars(agent: AgentSettings) -> dict[str, str]:
    """
    Environment variables that point Claude Code at the local model proxy.

    Args:
        agent: Agent settings

    Returns:
        Dictionary of environment variables to pass to the agent process
    """
    return {
        "ANTHROPIC_BASE_URL": agent.proxy_url,
        "ANTHROPIC_API_KEY": os.environ.get("ANTHROPIC_API_KEY", "local-model"),
        "CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC": "1",
        "CLAUDE_CODE_ENABLE_TELEMETRY": "0",
    }

"""Health checks: does the current artifact actually work?

Browser artifacts are loaded and probed by the browser driver; everything
else gets static validity checks. Both produce a ``HealthReport`` whose
status is always derived from its signals, never stored.
"""

import json
import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .browser import PlaywrightDriver, ProbeResult, Viewport
from .config import (
    HEALTH_CRITICAL_ERRORS,
    HEALTH_MAX_ERRORS,
    HEALTH_MIN_SURVIVAL_SECONDS,
    HEALTH_VIEWPORT,
    IGNORED_DIRS,
    SOURCE_FILE_EXTENSIONS,
    HealthSettings,
)
from .project_type import ProjectType
from .tracing import TracingManager


logger = logging.getLogger(__name__)

NODE_CHECK_TIMEOUT = 30


class HealthStatus(str, Enum):
    """Overall verdict of a health check."""

    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class CheckMode(str, Enum):
    """How the artifact was checked."""

    BROWSER = "browser"
    STATIC = "static"


def derive_status(
    loads: bool,
    renders: bool,
    interactive: bool,
    error_count: int,
    survival_seconds: float,
) -> tuple[HealthStatus, str]:
    """
    Map browser health signals to a status. First matching rule wins.

    Args:
        loads: Page finished loading
        renders: Something visible was drawn
        interactive: The page reacted to simulated input
        error_count: Number of console errors seen
        survival_seconds: Seconds the page stayed alive

    Returns:
        Tuple of (status, reason)
    """
    if not loads:
        return HealthStatus.FAIL, "failed to load"
    if not renders:
        return HealthStatus.FAIL, "blank render"
    if error_count > HEALTH_CRITICAL_ERRORS:
        return HealthStatus.FAIL, f"critically broken ({error_count} console errors)"
    if survival_seconds < HEALTH_MIN_SURVIVAL_SECONDS:
        return HealthStatus.FAIL, f"crashed early (after {survival_seconds:g}s)"
    if error_count > 0:
        return HealthStatus.WARN, f"{error_count} console error(s)"
    if not interactive:
        return HealthStatus.WARN, "no response to input"
    return HealthStatus.PASS, "all checks passed"


def derive_static_status(error_count: int) -> tuple[HealthStatus, str]:
    """Map static check results to a status: any failure is a FAIL."""
    if error_count > 0:
        return HealthStatus.FAIL, f"{error_count} file(s) failed static checks"
    return HealthStatus.PASS, "all files passed static checks"


@dataclass
class HealthReport:
    """Outcome of one health check."""

    mode: CheckMode
    loads: bool = False
    renders: bool = False
    interactive: bool = False
    error_count: int = 0
    errors: list[str] = field(default_factory=list)
    survival_seconds: float = 0.0
    oversized_files: dict[str, int] = field(default_factory=dict)
    check_error: str | None = None

    @property
    def verdict(self) -> tuple[HealthStatus, str]:
        """Status and reason, derived from the signals above."""
        if self.check_error is not None:
            return HealthStatus.FAIL, "check crashed"
        if self.mode == CheckMode.STATIC:
            return derive_static_status(self.error_count)
        return derive_status(
            self.loads,
            self.renders,
            self.interactive,
            self.error_count,
            self.survival_seconds,
        )

    @property
    def status(self) -> HealthStatus:
        return self.verdict[0]

    @property
    def reason(self) -> str:
        return self.verdict[1]

    @property
    def largest_file_lines(self) -> int:
        return max(self.oversized_files.values(), default=0)

    def details(self) -> str:
        """Multi-line description used in prompts and logs."""
        lines = [f"Status: {self.status.value} ({self.reason})"]
        if self.check_error is not None:
            lines.append(f"Health check error: {self.check_error}")
        elif self.mode == CheckMode.BROWSER:
            lines.append(
                f"Loads: {_yes_no(self.loads)} | Renders: {_yes_no(self.renders)} | "
                f"Interactive: {_yes_no(self.interactive)} | "
                f"Survived: {self.survival_seconds:g}s | Console errors: {self.error_count}"
            )
        else:
            lines.append(f"Static check failures: {self.error_count}")
        if self.errors:
            lines.append("Errors:")
            lines.extend(f"  - {error}" for error in self.errors)
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status.value,
            "reason": self.reason,
            "mode": self.mode.value,
            "loads": self.loads,
            "renders": self.renders,
            "interactive": self.interactive,
            "error_count": self.error_count,
            "errors": self.errors,
            "survival_seconds": self.survival_seconds,
            "oversized_files": self.oversized_files,
            "check_error": self.check_error,
        }


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def iter_source_files(root: Path) -> list[Path]:
    """All source files under ``root``, skipping vendored and generated dirs."""
    found = []
    for path in sorted(root.rglob("*")):
        if any(part in IGNORED_DIRS for part in path.relative_to(root).parts[:-1]):
            continue
        if path.is_file() and path.suffix in SOURCE_FILE_EXTENSIONS:
            found.append(path)
    return found


def scan_oversized_files(root: Path, threshold: int) -> dict[str, int]:
    """
    Find source files longer than ``threshold`` lines.

    Args:
        root: Project directory
        threshold: Line count above which a file is reported

    Returns:
        Mapping of relative path to line count, largest first
    """
    oversized: dict[str, int] = {}
    for path in iter_source_files(root):
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                line_count = sum(1 for _ in f)
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            continue
        if line_count > threshold:
            oversized[str(path.relative_to(root))] = line_count
    return dict(sorted(oversized.items(), key=lambda item: item[1], reverse=True))


def check_python_file(path: Path) -> str | None:
    """Compile a Python file without running it. Returns an error or None."""
    try:
        source = path.read_text(encoding="utf-8")
        compile(source, str(path), "exec")
    except SyntaxError as e:
        return f"{path.name}:{e.lineno}: {e.msg}"
    except (ValueError, UnicodeDecodeError) as e:
        return f"{path.name}: {e}"
    return None


def check_json_file(path: Path) -> str | None:
    """Parse a JSON file. Returns an error or None."""
    try:
        json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return f"{path.name}: invalid JSON ({e})"
    return None


def check_javascript_file(path: Path, node: str) -> str | None:
    """Syntax-check a JavaScript file with ``node --check``."""
    try:
        result = subprocess.run(
            [node, "--check", str(path)],
            capture_output=True,
            text=True,
            timeout=NODE_CHECK_TIMEOUT,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return f"{path.name}: syntax check timed out"
    if result.returncode != 0:
        first_error = next(
            (line for line in result.stderr.splitlines() if "Error" in line),
            result.stderr.strip()[:200],
        )
        return f"{path.name}: {first_error}"
    return None


def run_static_checks(root: Path) -> list[str]:
    """
    Run syntax checks over every checkable file in ``root``.

    Python files are compiled, JSON files parsed, and JavaScript files
    checked with ``node --check`` when node is installed.

    Returns:
        One message per failing file
    """
    node = shutil.which("node")
    failures = []

    for path in iter_source_files(root):
        error = None
        if path.suffix == ".py":
            error = check_python_file(path)
        elif path.suffix in (".js", ".mjs") and node:
            error = check_javascript_file(path, node)
        if error:
            failures.append(error)

    for path in sorted(root.glob("*.json")):
        error = check_json_file(path)
        if error:
            failures.append(error)

    return failures


def find_entry_file(root: Path) -> Path | None:
    """The HTML entry point: index.html, else the first HTML file at the root."""
    index = root / "index.html"
    if index.is_file():
        return index
    html_files = sorted(p for p in root.glob("*.html") if p.name != "test.html")
    return html_files[0] if html_files else None


class HealthChecker:
    """Runs the right kind of health check for a project type."""

    def __init__(
        self,
        settings: HealthSettings | None = None,
        driver: PlaywrightDriver | None = None,
        tracing: TracingManager | None = None,
    ) -> None:
        self.settings = settings or HealthSettings()
        self.driver = driver
        self.tracing = tracing or TracingManager()

    def _browser_available(self) -> bool:
        return self.driver is not None and self.driver.is_available()

    def mode_for(self, project_type: ProjectType) -> CheckMode:
        """Browser probing for browser artifacts when a browser exists, else static."""
        if project_type.is_browser and self._browser_available():
            return CheckMode.BROWSER
        return CheckMode.STATIC

    def can_check(self, project_type: ProjectType) -> bool:
        """Whether a meaningful check can run for this artifact type right now."""
        if not project_type.is_browser:
            return True
        return self._browser_available() or self.settings.static_fallback

    def check(self, output_dir: Path, project_type: ProjectType) -> HealthReport:
        """
        Check the artifact in ``output_dir``.

        Never raises: a crash inside the check itself becomes a FAIL report.

        Args:
            output_dir: Project directory
            project_type: Decides between browser and static checks

        Returns:
            HealthReport for the current state
        """
        mode = self.mode_for(project_type)
        with self.tracing.span("health_check", mode=mode.value) as span:
            try:
                if mode == CheckMode.BROWSER:
                    report = self._check_browser(output_dir)
                else:
                    report = self._check_static(output_dir)
            except Exception as e:
                logger.exception("Health check crashed")
                report = HealthReport(mode=mode, check_error=f"{type(e).__name__}: {e}")

            try:
                report.oversized_files = scan_oversized_files(
                    output_dir, self.settings.oversized_lines
                )
            except OSError as e:
                logger.warning("Oversized-file scan failed: %s", e)

            span.set_attribute("health.status", report.status.value)
            span.set_attribute("health.error_count", report.error_count)
        return report

    def _check_browser(self, output_dir: Path) -> HealthReport:
        entry = find_entry_file(output_dir)
        if entry is None:
            return HealthReport(
                mode=CheckMode.BROWSER,
                loads=False,
                errors=["No HTML entry file found at the project root"],
                error_count=1,
            )
        if self.driver is None:
            raise RuntimeError("browser health check needs a browser driver")
        probe: ProbeResult = self.driver.render_and_probe(
            entry,
            Viewport(*HEALTH_VIEWPORT),
            load_timeout=self.settings.load_timeout,
            survival_seconds=self.settings.survival_seconds,
            max_errors=HEALTH_MAX_ERRORS,
        )
        errors = list(probe.errors)
        if probe.load_error:
            errors.insert(0, f"Load error: {probe.load_error}")
        return HealthReport(
            mode=CheckMode.BROWSER,
            loads=probe.loads,
            renders=probe.renders,
            interactive=probe.interactive,
            error_count=probe.error_count,
            errors=errors[:HEALTH_MAX_ERRORS],
            survival_seconds=probe.survival_seconds,
        )

    def _check_static(self, output_dir: Path) -> HealthReport:
        failures = run_static_checks(output_dir)
        return HealthReport(
            mode=CheckMode.STATIC,
            loads=True,
            renders=True,
            interactive=True,
            error_count=len(failures),
            errors=failures[:HEALTH_MAX_ERRORS],
        )

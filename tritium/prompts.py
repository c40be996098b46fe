"""Prompt assembly for every phase.

Each prompt is a shared context block (guidance pointer, goal and maturity,
health, oversized files, recent history) followed by a phase-specific task.
Task templates use ``{name}`` placeholders that are filled in one pass, so a
value that itself contains braces is inserted verbatim and never re-expanded.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import GUIDANCE_FILE_NAME, HISTORY_LIMIT
from .health import HealthReport, HealthStatus
from .phases import TIER_GUIDANCE, Phase, maturity_tier
from .project_type import PROJECT_TYPE_REQUIREMENTS, ProjectType
from .session import CycleRecord


_PLACEHOLDER = re.compile(r"\{([a-z_]+)\}")

CONFIDENCE_INSTRUCTION = (
    "When you are done, end your reply with one line of the form\n"
    "CONFIDENCE: N\n"
    "where N is 0-10: how sure you are that the project now works and looks right."
)


def render_template(template: str, values: dict[str, Any]) -> str:
    """Fill ``{name}`` placeholders in a single pass.

    Unknown placeholders are left as-is. Substituted values are not scanned
    again, so braces inside them survive untouched.

    Args:
        template: Template text
        values: Placeholder values

    Returns:
        Rendered text
    """

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in values:
            return str(values[key])
        return match.group(0)

    return _PLACEHOLDER.sub(substitute, template)


@dataclass
class PromptContext:
    """Everything a prompt needs to know about the run."""

    description: str
    output_dir: Path
    project_name: str
    project_type: ProjectType
    cycle: int = 0
    health: HealthReport | None = None
    history: list[CycleRecord] = field(default_factory=list)
    vision_feedback: str = ""
    tool_root: Path | None = None

    @property
    def harness_path(self) -> Path | None:
        """Shared browser test harness shipped with this tool, if present."""
        if self.tool_root is None:
            return None
        path = self.tool_root / "lib" / "test-harness.js"
        return path if path.is_file() else None


def find_guidance_file(output_dir: Path) -> Path | None:
    """Project guidance doc in the output dir or its parent."""
    for candidate in (output_dir / GUIDANCE_FILE_NAME, output_dir.parent / GUIDANCE_FILE_NAME):
        if candidate.is_file():
            return candidate
    return None


def build_context(ctx: PromptContext) -> str:
    """
    Shared context block prepended to every phase prompt.

    Sections, in order: guidance pointer, goal and maturity, current health,
    oversized-file warnings, recent cycle history.
    """
    sections = []

    guidance = find_guidance_file(ctx.output_dir)
    if guidance is not None:
        sections.append(f"IMPORTANT: Read {guidance} first for project context.")

    tier = maturity_tier(max(ctx.cycle, 1))
    sections.append(
        f"PROJECT GOAL: {ctx.description}\n"
        f"PROJECT TYPE: {ctx.project_type.value}\n"
        f"MATURITY: cycle {ctx.cycle} ({tier.value}). {TIER_GUIDANCE[tier]}"
    )

    if ctx.health is not None:
        sections.append(f"CURRENT HEALTH:\n{ctx.health.details()}")

    if ctx.health is not None and ctx.health.oversized_files:
        listing = "\n".join(
            f"  - {path}: {lines} lines" for path, lines in ctx.health.oversized_files.items()
        )
        sections.append(
            "OVERSIZED FILES (candidates for splitting into smaller modules):\n" + listing
        )

    if ctx.history:
        lines = "\n".join(r.history_line() for r in ctx.history[-HISTORY_LIMIT:])
        sections.append(
            "PREVIOUS ITERATIONS (what you already did - do NOT repeat, build on this):\n"
            + lines
        )

    return "\n\n".join(sections)


def primary_failure(health: HealthReport | None) -> str:
    """The single most severe failing signal, phrased as the bug to fix."""
    if health is None:
        return "The project state is unknown. Check that it runs at all."

    status, reason = health.verdict
    first_error = health.errors[0] if health.errors else None

    if health.check_error is not None:
        return (
            "The health check itself crashed while loading the project "
            f"({health.check_error}). Make sure the entry point opens cleanly."
        )
    if status == HealthStatus.PASS:
        return "No failing health signal. Look for bugs a user would hit first."
    if reason == "failed to load":
        detail = f": {first_error}" if first_error else ""
        return f"The project fails to load{detail}. Nothing else matters until it loads."
    if reason == "blank render":
        return (
            "The page loads but renders nothing visible. Find why the DOM or "
            "canvas stays empty."
        )
    if reason.startswith("crashed early"):
        return f"The page {reason}. Find what kills it shortly after load."
    if first_error:
        return f"{reason.capitalize()}. Start with: {first_error}"
    return f"{reason.capitalize()}."


def describe_test_artifacts(output_dir: Path) -> str:
    """Which kinds of tests already exist in the project."""
    found = []
    if (output_dir / "test.html").is_file():
        found.append("A test.html file exists (browser test harness).")
    if (output_dir / "package.json").is_file():
        found.append("A package.json exists - check it for test scripts.")
    python_tests = (
        list(output_dir.glob("*test*.py"))
        + list(output_dir.glob("test_*.py"))
        + list(output_dir.glob("tests/*.py"))
    )
    if python_tests:
        found.append("Python test files found.")
    return " ".join(found) or "No tests exist yet."


GENERATE_TEMPLATE = """Build this project from scratch:

{description}

Write all files to: {output_dir}

Requirements:
- Create a complete, working implementation
- No external dependencies and no CDN links unless the project type needs them
- Make it polished from the start (clean design, clear structure)
{requirements}

Write ALL files now. Make sure the project works immediately."""

PHASE_TEMPLATES: dict[Phase, str] = {
    Phase.FIX: """You are iterating on a project in {output_dir}.

Read ALL source files in {output_dir} to understand the current state.

MOST SEVERE PROBLEM: {primary_failure}

YOUR JOB: fix that problem first, then anything else that is broken.

1. Trace the failure to its root cause in the code
2. Check input handling, state transitions and startup order
3. Check for errors that would show in the console or terminal
4. FIX every bug you find - don't just list them

Write fixes directly to the files in {output_dir}.{vision_section}

List every bug you found and how you fixed it.""",
    Phase.IMPROVE: """You are iterating on a project in {output_dir}.

Read ALL source files. The project should already work. Now improve it:

1. Make the core experience feel complete and responsive
2. Add visual polish: smooth transitions, clear hierarchy, good contrast
3. Add clear feedback for every user action
4. Handle empty, loading and error states
5. Persist user data where it makes sense

Project requirements:
{requirements}

Write all changes to {output_dir}.

List every improvement you made.""",
    Phase.FEATURES: """You are adding features to a project in {output_dir}.

Read ALL source files. The project should be stable. Now add NEW FEATURES:

Think about what would make this project significantly better and add 2-3
meaningful features. Keep everything that already works working.

Write all changes to {output_dir}.

Describe each new feature and why it improves the project.""",
    Phase.TEST: """You are testing a project in {output_dir}.

Read ALL source files. Create or update the project's tests.
{harness_hint}
Cover:
- Initialization (no crash on start)
- State management (all states reachable)
- Core data and scoring logic
- Input handling setup
- Rendering or output pipeline

Also fix any bugs you discover while writing the tests.

Write all files to {output_dir}.

List every test and what it verifies.""",
    Phase.RUNTESTS: """You are running tests for a project in {output_dir}.

{test_artifacts}

YOUR JOB: actually EXECUTE the tests and fix what's broken.

1. If Python tests exist, run them: cd {output_dir} && python3 -m pytest
2. If package.json has test scripts, run: cd {output_dir} && npm test
3. If test.html exists, read it to understand what is tested and check it in a headless browser
4. If no tests exist yet, CREATE them first
5. Compile-check every Python file and read JS/HTML carefully for syntax errors

For ANY test failure: read the error, find the root cause, FIX it, re-run.

Write all fixes to {output_dir}.

Report: which tests passed, which failed, what you fixed.""",
    Phase.POLISH: """Polish pass on the project in {output_dir}.

Read ALL source files. Walk through the project as a first-time user:

1. What do you see first? Is it obvious what to do?
2. Go through every screen or command. Where would a new user get stuck?
3. Are there remaining bugs? Fix them.
4. Does the design look professional? Improve spacing, fonts, colors.
5. Are transitions smooth and messages clear?
6. Add any missing finishing touches.

Write all changes to {output_dir}.

Rate the project 1-10 and explain what would bring it to a 10.""",
    Phase.REFACTOR: """Refactor the project in {output_dir}.

These files are too large to maintain:
{oversized_files}

Split them into smaller, focused modules with clear responsibilities.
Behavior must not change: everything that works now must still work.
Update imports and script tags everywhere the moved code is used.

Write all changes to {output_dir}.

List every file you split and where each part went.""",
    Phase.CONSOLIDATE: """Consolidation pass on the project in {output_dir}.

Read ALL source files. The project is mature. Make it smaller and sturdier:

1. Remove dead code, duplicate helpers and unused assets
2. Merge near-duplicate logic into shared functions
3. Make naming consistent across files
4. Keep behavior identical

Write all changes to {output_dir}.

List what you removed or merged.""",
    Phase.DOCS: """Documentation pass on the project in {output_dir}.

Read ALL source files. Then write or update:

1. README.md: what it is, how to run it, how to use it, controls or commands
2. docs/ with an architecture overview: files, responsibilities, data flow
3. Short comments on non-obvious code paths

Write all files to {output_dir}.

List every document you created or changed.""",
}


def _template_values(ctx: PromptContext) -> dict[str, Any]:
    health = ctx.health
    oversized = health.oversized_files if health is not None else {}
    harness = ctx.harness_path
    harness_hint = (
        f"\nUse the shared test harness at {harness} for browser tests "
        "(read it first to learn its API).\n"
        if harness is not None and ctx.project_type.is_browser
        else ""
    )
    vision_section = (
        "\n\nVISION MODEL REVIEW (from screenshots of the current state):\n"
        f"{ctx.vision_feedback}\n\nFix every issue the vision model identified."
        if ctx.vision_feedback
        else ""
    )
    return {
        "description": ctx.description,
        "output_dir": ctx.output_dir,
        "project_name": ctx.project_name,
        "requirements": PROJECT_TYPE_REQUIREMENTS[ctx.project_type],
        "primary_failure": primary_failure(health),
        "vision_section": vision_section,
        "harness_hint": harness_hint,
        "test_artifacts": describe_test_artifacts(ctx.output_dir),
        "oversized_files": "\n".join(
            f"  - {path}: {lines} lines" for path, lines in oversized.items()
        )
        or "  (none reported)",
    }


def build_prompt(phase: Phase, ctx: PromptContext) -> str:
    """Full prompt for ``phase``: context, task, confidence request."""
    task = render_template(PHASE_TEMPLATES[phase], _template_values(ctx))
    return f"{build_context(ctx)}\n\n{task}\n\n{CONFIDENCE_INSTRUCTION}"


def build_generate_prompt(ctx: PromptContext) -> str:
    """Prompt for the initial from-scratch build."""
    guidance = find_guidance_file(ctx.output_dir)
    prefix = f"IMPORTANT: Read {guidance} first for project context.\n\n" if guidance else ""
    task = render_template(GENERATE_TEMPLATE, _template_values(ctx))
    return f"{prefix}{task}\n\n{CONFIDENCE_INSTRUCTION}"

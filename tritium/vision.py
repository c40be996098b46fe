"""Vision gate: multi-resolution screenshot review.

The gate swaps the coding model out for the vision model, drives the
artifact through its UI states at five viewport sizes, asks the vision
model to critique every screenshot, and folds the critiques into one
feedback block for a single follow-up fix pass.
"""

import logging
import shutil
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from playwright.sync_api import Error as PlaywrightError

from .browser import (
    CAPTURE_TIMEOUT_SECONDS,
    BrowserProcessError,
    PlaywrightDriver,
    Screenshot,
    Viewport,
)
from .config import (
    MODEL_SWAP_PAUSE_SECONDS,
    SCREENSHOTS_DIR_NAME,
    VISION_MIN_REMAINING_SECONDS,
    VISION_STEP_MIN_SECONDS,
    VisionSettings,
)
from .health import find_entry_file
from .model_runtime import OllamaRuntime
from .tracing import TracingManager


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """A labeled viewport the gate reviews."""

    label: str
    width: int
    height: int

    @property
    def viewport(self) -> Viewport:
        return Viewport(self.width, self.height)


VISION_RESOLUTIONS: tuple[Resolution, ...] = (
    Resolution("desktop-1080p", 1920, 1080),
    Resolution("desktop-720p", 1280, 720),
    Resolution("tablet-portrait", 768, 1024),
    Resolution("mobile-iphone", 375, 812),
    Resolution("ultrawide", 2560, 1440),
)

# UI states kept in the project's screenshots/ directory, one each per resolution
CURATED_STATES = ("01_initial_load", "05_during_gameplay", "08_pause_attempt", "15_final_state")

CRITIQUE_PROMPT = """Screenshot: {name} at {width}x{height} ({label}).
Project: {description}

You are a BRUTAL QA tester and design critic. Your job is to find EVERY flaw.

1. WHAT STATE IS THIS? (menu, gameplay, pause, game over, settings, broken?)
2. LAYOUT BUGS: Anything overflow, overlap, cut off, or misaligned?
3. TEXT: Can you read everything? Font size ok? Contrast ok?
4. VISUAL QUALITY (1-10, harsh): Does this look professional or amateur?
5. MISSING ELEMENTS: What should be on screen that isn't? (HUD, score, controls hint?)
6. RENDERING BUGS: Anything look glitched, torn, or incorrectly drawn?
7. RESPONSIVENESS: Does the layout work at {width}x{height} or is it clearly wrong for this size?{console_section}

List EVERY problem. Be merciless. If you would be embarrassed to show this to a user, say so and say why."""

CONSOLE_SECTION = """

CONSOLE ERRORS DETECTED:
{errors}
These are JavaScript errors in the browser console. Every one is a bug."""

FEEDBACK_FOOTER = (
    "EVERY issue above must be fixed. The project must look professional at ALL "
    "resolutions and in ALL states (menu, gameplay, pause, game over). Console "
    "errors are BUGS that must be fixed."
)


@dataclass
class Critique:
    """The vision model's review of one screenshot."""

    resolution: str
    state: str
    width: int
    height: int
    text: str


@dataclass
class VisionFeedback:
    """Aggregated output of one vision gate run."""

    critiques: list[Critique] = field(default_factory=list)
    console_errors: dict[str, list[str]] = field(default_factory=dict)
    screenshot_count: int = 0
    viewport_count: int = len(VISION_RESOLUTIONS)

    def __bool__(self) -> bool:
        return bool(self.critiques)

    def render(self) -> str:
        """Single text block handed to the fix pass; empty without critiques."""
        if not self.critiques:
            return ""

        blocks = [
            f"--- {c.resolution}_{c.state} ({c.width}x{c.height}) ---\n{c.text}"
            for c in self.critiques
        ]
        for label, errors in self.console_errors.items():
            if errors:
                blocks.append(
                    f"--- console errors at {label} ---\n" + "\n".join(errors)
                )

        header = (
            f"MULTI-RESOLUTION VISION REVIEW ({self.screenshot_count} screenshots "
            f"across {self.viewport_count} viewports, {len(self.critiques)} reviewed):"
        )
        return header + "\n\n" + "\n\n".join(blocks) + "\n\n" + FEEDBACK_FOOTER


def build_critique_prompt(
    shot: Screenshot, description: str, console_errors: list[str]
) -> str:
    """Critique prompt for one screenshot, with that resolution's console errors."""
    console_section = (
        CONSOLE_SECTION.format(errors="\n".join(console_errors)) if console_errors else ""
    )
    return CRITIQUE_PROMPT.format(
        name=f"{shot.resolution}_{shot.state}",
        width=shot.width,
        height=shot.height,
        label=shot.resolution,
        description=description,
        console_section=console_section,
    )


class VisionGate:
    """Runs the screenshot-and-critique review for a browser artifact."""

    def __init__(
        self,
        settings: VisionSettings,
        runtime: OllamaRuntime,
        driver: PlaywrightDriver,
        coder_model: str,
        description: str,
        tracing: TracingManager | None = None,
        resolutions: tuple[Resolution, ...] = VISION_RESOLUTIONS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.runtime = runtime
        self.driver = driver
        self.coder_model = coder_model
        self.description = description
        self.tracing = tracing or TracingManager()
        self.resolutions = resolutions
        self._sleep = sleep

    def should_run(self, output_dir: Path, time_remaining: float) -> bool:
        """Whether the gate is enabled, has time, and has something to look at."""
        return (
            self.settings.enabled
            and time_remaining > VISION_MIN_REMAINING_SECONDS
            and find_entry_file(output_dir) is not None
        )

    def run(
        self, output_dir: Path, time_remaining: Callable[[], float]
    ) -> VisionFeedback | None:
        """
        Capture, critique and aggregate.

        Each critique's timeout is clamped to what is left of the run budget,
        and capturing or reviewing stops once less than
        ``VISION_STEP_MIN_SECONDS`` remain.

        Args:
            output_dir: Project directory
            time_remaining: Returns the seconds left in the run budget

        Returns:
            VisionFeedback, or None when the gate is skipped or nothing was captured
        """
        if not self.should_run(output_dir, time_remaining()):
            return None
        entry = find_entry_file(output_dir)
        if entry is None:
            return None

        print("👁️ VISION GATE: multi-resolution review starting")
        with self.tracing.span("vision_gate") as span:
            self.runtime.unload(self.coder_model)
            self._sleep(MODEL_SWAP_PAUSE_SECONDS)

            with tempfile.TemporaryDirectory(prefix="tritium-vision-") as tmp:
                work_dir = Path(tmp)
                shots, console_errors = self._capture_all(entry, work_dir, time_remaining)
                span.set_attribute("vision.screenshots", len(shots))

                if not shots:
                    print("👁️ VISION GATE: no screenshots captured, skipping")
                    return None

                print(f"👁️ VISION GATE: {len(shots)} screenshots across all resolutions")
                try:
                    critiques = self._review_all(shots, console_errors, time_remaining)
                finally:
                    self.runtime.unload(self.settings.model)
                    self._sleep(MODEL_SWAP_PAUSE_SECONDS)

                self._persist_curated(shots, output_dir / SCREENSHOTS_DIR_NAME)

            feedback = VisionFeedback(
                critiques=critiques,
                console_errors=console_errors,
                screenshot_count=len(shots),
                viewport_count=len(self.resolutions),
            )
            span.set_attribute("vision.reviewed", len(critiques))

        if feedback:
            print(f"👁️ VISION GATE complete: {len(critiques)} reviews")
        else:
            print("👁️ VISION GATE complete: no feedback received")
        return feedback

    def _capture_all(
        self, entry: Path, work_dir: Path, time_remaining: Callable[[], float]
    ) -> tuple[list[Screenshot], dict[str, list[str]]]:
        shots: list[Screenshot] = []
        console_errors: dict[str, list[str]] = {}

        for res in self.resolutions:
            if time_remaining() < VISION_STEP_MIN_SECONDS:
                print(f"📸 SCREENSHOT out of time, skipping {res.label} and later resolutions")
                break
            print(f"📸 SCREENSHOT capturing {res.label} ({res.width}x{res.height})")
            try:
                result = self.driver.capture_interaction_screenshots(
                    entry,
                    res.viewport,
                    res.label,
                    work_dir,
                    self.settings.max_screenshots,
                    timeout=min(CAPTURE_TIMEOUT_SECONDS, time_remaining()),
                )
                shots.extend(result.screenshots)
                if result.console_errors:
                    console_errors[res.label] = result.console_errors
                print(f"📸 SCREENSHOT {res.label}: {len(result.screenshots)} captured")
                if result.screenshots:
                    continue
            except (PlaywrightError, BrowserProcessError, OSError) as e:
                logger.info("Interactive capture failed at %s: %s", res.label, e)

            fallback = work_dir / f"{res.label}_01_initial_load.png"
            if self.driver.capture_simple_screenshot(entry, res.viewport, fallback):
                shots.append(
                    Screenshot(res.label, "01_initial_load", fallback, res.width, res.height)
                )
                print(f"📸 SCREENSHOT {res.label}: 1 screenshot (simple fallback)")
            else:
                print(f"📸 SCREENSHOT {res.label}: FAILED")

        return shots, console_errors

    def _review_all(
        self,
        shots: list[Screenshot],
        console_errors: dict[str, list[str]],
        time_remaining: Callable[[], float],
    ) -> list[Critique]:
        self.runtime.load(self.settings.model)
        critiques = []
        for index, shot in enumerate(shots):
            timeout = min(self.settings.review_timeout, time_remaining())
            if timeout < VISION_STEP_MIN_SECONDS:
                print(f"👁️ VISION out of time, {len(shots) - index} screenshots not reviewed")
                break
            print(f"👁️ VISION reviewing {shot.resolution}_{shot.state}")
            prompt = build_critique_prompt(
                shot, self.description, console_errors.get(shot.resolution, [])
            )
            text = self.runtime.chat_with_image(
                self.settings.model, prompt, shot.path, timeout
            )
            if text:
                critiques.append(
                    Critique(shot.resolution, shot.state, shot.width, shot.height, text)
                )
        return critiques

    def _persist_curated(self, shots: list[Screenshot], dest: Path) -> None:
        curated = [s for s in shots if s.state in CURATED_STATES and s.path.exists()]
        if not curated:
            return
        try:
            dest.mkdir(parents=True, exist_ok=True)
            for shot in curated:
                shutil.copy2(shot.path, dest / f"{shot.resolution}_{shot.state}.png")
        except OSError as e:
            logger.warning("Could not persist screenshots: %s", e)

"""Tests for tritium/vision.py - the multi-resolution vision gate."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from playwright.sync_api import Error as PlaywrightError

from conftest import FakeClock
from tritium.browser import (
    BrowserProcessError,
    CaptureResult,
    PlaywrightDriver,
    Screenshot,
    Viewport,
)
from tritium.config import VisionSettings
from tritium.model_runtime import OllamaRuntime
from tritium.vision import (
    VISION_RESOLUTIONS,
    Critique,
    Resolution,
    VisionFeedback,
    VisionGate,
    build_critique_prompt,
)


def _fake_capture(
    entry: Path,
    viewport: Viewport,
    label: str,
    out_dir: Path,
    max_count: int,
    timeout: float = 180,
) -> CaptureResult:
    """Write two PNG files and report them, as the real driver would."""
    shots = []
    for state in ("01_initial_load", "05_during_gameplay"):
        path = out_dir / f"{label}_{state}.png"
        path.write_bytes(b"\x89PNG fake")
        shots.append(Screenshot(label, state, path, viewport.width, viewport.height))
    return CaptureResult(screenshots=shots, console_errors=[])


@pytest.fixture
def driver() -> MagicMock:
    """Browser driver double that captures two screenshots per resolution."""
    mock = MagicMock(spec=PlaywrightDriver)
    mock.capture_interaction_screenshots.side_effect = _fake_capture
    mock.capture_simple_screenshot.return_value = False
    return mock


@pytest.fixture
def runtime() -> MagicMock:
    """Model runtime double whose vision model always has something to say."""
    mock = MagicMock(spec=OllamaRuntime)
    mock.chat_with_image.return_value = "Score text is cut off at the right edge."
    return mock


TWO_RESOLUTIONS = (
    Resolution("desktop-720p", 1280, 720),
    Resolution("mobile-iphone", 375, 812),
)


def _gate(runtime: MagicMock, driver: MagicMock, **kwargs) -> VisionGate:
    return VisionGate(
        VisionSettings(),
        runtime,
        driver,
        coder_model="qwen3-coder-next",
        description="Build a Tetris clone",
        resolutions=kwargs.pop("resolutions", TWO_RESOLUTIONS),
        sleep=lambda _: None,
        **kwargs,
    )


class TestResolutions:
    """Tests for the viewport list."""

    def test_five_resolutions(self) -> None:
        """Desktop, laptop, tablet, mobile and ultrawide are reviewed."""
        labels = [r.label for r in VISION_RESOLUTIONS]
        assert labels == [
            "desktop-1080p",
            "desktop-720p",
            "tablet-portrait",
            "mobile-iphone",
            "ultrawide",
        ]
        assert VISION_RESOLUTIONS[3].viewport == Viewport(375, 812)


class TestVisionFeedback:
    """Tests for VisionFeedback rendering."""

    def test_empty_feedback_is_falsy(self) -> None:
        """Feedback without critiques is falsy and renders nothing."""
        feedback = VisionFeedback(screenshot_count=3)
        assert not feedback
        assert feedback.render() == ""

    def test_render_tags_resolution_and_state(self) -> None:
        """Each critique is tagged with resolution, state and size."""
        feedback = VisionFeedback(
            critiques=[Critique("mobile-iphone", "01_initial_load", 375, 812, "Cut off.")],
            console_errors={"mobile-iphone": ["TypeError: ctx is null"]},
            screenshot_count=12,
            viewport_count=5,
        )
        text = feedback.render()
        assert text.startswith("MULTI-RESOLUTION VISION REVIEW (12 screenshots across 5 viewports")
        assert "--- mobile-iphone_01_initial_load (375x812) ---\nCut off." in text
        assert "TypeError: ctx is null" in text
        assert text.rstrip().endswith("must be fixed.")


class TestBuildCritiquePrompt:
    """Tests for the per-screenshot critique prompt."""

    def test_includes_console_errors(self, temp_dir: Path) -> None:
        """Console errors at that resolution are appended."""
        shot = Screenshot("ultrawide", "08_pause_attempt", temp_dir / "x.png", 2560, 1440)
        prompt = build_critique_prompt(shot, "Pong", ["ReferenceError: ball"])
        assert "Screenshot: ultrawide_08_pause_attempt at 2560x1440 (ultrawide)." in prompt
        assert "CONSOLE ERRORS DETECTED:\nReferenceError: ball" in prompt

    def test_without_console_errors(self, temp_dir: Path) -> None:
        """No console section without errors."""
        shot = Screenshot("ultrawide", "01_initial_load", temp_dir / "x.png", 2560, 1440)
        assert "CONSOLE ERRORS" not in build_critique_prompt(shot, "Pong", [])


class TestVisionGate:
    """Tests for VisionGate.run."""

    def test_skipped_when_disabled(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """A disabled gate does nothing."""
        gate = _gate(runtime, driver)
        gate.settings.enabled = False
        assert gate.run(web_project, lambda: 3600) is None
        driver.capture_interaction_screenshots.assert_not_called()

    def test_skipped_when_short_on_time(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """Ten minutes or less remaining skips the gate."""
        assert _gate(runtime, driver).run(web_project, lambda: 600) is None
        runtime.unload.assert_not_called()

    def test_skipped_without_entry_file(
        self, runtime: MagicMock, driver: MagicMock, temp_dir: Path
    ) -> None:
        """No HTML entry point means nothing to look at."""
        assert _gate(runtime, driver).run(temp_dir, lambda: 3600) is None

    def test_reviews_every_screenshot(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """Every capture is critiqued and aggregated."""
        feedback = _gate(runtime, driver).run(web_project, lambda: 3600)

        assert feedback is not None
        assert feedback.screenshot_count == 4
        assert len(feedback.critiques) == 4
        assert runtime.chat_with_image.call_count == 4
        assert "--- desktop-720p_05_during_gameplay (1280x720) ---" in feedback.render()

    def test_swaps_models(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """The coder is unloaded first and the vision model unloaded at the end."""
        _gate(runtime, driver).run(web_project, lambda: 3600)

        assert runtime.unload.call_args_list[0][0][0] == "qwen3-coder-next"
        runtime.load.assert_called_once_with(VisionSettings().model)
        assert runtime.unload.call_args_list[-1][0][0] == VisionSettings().model

    def test_vision_model_unloaded_on_review_failure(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """The vision model is released even if reviewing blows up."""
        runtime.chat_with_image.side_effect = RuntimeError("GPU fell over")
        with pytest.raises(RuntimeError):
            _gate(runtime, driver).run(web_project, lambda: 3600)
        assert runtime.unload.call_args_list[-1][0][0] == VisionSettings().model

    def test_zero_screenshots_returns_none(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """When nothing can be captured the gate returns no feedback."""
        driver.capture_interaction_screenshots.side_effect = None
        driver.capture_interaction_screenshots.return_value = CaptureResult()

        assert _gate(runtime, driver).run(web_project, lambda: 3600) is None
        runtime.chat_with_image.assert_not_called()

    def test_empty_critiques_are_dropped(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """Empty vision answers do not become critiques."""
        runtime.chat_with_image.return_value = ""
        feedback = _gate(runtime, driver).run(web_project, lambda: 3600)
        assert feedback is not None
        assert not feedback
        assert feedback.screenshot_count == 4

    def test_simple_screenshot_fallback(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """A resolution whose scripted capture fails gets one simple screenshot."""
        driver.capture_interaction_screenshots.side_effect = PlaywrightError("crashed")

        def simple(entry: Path, viewport: Viewport, path: Path) -> bool:
            path.write_bytes(b"\x89PNG fake")
            return True

        driver.capture_simple_screenshot.side_effect = simple

        feedback = _gate(runtime, driver).run(web_project, lambda: 3600)

        assert feedback is not None
        assert feedback.screenshot_count == 2
        assert {c.state for c in feedback.critiques} == {"01_initial_load"}

    def test_console_errors_reach_prompt(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """Console errors captured at a resolution appear in its critique prompts."""

        def capture_with_errors(*args, **kwargs) -> CaptureResult:
            result = _fake_capture(*args, **kwargs)
            result.console_errors = ["Uncaught: TypeError: piece is undefined"]
            return result

        driver.capture_interaction_screenshots.side_effect = capture_with_errors
        _gate(runtime, driver).run(web_project, lambda: 3600)

        prompt = runtime.chat_with_image.call_args_list[0][0][1]
        assert "Uncaught: TypeError: piece is undefined" in prompt

    def test_curated_screenshots_persisted(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """Curated states are copied into the project's screenshots directory."""
        _gate(runtime, driver).run(web_project, lambda: 3600)

        kept = sorted(p.name for p in (web_project / "screenshots").iterdir())
        assert kept == [
            "desktop-720p_01_initial_load.png",
            "desktop-720p_05_during_gameplay.png",
            "mobile-iphone_01_initial_load.png",
            "mobile-iphone_05_during_gameplay.png",
        ]


class TestVisionGateBudget:
    """Tests for how the gate spends the remaining run budget."""

    @staticmethod
    def _many_shots(
        entry: Path,
        viewport: Viewport,
        label: str,
        out_dir: Path,
        max_count: int,
        timeout: float = 180,
    ) -> CaptureResult:
        shots = []
        for i in range(max_count):
            path = out_dir / f"{label}_{i:02d}_state.png"
            path.write_bytes(b"\x89PNG fake")
            shots.append(Screenshot(label, f"{i:02d}_state", path, viewport.width, viewport.height))
        return CaptureResult(screenshots=shots)

    def test_critique_timeouts_fit_remaining_budget(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path, fake_clock: FakeClock
    ) -> None:
        """Critiques that each run to their timeout never outlast the budget."""
        start = fake_clock()
        timeouts: list[float] = []

        def slow_review(model: str, prompt: str, path: Path, timeout: float) -> str:
            timeouts.append(timeout)
            fake_clock.advance(timeout)
            return "Everything overlaps."

        driver.capture_interaction_screenshots.side_effect = self._many_shots
        runtime.chat_with_image.side_effect = slow_review

        feedback = _gate(runtime, driver, resolutions=VISION_RESOLUTIONS).run(
            web_project, lambda: 601 - (fake_clock() - start)
        )

        assert driver.capture_interaction_screenshots.call_count == 5
        assert feedback is not None
        assert feedback.screenshot_count == 125
        assert timeouts == [180, 180, 180, 61]
        assert sum(timeouts) <= 601
        assert runtime.unload.call_args_list[-1][0][0] == VisionSettings().model

    def test_capture_stops_when_budget_runs_out(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path, fake_clock: FakeClock
    ) -> None:
        """Later resolutions are skipped and nothing is reviewed without time left."""
        start = fake_clock()

        def slow_capture(*args, **kwargs) -> CaptureResult:
            fake_clock.advance(600)
            return _fake_capture(*args, **kwargs)

        driver.capture_interaction_screenshots.side_effect = slow_capture

        feedback = _gate(runtime, driver).run(web_project, lambda: 620 - (fake_clock() - start))

        assert driver.capture_interaction_screenshots.call_count == 1
        runtime.chat_with_image.assert_not_called()
        assert feedback is not None
        assert not feedback
        assert feedback.screenshot_count == 2

    def test_capture_timeout_follows_budget(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """A scripted session never gets more time than the budget has left."""
        _gate(runtime, driver).run(web_project, lambda: 3600)
        assert driver.capture_interaction_screenshots.call_args.kwargs["timeout"] == 180

        driver.reset_mock()
        gate = _gate(runtime, driver)
        gate.should_run = MagicMock(return_value=True)
        gate.run(web_project, lambda: 95)
        assert driver.capture_interaction_screenshots.call_args.kwargs["timeout"] == 95

    def test_killed_worker_falls_back_to_simple_screenshot(
        self, runtime: MagicMock, driver: MagicMock, web_project: Path
    ) -> None:
        """A browser worker that dies without screenshots gets the simple fallback."""
        driver.capture_interaction_screenshots.side_effect = BrowserProcessError("exit 1")
        _gate(runtime, driver).run(web_project, lambda: 3600)
        assert driver.capture_simple_screenshot.call_count == 2

"""Headless-browser driver built on Playwright.

Two entry points serve the rest of the loop:

- ``render_and_probe`` loads an artifact once and reports whether it loads,
  draws something, reacts to input, and stays alive.
- ``capture_interaction_screenshots`` walks an artifact through a scripted
  session (start, play, pause, resume, clicks, resize, scroll) and saves a
  screenshot after each step.

Both run the page inside ``tritium.browser_worker``, a child process that is
killed at a deadline. A page frozen in a script loop never answers
``evaluate`` or key presses, so the deadline is the only bound on the call.
The worker reports progress as JSON lines and whatever it wrote before being
killed is still used.
"""

import json
import logging
import random
import shutil
import subprocess
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, sync_playwright

from .config import CANVAS_NONBLANK_THRESHOLD, HEALTH_MAX_ERRORS


logger = logging.getLogger(__name__)

WORKER_MODULE = "tritium.browser_worker"

# Browser start-up plus the fixed waits inside a health probe
PROBE_OVERHEAD_SECONDS = 30
CAPTURE_TIMEOUT_SECONDS = 180

CHROME_BINARIES = ("google-chrome", "chromium-browser", "chromium", "chrome")

START_SELECTORS = (
    "#start",
    "#play",
    "#btn-start",
    "#btn-play",
    "button",
    ".start",
    ".play",
    ".btn-start",
    "[data-action=start]",
    "a.btn",
)
OVERLAY_SELECTORS = (
    ".modal",
    ".overlay",
    ".settings",
    "#settings",
    ".menu",
    "#menu",
    ".dialog",
    "#game-over",
    ".game-over",
    "#gameover",
)
GAME_KEYS = ("ArrowLeft", "ArrowRight", "ArrowDown", "ArrowUp", "a", "d", "w", "s", " ")
PROBE_KEYS = ("Enter", " ", "ArrowLeft", "ArrowRight", "ArrowUp", "ArrowDown")

VISIBLE_ELEMENTS_JS = """
() => {
  if (!document.body) return 0;
  let count = 0;
  for (const el of document.body.querySelectorAll('*')) {
    const r = el.getBoundingClientRect();
    if (r.width > 0 && r.height > 0) count++;
  }
  return count;
}
"""

CANVAS_PIXELS_JS = """
() => {
  let count = 0;
  for (const c of document.querySelectorAll('canvas')) {
    if (!c.width || !c.height) continue;
    try {
      const w = Math.min(c.width, 256), h = Math.min(c.height, 256);
      const probe = document.createElement('canvas');
      probe.width = w; probe.height = h;
      const ctx = probe.getContext('2d');
      ctx.drawImage(c, 0, 0, w, h);
      const data = ctx.getImageData(0, 0, w, h).data;
      for (let i = 0; i < data.length; i += 4) {
        if (data[i] || data[i + 1] || data[i + 2]) count++;
      }
    } catch (e) {}
  }
  return count;
}
"""

DOM_SIGNATURE_JS = """
() => [
  document.body ? document.body.innerText.length : 0,
  document.documentElement ? document.documentElement.outerHTML.length : 0,
]
"""


class BrowserProcessError(Exception):
    """The browser worker exited without producing a result."""


@dataclass(frozen=True)
class Viewport:
    """A browser viewport size."""

    width: int
    height: int

    def as_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass
class ProbeResult:
    """Raw signals from one health probe of a browser artifact.

    ``survival_seconds`` is the time between the page load and the last
    moment the page was seen responding.
    """

    loads: bool
    renders: bool = False
    interactive: bool = False
    errors: list[str] = field(default_factory=list)
    error_count: int = 0
    survival_seconds: float = 0.0
    load_error: str | None = None


@dataclass
class Screenshot:
    """One captured screenshot, labeled by resolution and UI state."""

    resolution: str
    state: str
    path: Path
    width: int
    height: int


@dataclass
class CaptureResult:
    """Screenshots and console errors from one scripted session."""

    screenshots: list[Screenshot] = field(default_factory=list)
    console_errors: list[str] = field(default_factory=list)


@dataclass
class WorkerOutput:
    """Events written by one browser worker run."""

    events: list[dict[str, Any]]
    finished: bool
    returncode: int | None = None
    stderr: str = ""

    def error(self) -> BrowserProcessError:
        last_line = self.stderr.strip().splitlines()[-1:] or ["no output"]
        return BrowserProcessError(
            f"browser worker exited with code {self.returncode}: {last_line[0]}"
        )


def _as_text(output: str | bytes | None) -> str:
    if isinstance(output, bytes):
        return output.decode(errors="replace")
    return output or ""


def parse_events(output: str) -> list[dict[str, Any]]:
    """JSON objects from the worker's stdout, one per line; other lines are skipped."""
    events = []
    for line in output.splitlines():
        try:
            event = json.loads(line)
        except ValueError:
            continue
        if isinstance(event, dict):
            events.append(event)
    return events


def run_worker(args: list[str], timeout: float) -> WorkerOutput:
    """
    Run ``python -m tritium.browser_worker`` with ``args``.

    Args:
        args: Worker command line, starting with "probe" or "capture"
        timeout: Seconds before the worker is killed

    Returns:
        WorkerOutput with every event written, including those written
        before a kill
    """
    command = [sys.executable, "-m", WORKER_MODULE, *args]
    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        logger.info("Browser worker '%s' killed after %.0fs", args[0], timeout)
        return WorkerOutput(parse_events(_as_text(e.stdout)), finished=False)

    return WorkerOutput(
        parse_events(completed.stdout),
        finished=True,
        returncode=completed.returncode,
        stderr=completed.stderr,
    )


def frozen_probe_result(last: ProbeResult | None, limit: float) -> ProbeResult:
    """Result for a probe killed at its deadline, built from its last snapshot."""
    message = f"Page stopped responding, probe killed after {limit:g}s"
    if last is None:
        return ProbeResult(loads=False, load_error=message)
    last.errors.append(message)
    last.error_count += 1
    return last


class _ErrorCollector:
    """Counts every console error but keeps only the first ``limit`` messages."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.messages: list[str] = []
        self.count = 0

    def add(self, message: str) -> None:
        self.count += 1
        if len(self.messages) < self.limit:
            self.messages.append(message)

    def attach(self, page: Page) -> None:
        page.on("console", lambda msg: self.add(msg.text) if msg.type == "error" else None)
        page.on("pageerror", lambda exc: self.add(f"Uncaught: {exc}"))


class PlaywrightDriver:
    """Chromium-based implementation of the browser automation driver."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._clock = clock
        self._rng = rng or random.Random()
        self._available: bool | None = None

    def is_available(self) -> bool:
        """Whether a Playwright-managed Chromium is installed.

        The result is cached for the life of the driver.
        """
        if self._available is None:
            try:
                with sync_playwright() as p:
                    self._available = Path(p.chromium.executable_path).exists()
            except PlaywrightError as e:
                logger.warning("Playwright is not usable: %s", e)
                self._available = False
        return self._available

    def can_screenshot(self) -> bool:
        """Whether any screenshot path works: Playwright or a Chrome binary."""
        return self.is_available() or find_chrome_binary() is not None

    # =========================================================================
    # Health probe
    # =========================================================================

    def render_and_probe(
        self,
        entry_file: Path,
        viewport: Viewport,
        load_timeout: float,
        survival_seconds: float,
        max_errors: int = HEALTH_MAX_ERRORS,
    ) -> ProbeResult:
        """Load ``entry_file`` and measure render, interaction and survival.

        The probe runs in the browser worker, which is killed after
        ``load_timeout + survival_seconds + PROBE_OVERHEAD_SECONDS``. A killed
        probe reports the last state it saw plus a "stopped responding" error.

        Args:
            entry_file: HTML entry point of the artifact
            viewport: Fixed viewport for the probe
            load_timeout: Seconds allowed for the page load
            survival_seconds: Seconds to keep the page alive after probing
            max_errors: Maximum console error messages kept

        Returns:
            ProbeResult with the observed signals

        Raises:
            BrowserProcessError: If the worker exits without any result
        """
        limit = load_timeout + survival_seconds + PROBE_OVERHEAD_SECONDS
        output = run_worker(
            [
                "probe",
                str(entry_file.resolve()),
                "--width", str(viewport.width),
                "--height", str(viewport.height),
                "--load-timeout", str(load_timeout),
                "--survival", str(survival_seconds),
                "--max-errors", str(max_errors),
            ],
            timeout=limit,
        )
        snapshots = [ProbeResult(**event["probe"]) for event in output.events if "probe" in event]

        if not output.finished:
            return frozen_probe_result(snapshots[-1] if snapshots else None, limit)
        if output.returncode != 0 or not snapshots:
            raise output.error()
        return snapshots[-1]

    def probe_page(
        self,
        entry_file: Path,
        viewport: Viewport,
        load_timeout: float,
        survival_seconds: float,
        max_errors: int = HEALTH_MAX_ERRORS,
        progress: Callable[[ProbeResult], None] | None = None,
    ) -> ProbeResult:
        """Run the health probe in this process.

        ``progress`` receives the result so far after the load, after each
        measurement and on every survival poll.
        """
        collector = _ErrorCollector(max_errors)

        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            try:
                page = browser.new_page(viewport=viewport.as_dict())
                collector.attach(page)
                try:
                    page.goto(
                        entry_file.resolve().as_uri(),
                        wait_until="load",
                        timeout=load_timeout * 1000,
                    )
                except PlaywrightError as e:
                    return ProbeResult(
                        loads=False,
                        errors=collector.messages,
                        error_count=collector.count,
                        load_error=str(e).splitlines()[0],
                    )
                return self._probe_loaded_page(
                    page, collector, survival_seconds, progress or (lambda _: None)
                )
            finally:
                browser.close()

    def _probe_loaded_page(
        self,
        page: Page,
        collector: _ErrorCollector,
        survival_seconds: float,
        progress: Callable[[ProbeResult], None],
    ) -> ProbeResult:
        loaded_at = self._clock()
        crashed: list[bool] = []
        page.on("crash", lambda _: crashed.append(True))
        result = ProbeResult(loads=True)

        def snapshot() -> ProbeResult:
            result.errors = list(collector.messages)
            result.error_count = collector.count
            result.survival_seconds = round(self._clock() - loaded_at, 1)
            progress(result)
            return result

        snapshot()
        try:
            page.wait_for_timeout(1000)
            visible = page.evaluate(VISIBLE_ELEMENTS_JS)
            canvas_pixels = page.evaluate(CANVAS_PIXELS_JS)
            result.renders = visible > 0 or canvas_pixels > CANVAS_NONBLANK_THRESHOLD
            snapshot()

            before = page.evaluate(DOM_SIGNATURE_JS)
            for key in PROBE_KEYS:
                page.keyboard.press(key)
                page.wait_for_timeout(150)
            result.interactive = before != page.evaluate(DOM_SIGNATURE_JS)
            snapshot()
        except PlaywrightError as e:
            logger.info("Page died during probe: %s", e)
            return snapshot()

        self._keep_alive(page, survival_seconds, crashed, snapshot)
        return snapshot()

    def _keep_alive(
        self,
        page: Page,
        duration: float,
        crashed: list[bool],
        on_alive: Callable[[], object],
    ) -> bool:
        """Poll the page once a second for ``duration`` seconds. Returns whether it lasted."""
        start = self._clock()
        while self._clock() - start < duration:
            if crashed:
                return False
            try:
                page.evaluate("() => document.readyState")
                on_alive()
                page.wait_for_timeout(1000)
            except PlaywrightError as e:
                logger.info("Page died during survival check: %s", e)
                return False
        return True

    # =========================================================================
    # Screenshots
    # =========================================================================

    def capture_interaction_screenshots(
        self,
        entry_file: Path,
        viewport: Viewport,
        label: str,
        out_dir: Path,
        max_count: int,
        timeout: float = CAPTURE_TIMEOUT_SECONDS,
    ) -> CaptureResult:
        """Exercise every reachable UI state and screenshot each one.

        Runs in the browser worker, killed after ``timeout`` seconds.
        Screenshots taken before a kill are kept.

        Args:
            entry_file: HTML entry point of the artifact
            viewport: Viewport for this resolution
            label: Resolution label used in file names
            out_dir: Directory that receives the PNG files
            max_count: Hard cap on screenshots for this resolution
            timeout: Seconds before the session is killed

        Returns:
            CaptureResult with screenshots in capture order

        Raises:
            BrowserProcessError: If the worker fails before taking any screenshot
        """
        output = run_worker(
            [
                "capture",
                str(entry_file.resolve()),
                "--width", str(viewport.width),
                "--height", str(viewport.height),
                "--label", label,
                "--out-dir", str(out_dir),
                "--max-count", str(max_count),
            ],
            timeout=timeout,
        )

        result = CaptureResult()
        for event in output.events:
            if "screenshot" in event:
                shot = event["screenshot"]
                result.screenshots.append(
                    Screenshot(
                        shot["resolution"],
                        shot["state"],
                        Path(shot["path"]),
                        shot["width"],
                        shot["height"],
                    )
                )
            elif "console_errors" in event:
                result.console_errors = event["console_errors"]

        if output.finished and output.returncode != 0 and not result.screenshots:
            raise output.error()
        return result

    def capture_page(
        self,
        entry_file: Path,
        viewport: Viewport,
        label: str,
        out_dir: Path,
        max_count: int,
        on_screenshot: Callable[[Screenshot], None] | None = None,
    ) -> CaptureResult:
        """Run the scripted screenshot session in this process.

        Raises:
            playwright.sync_api.Error: If the browser cannot start or load the page
        """
        result = CaptureResult()
        collector = _ErrorCollector(20)

        def shoot(page: Page, state: str) -> None:
            if len(result.screenshots) >= max_count:
                return
            path = out_dir / f"{label}_{state}.png"
            page.screenshot(path=str(path))
            shot = Screenshot(label, state, path, viewport.width, viewport.height)
            result.screenshots.append(shot)
            logger.debug("Screenshot %s/%s (%s)", label, state, viewport)
            if on_screenshot:
                on_screenshot(shot)

        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            try:
                page = browser.new_page(viewport=viewport.as_dict())
                collector.attach(page)
                page.goto(entry_file.resolve().as_uri(), wait_until="networkidle")
                page.wait_for_timeout(1000)
                shoot(page, "01_initial_load")

                page.wait_for_timeout(2000)
                shoot(page, "02_after_animations")

                for selector in START_SELECTORS:
                    if self._try_click(page, selector):
                        page.wait_for_timeout(1000)
                        shoot(page, "03_after_start_click")
                        break

                self._press_all(page, ("Enter", " "), pause_ms=500)
                page.wait_for_timeout(1000)
                shoot(page, "04_gameplay_start")

                self._mash_keys(page, 20, pause_ms=200)
                shoot(page, "05_during_gameplay")
                page.wait_for_timeout(2000)
                shoot(page, "06_gameplay_continued")

                self._mash_keys(page, 30, pause_ms=150)
                shoot(page, "07_mid_game")

                self._press_all(page, ("Escape", "p", "P"), pause_ms=500)
                shoot(page, "08_pause_attempt")

                self._press_all(page, ("Escape", "p", "P", "Enter"), pause_ms=300)
                page.wait_for_timeout(1000)
                shoot(page, "09_after_unpause")

                self._mash_keys(page, 50, pause_ms=100)
                page.wait_for_timeout(3000)
                shoot(page, "10_late_game")

                w, h = viewport.width, viewport.height
                for x, y in ((w // 2, h // 2), (w // 4, h // 4), (3 * w // 4, h // 4), (w // 2, 3 * h // 4)):
                    try:
                        page.mouse.click(x, y)
                        page.wait_for_timeout(300)
                    except PlaywrightError:
                        continue
                shoot(page, "11_after_clicks")

                for selector in OVERLAY_SELECTORS:
                    if self._is_visible(page, selector):
                        name = selector.replace("#", "").replace(".", "")
                        shoot(page, f"12_ui_{name}")
                        break

                if w > 500:
                    page.set_viewport_size({"width": w // 2, "height": h})
                    page.wait_for_timeout(1000)
                    shoot(page, "13_half_width")
                    page.set_viewport_size(viewport.as_dict())

                page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
                page.wait_for_timeout(500)
                shoot(page, "14_scrolled_bottom")
                page.evaluate("window.scrollTo(0, 0)")

                page.wait_for_timeout(1000)
                shoot(page, "15_final_state")
            finally:
                browser.close()

        result.console_errors = collector.messages
        return result

    def capture_simple_screenshot(
        self, entry_file: Path, viewport: Viewport, path: Path
    ) -> bool:
        """Take one screenshot with whatever browser works.

        Tries a Chrome binary first, then Playwright.

        Returns:
            True if ``path`` was written
        """
        chrome = find_chrome_binary()
        if chrome:
            try:
                subprocess.run(
                    [
                        chrome,
                        "--headless=new",
                        "--disable-gpu",
                        "--no-sandbox",
                        f"--screenshot={path}",
                        f"--window-size={viewport.width},{viewport.height}",
                        entry_file.resolve().as_uri(),
                    ],
                    capture_output=True,
                    timeout=60,
                    check=False,
                )
            except (subprocess.TimeoutExpired, OSError) as e:
                logger.info("Chrome screenshot failed: %s", e)
            if path.exists():
                return True

        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=True)
                try:
                    page = browser.new_page(viewport=viewport.as_dict())
                    page.goto(entry_file.resolve().as_uri(), wait_until="networkidle")
                    page.wait_for_timeout(2000)
                    page.screenshot(path=str(path))
                finally:
                    browser.close()
        except PlaywrightError as e:
            logger.info("Playwright screenshot failed: %s", e)
            return False
        return path.exists()

    @staticmethod
    def _try_click(page: Page, selector: str) -> bool:
        try:
            element = page.query_selector(selector)
            if element and element.is_visible():
                element.click(timeout=2000)
                return True
        except PlaywrightError:
            pass
        return False

    @staticmethod
    def _is_visible(page: Page, selector: str) -> bool:
        try:
            element = page.query_selector(selector)
            return bool(element and element.is_visible())
        except PlaywrightError:
            return False

    @staticmethod
    def _press_all(page: Page, keys: tuple[str, ...], pause_ms: int) -> None:
        for key in keys:
            try:
                page.keyboard.press(key)
                page.wait_for_timeout(pause_ms)
            except PlaywrightError:
                continue

    def _mash_keys(self, page: Page, presses: int, pause_ms: int) -> None:
        for _ in range(presses):
            try:
                page.keyboard.press(self._rng.choice(GAME_KEYS))
                page.wait_for_timeout(pause_ms)
            except PlaywrightError:
                continue


def find_chrome_binary() -> str | None:
    """Return the first Chrome/Chromium executable on PATH."""
    for name in CHROME_BINARIES:
        found = shutil.which(name)
        if found:
            return found
    return None

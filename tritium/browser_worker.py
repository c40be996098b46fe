"""Browser worker: runs one Playwright session and reports as JSON lines.

    python -m tritium.browser_worker probe ENTRY --width 1280 --height 720
    python -m tritium.browser_worker capture ENTRY --label desktop-720p --out-dir DIR

Every stdout line is one JSON object: ``{"probe": {...}}`` snapshots for a
probe (the last one is the result), or one ``{"screenshot": {...}}`` per
capture followed by ``{"console_errors": [...]}``. The parent may kill the
worker at any moment and still use the lines already written.
"""

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from .browser import PlaywrightDriver, ProbeResult, Screenshot, Viewport
from .config import (
    HEALTH_LOAD_TIMEOUT,
    HEALTH_MAX_ERRORS,
    HEALTH_SURVIVAL_SECONDS,
    HEALTH_VIEWPORT,
    MAX_SCREENSHOTS_PER_RESOLUTION,
)


def emit(event: dict[str, Any]) -> None:
    print(json.dumps(event), flush=True)


def emit_probe(result: ProbeResult) -> None:
    emit({"probe": asdict(result)})


def emit_screenshot(shot: Screenshot) -> None:
    emit({"screenshot": {**asdict(shot), "path": str(shot.path)}})


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse worker arguments."""
    parser = argparse.ArgumentParser(
        prog="tritium.browser_worker",
        description="Run one headless browser session and report JSON lines",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    probe = commands.add_parser("probe", help="Health probe: load, render, input, survival")
    capture = commands.add_parser("capture", help="Scripted screenshot session")
    for command in (probe, capture):
        command.add_argument("entry", type=Path, help="HTML entry file")
        command.add_argument("--width", type=int, default=HEALTH_VIEWPORT[0])
        command.add_argument("--height", type=int, default=HEALTH_VIEWPORT[1])

    probe.add_argument("--load-timeout", type=float, default=HEALTH_LOAD_TIMEOUT)
    probe.add_argument("--survival", type=float, default=HEALTH_SURVIVAL_SECONDS)
    probe.add_argument("--max-errors", type=int, default=HEALTH_MAX_ERRORS)

    capture.add_argument("--label", required=True, help="Resolution label for file names")
    capture.add_argument("--out-dir", type=Path, required=True)
    capture.add_argument("--max-count", type=int, default=MAX_SCREENSHOTS_PER_RESOLUTION)

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_arguments(argv)
    driver = PlaywrightDriver()
    viewport = Viewport(args.width, args.height)

    if args.command == "probe":
        result = driver.probe_page(
            args.entry,
            viewport,
            load_timeout=args.load_timeout,
            survival_seconds=args.survival,
            max_errors=args.max_errors,
            progress=emit_probe,
        )
        emit_probe(result)
    else:
        capture = driver.capture_page(
            args.entry,
            viewport,
            args.label,
            args.out_dir,
            args.max_count,
            on_screenshot=emit_screenshot,
        )
        emit({"console_errors": capture.console_errors})
    return 0


if __name__ == "__main__":
    sys.exit(main())

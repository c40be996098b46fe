# Copyright 2025-present Anthropic PBC.
# Licensed under Apache 2.0

# #!/usr/bin/env python3
"""Tritium Coder build loop.

Give it a description, it builds the project, then keeps improving it until
the time budget is spent: health check, pick a phase, call the coding agent,
checkpoint, review screenshots, repeat.

Usage:
    python build_project.py "Build a Tetris clone with levels" --hours 2
    python build_project.py "Create a REST API for a bookstore" --no-vision
    python build_project.py --resume build-a-tetris-clone-with-leve --hours 1
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from tritium import (
    CheckpointManager,
    CycleController,
    GenerationError,
    LoggingManager,
    OllamaRuntime,
    PreflightError,
    RunState,
    SessionState,
    SessionStore,
    TimeBudget,
    create_agent,
    derive_project_name,
    detect_project_type,
    preflight,
)
from tritium.browser import PlaywrightDriver
from tritium.config import (
    CONFIG_FILE_NAME,
    DEFAULT_HOURS,
    DEFAULT_VISION_MODEL,
    LOGS_DIR_NAME,
    AgentBackend,
    ProjectConfig,
    load_project_config,
)
from tritium.error_messages import PreflightMessages
from tritium.health import HealthChecker
from tritium.project_type import ProjectType
from tritium.reporting import display_run_header, display_summary
from tritium.retry import RetryConfig
from tritium.tracing import TracingManager
from tritium.vision import VisionGate


TOOL_ROOT = Path(__file__).resolve().parent
EXAMPLES_DIR_NAME = "examples"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Build a project from a description and keep improving it"
    )

    parser.add_argument(
        "description",
        nargs="*",
        help="What to build, e.g. 'Build a Tetris clone with levels'",
    )

    parser.add_argument(
        "--name",
        type=str,
        help="Project name (default: derived from the description)",
        metavar="NAME",
    )

    parser.add_argument(
        "--hours",
        type=float,
        default=DEFAULT_HOURS,
        help=f"Time budget in hours (default: {DEFAULT_HOURS:g})",
        metavar="N",
    )

    parser.add_argument(
        "--dir",
        type=str,
        dest="output_dir",
        help=f"Output directory (default: {EXAMPLES_DIR_NAME}/<name>)",
        metavar="PATH",
    )

    parser.add_argument(
        "--resume",
        type=str,
        help="Resume the named project from its session file",
        metavar="NAME",
    )

    parser.add_argument(
        "--no-vision",
        action="store_true",
        help="Skip the multi-resolution screenshot review",
    )

    parser.add_argument(
        "--vision-model",
        type=str,
        help=f"Vision model for screenshot review (default: {DEFAULT_VISION_MODEL})",
        metavar="MODEL",
    )

    parser.add_argument(
        "--coder-model",
        type=str,
        help="Coding model served by the local runtime",
        metavar="MODEL",
    )

    parser.add_argument(
        "--backend",
        type=str,
        choices=[b.value for b in AgentBackend],
        help="Coding agent backend (default: claude)",
    )

    parser.add_argument(
        "--model",
        type=str,
        help="Model name passed to the coding agent, if it differs from the coder model",
        metavar="MODEL_ID",
    )

    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to a config file (default: ./{CONFIG_FILE_NAME})",
        metavar="PATH",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Record debug output in the run log",
    )

    args = parser.parse_args(argv)
    if args.hours <= 0:
        parser.error("--hours must be positive")
    if not args.description and not args.resume:
        parser.error("provide a project description, or --resume NAME")
    return args


def build_config(args: argparse.Namespace) -> ProjectConfig:
    """Load the config file and apply command-line overrides."""
    config_path = Path(args.config) if args.config else None
    config = load_project_config(config_path) or ProjectConfig()

    if args.no_vision:
        config.vision.enabled = False
    if args.vision_model:
        config.vision.model = args.vision_model
    if args.coder_model:
        config.runtime.coder_model = args.coder_model
    if args.backend:
        config.agent.backend = AgentBackend(args.backend)
    if args.model:
        config.agent.model = args.model
    return config


def resolve_output_dir(args: argparse.Namespace, project_name: str) -> Path:
    """``--dir`` if given, else ``examples/<name>`` under the tool checkout."""
    if args.output_dir:
        return Path(args.output_dir).expanduser().resolve()
    return TOOL_ROOT / EXAMPLES_DIR_NAME / project_name


def load_session(
    args: argparse.Namespace, output_dir: Path, project_name: str
) -> Optional[SessionState]:
    """
    Load the session for ``--resume``, or start a new one.

    Returns:
        SessionState, or None when a resume was requested but cannot be loaded
    """
    store = SessionStore(output_dir)
    if args.resume:
        try:
            session = store.load()
        except FileNotFoundError:
            print(PreflightMessages.session_not_found(args.resume, str(store.path)))
            return None
        except ValueError as e:
            print(f"❌ Could not resume {args.resume}: {e}")
            return None
        if args.description:
            session.description = " ".join(args.description)
        print(
            f"📂 Resuming {session.project_name or project_name} at cycle "
            f"{session.cycle_count} ({int(session.total_elapsed_secs // 60)}m so far)"
        )
        return session

    return SessionState(
        description=" ".join(args.description),
        project_name=project_name,
    )


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    config = build_config(args)

    project_name = args.name or args.resume or derive_project_name(" ".join(args.description))
    output_dir = resolve_output_dir(args, project_name)

    session = load_session(args, output_dir, project_name)
    if session is None:
        return EXIT_FAILURE
    project_name = session.project_name or project_name
    session.project_name = project_name

    output_dir.mkdir(parents=True, exist_ok=True)

    logs_root = TOOL_ROOT / LOGS_DIR_NAME
    log_path = logs_root / f"iterate-{project_name}.log"
    logging_manager = LoggingManager()
    logging_manager.setup_timestamped_print(log_path)
    logging_manager.configure_logging(
        log_path.with_suffix(".debug.log"),
        logging.DEBUG if args.verbose else logging.INFO,
    )

    store = SessionStore(output_dir)
    controller: Optional[CycleController] = None

    try:
        tracing = TracingManager(config.tracing)
        tracing.initialize()

        runtime = OllamaRuntime(
            config.runtime.url,
            retry_config=RetryConfig(
                max_retries=config.retry.max_retries,
                base_delay=config.retry.base_delay,
                max_delay=config.retry.max_delay,
            ),
        )
        driver = PlaywrightDriver()

        display_run_header(
            project_name,
            session.description,
            output_dir,
            args.hours,
            config.runtime.coder_model,
            config.vision.model,
            config.vision.enabled,
            config.agent.backend.value,
        )

        if session.project_type == "unknown":
            project_type = detect_project_type(session.description, output_dir, TOOL_ROOT)
            session.project_type = project_type.value
        else:
            project_type = ProjectType(session.project_type)
        print(f"🏷️ TYPE   {project_type.value}")

        vision_requested = config.vision.enabled and project_type.is_browser
        if config.vision.enabled and not project_type.is_browser:
            print(f"👁️ VISION disabled for {project_type.value} projects")
        config.vision.enabled = preflight(config, runtime, driver, vision_requested)

        agent = create_agent(
            config.agent, output_dir, session.agent_session_id, tracing=tracing
        )
        health_checker = HealthChecker(config.health, driver, tracing=tracing)

        vision_gate = None
        if config.vision.enabled:
            vision_gate = VisionGate(
                config.vision,
                runtime,
                driver,
                config.runtime.coder_model,
                session.description,
                tracing=tracing,
            )

        state = RunState(session=session, elapsed_before_start=session.total_elapsed_secs)
        controller = CycleController(
            state=state,
            config=config,
            output_dir=output_dir,
            project_type=project_type,
            agent=agent,
            runtime=runtime,
            health_checker=health_checker,
            checkpoints=CheckpointManager(output_dir),
            store=store,
            budget=TimeBudget(args.hours * 3600),
            vision_gate=vision_gate,
            logging_manager=logging_manager,
            logs_dir=logs_root / project_name,
            tracing=tracing,
            tool_root=TOOL_ROOT,
        )

        controller.generate_initial()
        summary = controller.run()
        summary.log_path = log_path
        display_summary(summary)
        return EXIT_OK

    except PreflightError as e:
        print(str(e))
        return EXIT_FAILURE
    except GenerationError as e:
        print(str(e))
        if controller is not None:
            controller.save_session()
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\n\n🛑 Ctrl-C detected - stopping build loop...")
        if controller is not None:
            controller.save_session()
            print(f"💾 SESSION saved at cycle {controller.state.cycle}")
        print(f"📁 Project directory: {output_dir}")
        print(f"\nTo continue: python build_project.py --resume {project_name}")
        return EXIT_INTERRUPTED
    finally:
        logging_manager.close()


if __name__ == "__main__":
    sys.exit(main())

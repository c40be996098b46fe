"""Logging utilities for Tritium Coder runs."""

import builtins
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TextIO


class LoggingManager:
    """Manages console and file logging for one build run."""

    def __init__(self, log_file: Optional[TextIO] = None):
        self.log_file = log_file
        self._original_print = builtins.print
        self._handler: Optional[logging.Handler] = None

    def setup_timestamped_print(self, log_file_path: Path) -> None:
        """Set up timestamped printing to both console and log file."""
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_file = open(log_file_path, "a", encoding="utf-8")
        original_print = self._original_print

        def timestamped_print(*args, **kwargs):
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            timestamped_args = (f"[{timestamp}]", *args)
            original_print(*timestamped_args, **kwargs)
            if self.log_file and "file" not in kwargs:
                original_print(*timestamped_args, **kwargs, file=self.log_file)
                self.log_file.flush()

        builtins.print = timestamped_print

    def configure_logging(self, log_file_path: Path, level: int = logging.INFO) -> None:
        """Route library ``logging`` records for the ``tritium`` package to a file.

        Args:
            log_file_path: File that receives warnings and debug output
            level: Minimum level recorded
        """
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file_path, encoding="utf-8")
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        package_logger = logging.getLogger("tritium")
        package_logger.setLevel(level)
        package_logger.addHandler(handler)
        self._handler = handler

    def close(self) -> None:
        """Restore ``print`` and close the log files."""
        builtins.print = self._original_print
        if self._handler:
            logging.getLogger("tritium").removeHandler(self._handler)
            self._handler.close()
            self._handler = None
        if self.log_file:
            self.log_file.close()
            self.log_file = None

    def save_json_log(self, logs_dir: Path, data: dict[str, Any]) -> None:
        """Save a JSON log entry with timestamp.

        Args:
            logs_dir: Directory to save logs in
            data: Data to save as JSON
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]
        logs_dir.mkdir(parents=True, exist_ok=True)

        prefix = data.get("type", "entry")
        log_file = logs_dir / f"{timestamp}_{prefix}.json"

        try:
            with open(log_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            print(f"⚠️ Failed to save JSON log: {e}")

    def log_cycle(self, logs_dir: Path, cycle: dict[str, Any], health: dict[str, Any]) -> None:
        """Record one completed cycle and the health report it acted on.

        Args:
            logs_dir: Directory to save logs in
            cycle: Serialized cycle record
            health: Serialized health report
        """
        self.save_json_log(
            logs_dir,
            {
                "type": "cycle",
                "timestamp": datetime.now().isoformat(),
                "cycle": cycle,
                "health": health,
            },
        )

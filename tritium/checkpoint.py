"""Git checkpoints after constructive phases.

Checkpoints are scoped to the output directory, so a project living inside a
larger repository only commits its own files. A checkpoint never fails the
build loop: every git problem is logged and the call returns False.
"""

import logging
import subprocess
from pathlib import Path

from .config import SESSION_FILE_NAME


logger = logging.getLogger(__name__)

GIT_QUERY_TIMEOUT = 30
GIT_OPERATION_TIMEOUT = 60
COMMIT_PREFIX = "[auto]"

# The session file is rewritten every cycle and never committed
PATHSPEC = (".", f":(exclude){SESSION_FILE_NAME}")


class GitOperationError(Exception):
    """Raised when a git operation fails."""

    def __init__(self, message: str, stderr: str | None = None, returncode: int | None = None):
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode


class CheckpointManager:
    """Commits the output directory's working tree when it has changes."""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = Path(output_dir)

    def _git(self, *args: str, timeout: int = GIT_OPERATION_TIMEOUT) -> str:
        """Run a git command in the output directory.

        Returns:
            Command stdout

        Raises:
            GitOperationError: If git exits non-zero, times out, or is missing
        """
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.output_dir,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitOperationError(f"git {args[0]} timed out after {timeout}s") from e
        except OSError as e:
            raise GitOperationError(f"git {args[0]} could not run: {e}") from e

        if result.returncode != 0:
            raise GitOperationError(
                f"git {args[0]} failed: {result.stderr.strip()}",
                stderr=result.stderr,
                returncode=result.returncode,
            )
        return result.stdout

    def is_version_controlled(self) -> bool:
        """Whether the output directory is inside a git work tree."""
        try:
            self._git("rev-parse", "--git-dir", timeout=GIT_QUERY_TIMEOUT)
            return True
        except GitOperationError:
            return False

    def changed_files(self) -> list[str]:
        """Paths with uncommitted changes under the output directory."""
        output = self._git("status", "--porcelain", "--", *PATHSPEC, timeout=GIT_QUERY_TIMEOUT)
        return [line[3:] for line in output.splitlines() if line.strip()]

    def checkpoint(self, message: str) -> bool:
        """
        Stage and commit the output directory if anything changed.

        Args:
            message: Commit message, e.g. "cycle-4-improve"

        Returns:
            True if a commit was made, False for a no-op or a failure
        """
        if not self.output_dir.is_dir() or not self.is_version_controlled():
            return False

        try:
            changes = self.changed_files()
            if not changes:
                return False

            self._git("add", "-A", "--", *PATHSPEC)
            self._git("commit", "-m", f"{COMMIT_PREFIX} {message}", "--no-verify")
        except GitOperationError as e:
            logger.warning("Checkpoint '%s' failed: %s", message, e)
            print(f"⚠️ GIT    checkpoint failed: {e}")
            return False

        print(f"📌 GIT    checkpoint: {message} ({len(changes)} files)")
        return True

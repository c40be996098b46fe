"""Project-type detection from the description and existing files."""

import re
from enum import Enum
from pathlib import Path

from .config import PROJECT_NAME_MAX_LENGTH


class ProjectType(str, Enum):
    """Kinds of artifact the build loop knows how to check."""

    WEB_GAME = "web-game"
    WEB_APP = "web-app"
    API = "api"
    CLI = "cli"
    LIBRARY = "library"
    SELF = "self"

    @property
    def is_browser(self) -> bool:
        """Whether the artifact is rendered and probed in a browser."""
        return self in (ProjectType.WEB_GAME, ProjectType.WEB_APP)


# Keyword rules in priority order; api is tested before web-app since
# "ui" would otherwise match inside "api"
_GAME_KEYWORDS = re.compile(r"game|tetris|pong|canvas|arcade|play|level|score|sprite")
_API_KEYWORDS = re.compile(r"api|rest|backend|server|flask|fastapi|express")
_WEB_APP_KEYWORDS = re.compile(
    r"web app|dashboard|form|interface|page|website|site|portal"
)
_LIBRARY_KEYWORDS = re.compile(r"library|module|package|reusable|utility|helper")
_CLI_KEYWORDS = re.compile(r"cli|command-line|command line|terminal|script|shell script")
_WEB_FALLBACK_KEYWORDS = re.compile(r"website|web page|site|html|css|javascript")
_PYTHON_KEYWORDS = re.compile(r"python")
_PYTHON_CLI_KEYWORDS = re.compile(r"command-line|terminal|cli")

# Type-specific requirements appended to generation and improvement prompts
PROJECT_TYPE_REQUIREMENTS: dict[ProjectType, str] = {
    ProjectType.WEB_GAME: (
        "- Entry point is index.html at the project root, openable directly in a browser\n"
        "- A visible start screen with a start button, keyboard controls, pause with Escape or P\n"
        "- Score and game-over state rendered on screen\n"
        "- Layout must work from 375px phones up to 2560px ultrawide screens"
    ),
    ProjectType.WEB_APP: (
        "- Entry point is index.html at the project root, openable directly in a browser\n"
        "- Every control responds to clicks and keyboard, with visible feedback\n"
        "- Responsive layout from 375px phones up to 2560px ultrawide screens"
    ),
    ProjectType.API: (
        "- Server entry point at the project root (app.py or server.js)\n"
        "- Document every endpoint in README.md with an example request\n"
        "- Validate input and return JSON error bodies with proper status codes"
    ),
    ProjectType.CLI: (
        "- Runnable entry point at the project root (main.py or an executable script)\n"
        "- --help output that documents every option\n"
        "- Non-zero exit codes on errors, messages on stderr"
    ),
    ProjectType.LIBRARY: (
        "- Clean public API with docstrings on every public function\n"
        "- Usage examples in README.md\n"
        "- Unit tests covering the public API"
    ),
    ProjectType.SELF: (
        "- This is the build tool's own repository: keep existing behavior working\n"
        "- Run the existing test suite before and after every change"
    ),
}


def detect_project_type(
    description: str, output_dir: Path, tool_root: Path | None = None
) -> ProjectType:
    """
    Classify a project from its description and the files already present.

    Args:
        description: Natural-language project description
        output_dir: Directory the artifact lives in
        tool_root: Root of this tool's own checkout, for self-improvement runs

    Returns:
        The detected ProjectType (web-app when nothing matches)
    """
    if tool_root is not None and output_dir.resolve() == tool_root.resolve():
        return ProjectType.SELF

    desc = description.lower()

    if _GAME_KEYWORDS.search(desc):
        return ProjectType.WEB_GAME

    if (
        _API_KEYWORDS.search(desc)
        or (output_dir / "app.py").exists()
        or (output_dir / "server.js").exists()
    ):
        return ProjectType.API

    if _WEB_APP_KEYWORDS.search(desc):
        return ProjectType.WEB_APP

    if _LIBRARY_KEYWORDS.search(desc):
        return ProjectType.LIBRARY

    if _CLI_KEYWORDS.search(desc) or (output_dir / "main.py").exists():
        return ProjectType.CLI

    if (output_dir / "index.html").exists():
        return ProjectType.WEB_APP
    if (output_dir / "package.json").exists():
        return ProjectType.API

    if _WEB_FALLBACK_KEYWORDS.search(desc):
        return ProjectType.WEB_APP
    if _PYTHON_KEYWORDS.search(desc):
        if _PYTHON_CLI_KEYWORDS.search(desc):
            return ProjectType.CLI
        return ProjectType.API

    return ProjectType.WEB_APP


def derive_project_name(description: str) -> str:
    """
    Turn a description into a directory-safe project name.

    Lowercases, replaces runs of non-alphanumerics with a single hyphen,
    trims leading/trailing hyphens and cuts to the maximum length.

    Args:
        description: Natural-language project description

    Returns:
        Project name, or "project" if nothing usable remains
    """
    name = re.sub(r"[^a-z0-9]+", "-", description.lower()).strip("-")
    name = name[:PROJECT_NAME_MAX_LENGTH].rstrip("-")
    return name or "project"

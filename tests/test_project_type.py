"""Tests for tritium/project_type.py - project classification and naming."""

from pathlib import Path

import pytest

from tritium.project_type import (
    PROJECT_TYPE_REQUIREMENTS,
    ProjectType,
    derive_project_name,
    detect_project_type,
)


class TestProjectType:
    """Tests for the ProjectType enum."""

    def test_browser_types(self) -> None:
        """Only web games and web apps are rendered in a browser."""
        browser = {t for t in ProjectType if t.is_browser}
        assert browser == {ProjectType.WEB_GAME, ProjectType.WEB_APP}

    def test_every_type_has_requirements(self) -> None:
        """Each type carries prompt requirements."""
        assert set(PROJECT_TYPE_REQUIREMENTS) == set(ProjectType)


class TestDetectFromDescription:
    """Tests for keyword-based detection."""

    @pytest.mark.parametrize(
        ("description", "expected"),
        [
            ("Build a Tetris clone with levels", ProjectType.WEB_GAME),
            ("A REST API for todo items", ProjectType.API),
            ("A dashboard for sales metrics", ProjectType.WEB_APP),
            ("A reusable date parsing library", ProjectType.LIBRARY),
            ("A command-line tool to rename photos", ProjectType.CLI),
        ],
    )
    def test_keywords(self, temp_dir: Path, description: str, expected: ProjectType) -> None:
        """Description keywords pick the type."""
        assert detect_project_type(description, temp_dir) == expected

    def test_game_beats_api(self, temp_dir: Path) -> None:
        """Game keywords win over server keywords."""
        assert detect_project_type("Multiplayer pong game with a server", temp_dir) == (
            ProjectType.WEB_GAME
        )

    def test_python_without_cli_words_is_api(self, temp_dir: Path) -> None:
        """A Python project with no other hint is treated as an API."""
        assert detect_project_type("A python weather fetcher", temp_dir) == ProjectType.API

    def test_default_is_web_app(self, temp_dir: Path) -> None:
        """Nothing matching means web-app."""
        assert detect_project_type("Something cool", temp_dir) == ProjectType.WEB_APP


class TestDetectFromFiles:
    """Tests for detection from existing files."""

    @pytest.mark.parametrize(
        ("file_name", "expected"),
        [
            ("app.py", ProjectType.API),
            ("server.js", ProjectType.API),
            ("main.py", ProjectType.CLI),
            ("index.html", ProjectType.WEB_APP),
            ("package.json", ProjectType.API),
        ],
    )
    def test_marker_files(self, temp_dir: Path, file_name: str, expected: ProjectType) -> None:
        """Files already in the output directory decide vague descriptions."""
        (temp_dir / file_name).write_text("")
        assert detect_project_type("Something cool", temp_dir) == expected

    def test_self_improvement(self, temp_dir: Path) -> None:
        """Pointing the output directory at the tool itself is self mode."""
        assert detect_project_type("Add a flag", temp_dir, tool_root=temp_dir) == ProjectType.SELF


class TestDeriveProjectName:
    """Tests for derive_project_name."""

    def test_slug_is_truncated(self) -> None:
        """Names are lowercase, hyphenated and at most 30 characters."""
        assert derive_project_name("Build a Tetris clone with levels") == (
            "build-a-tetris-clone-with-leve"
        )

    def test_punctuation_collapses(self) -> None:
        """Runs of punctuation become one hyphen and edges are trimmed."""
        assert derive_project_name("  Make a To-Do app!!  ") == "make-a-to-do-app"

    def test_no_trailing_hyphen_after_cut(self) -> None:
        """A cut that lands on a hyphen drops it."""
        assert derive_project_name("a" * 29 + " bbb") == "a" * 29

    def test_empty_result(self) -> None:
        """A description with no usable characters gets a fallback name."""
        assert derive_project_name("!!!") == "project"

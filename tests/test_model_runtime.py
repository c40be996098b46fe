"""Tests for tritium/model_runtime.py - the Ollama runtime client."""

import base64
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from tritium.model_runtime import OllamaRuntime, url_reachable
from tritium.retry import RetryConfig


def _response(status: int = 200, payload: dict | None = None) -> MagicMock:
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    response.json.return_value = payload or {}
    if status >= 400:
        error = requests.exceptions.HTTPError(f"{status} error")
        error.response = response
        response.raise_for_status.side_effect = error
    return response


@pytest.fixture
def session() -> MagicMock:
    """A requests.Session double."""
    return MagicMock(spec=requests.Session)


@pytest.fixture
def runtime(session: MagicMock) -> OllamaRuntime:
    """Runtime client without retry delays."""
    return OllamaRuntime(
        "http://localhost:11434/",
        retry_config=RetryConfig(max_retries=1, base_delay=0, jitter=False),
        session=session,
    )


class TestReachability:
    """Tests for is_reachable and url_reachable."""

    def test_reachable(self, runtime: OllamaRuntime, session: MagicMock) -> None:
        """A 200 from /api/tags means reachable."""
        session.get.return_value = _response(200)
        assert runtime.is_reachable() is True
        assert session.get.call_args[0][0] == "http://localhost:11434/api/tags"

    def test_unreachable(self, runtime: OllamaRuntime, session: MagicMock) -> None:
        """A connection error means unreachable."""
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        assert runtime.is_reachable() is False

    def test_url_reachable_any_status(self) -> None:
        """Any HTTP answer counts as reachable."""
        with patch("tritium.model_runtime.requests.get", return_value=_response(404)):
            assert url_reachable("http://localhost:8082") is True

    def test_url_unreachable(self) -> None:
        """No answer at all is unreachable."""
        with patch(
            "tritium.model_runtime.requests.get",
            side_effect=requests.exceptions.ConnectionError("refused"),
        ):
            assert url_reachable("http://localhost:8082") is False


class TestModels:
    """Tests for list_models and has_model."""

    def test_list_models(self, runtime: OllamaRuntime, session: MagicMock) -> None:
        """Model names come from /api/tags."""
        session.get.return_value = _response(
            payload={"models": [{"name": "qwen3-coder-next:latest"}, {"name": "qwen3-vl:32b"}]}
        )
        assert runtime.list_models() == ["qwen3-coder-next:latest", "qwen3-vl:32b"]

    def test_has_model_bare_name_matches_latest(
        self, runtime: OllamaRuntime, session: MagicMock
    ) -> None:
        """A bare model name matches its :latest tag."""
        session.get.return_value = _response(payload={"models": [{"name": "qwen3-coder-next:latest"}]})
        assert runtime.has_model("qwen3-coder-next") is True

    def test_has_model_tag_must_match(self, runtime: OllamaRuntime, session: MagicMock) -> None:
        """A tagged name must match exactly."""
        session.get.return_value = _response(payload={"models": [{"name": "qwen3-vl:8b"}]})
        assert runtime.has_model("qwen3-vl:32b") is False

    def test_has_model_when_server_down(
        self, runtime: OllamaRuntime, session: MagicMock
    ) -> None:
        """An unreachable server has no models."""
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with patch("tritium.retry.time.sleep"):
            assert runtime.has_model("qwen3-vl:32b") is False

    def test_list_models_retries_transient_errors(
        self, runtime: OllamaRuntime, session: MagicMock
    ) -> None:
        """A 503 while a model is loading is retried."""
        session.get.side_effect = [
            _response(503),
            _response(payload={"models": [{"name": "qwen3-vl:32b"}]}),
        ]
        with patch("tritium.retry.time.sleep"):
            assert runtime.list_models() == ["qwen3-vl:32b"]
        assert session.get.call_count == 2


class TestLoadUnload:
    """Tests for fire-and-forget load and unload."""

    def test_load_sends_keep_alive(self, runtime: OllamaRuntime, session: MagicMock) -> None:
        """Loading posts to /api/generate with the keep-alive duration."""
        session.post.return_value = _response()
        runtime.load("qwen3-coder-next", "30m")

        url = session.post.call_args[0][0]
        payload = session.post.call_args[1]["json"]
        assert url == "http://localhost:11434/api/generate"
        assert payload["model"] == "qwen3-coder-next"
        assert payload["keep_alive"] == "30m"
        assert payload["stream"] is False

    def test_unload_sets_zero_keep_alive(
        self, runtime: OllamaRuntime, session: MagicMock
    ) -> None:
        """Unloading sets keep_alive to zero."""
        session.post.return_value = _response()
        runtime.unload("qwen3-vl:32b")
        assert session.post.call_args[1]["json"]["keep_alive"] == 0

    def test_failures_are_ignored(self, runtime: OllamaRuntime, session: MagicMock) -> None:
        """Load and unload never raise."""
        session.post.side_effect = requests.exceptions.ConnectionError("refused")
        runtime.load("qwen3-coder-next")
        runtime.unload("qwen3-coder-next")
        assert session.post.call_count == 2


class TestChatWithImage:
    """Tests for chat_with_image."""

    def test_sends_base64_image(
        self, runtime: OllamaRuntime, session: MagicMock, temp_dir: Path
    ) -> None:
        """The screenshot is attached as base64 and the answer returned."""
        image = temp_dir / "shot.png"
        image.write_bytes(b"\x89PNG data")
        session.post.return_value = _response(
            payload={"message": {"role": "assistant", "content": "  Text overlaps.  "}}
        )

        answer = runtime.chat_with_image("qwen3-vl:32b", "Critique this", image, 180)

        assert answer == "Text overlaps."
        payload = session.post.call_args[1]["json"]
        assert payload["messages"][0]["images"] == [
            base64.b64encode(b"\x89PNG data").decode("ascii")
        ]
        assert session.post.call_args[1]["timeout"] == 180

    def test_failure_returns_empty(
        self, runtime: OllamaRuntime, session: MagicMock, temp_dir: Path
    ) -> None:
        """Request failures return an empty critique."""
        image = temp_dir / "shot.png"
        image.write_bytes(b"x")
        session.post.side_effect = requests.exceptions.ReadTimeout("slow")
        assert runtime.chat_with_image("qwen3-vl:32b", "p", image, 1) == ""

    def test_missing_image_returns_empty(
        self, runtime: OllamaRuntime, session: MagicMock, temp_dir: Path
    ) -> None:
        """A missing screenshot returns an empty critique without a request."""
        assert runtime.chat_with_image("qwen3-vl:32b", "p", temp_dir / "nope.png", 1) == ""
        session.post.assert_not_called()

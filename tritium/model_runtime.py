"""Ollama model-serving runtime client.

The runtime holds one model in device memory at a time for this tool: the
coding model during code passes and the vision model during a vision gate.
Load and unload are best-effort; failures are logged and ignored.
"""

import base64
import logging
from pathlib import Path
from typing import Any

import requests

from .retry import RetryConfig, with_retry


logger = logging.getLogger(__name__)

# Seconds allowed for a load request; the first request can include model warmup
LOAD_TIMEOUT = 300
UNLOAD_TIMEOUT = 30
TAGS_TIMEOUT = 10


class OllamaRuntime:
    """Client for a local Ollama server.

    See: https://github.com/ollama/ollama/blob/main/docs/api.md
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        retry_config: RetryConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the runtime client.

        Args:
            base_url: Ollama server URL
            retry_config: Retry behavior for idempotent calls
            session: Optional requests session (tests inject a mock)
        """
        self.base_url = base_url.rstrip("/")
        self.retry_config = retry_config or RetryConfig()
        self.session = session or requests.Session()

    def is_reachable(self, timeout: float = 5) -> bool:
        """Check if the Ollama server is running and responsive."""
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=timeout)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def list_models(self) -> list[str]:
        """List models available in the runtime.

        Returns:
            List of model names.

        Raises:
            requests.exceptions.RequestException: If the server cannot be queried
        """

        @with_retry(self.retry_config)
        def _fetch() -> dict[str, Any]:
            response = self.session.get(
                f"{self.base_url}/api/tags", timeout=TAGS_TIMEOUT
            )
            response.raise_for_status()
            return response.json()

        return [m["name"] for m in _fetch().get("models", []) if "name" in m]

    def has_model(self, model: str) -> bool:
        """Whether ``model`` is pulled, treating a bare name as ``name:latest``."""
        try:
            names = self.list_models()
        except requests.exceptions.RequestException as e:
            logger.warning("Could not list models: %s", e)
            return False

        wanted = {model, f"{model}:latest"} if ":" not in model else {model}
        return any(name in wanted for name in names)

    def load(self, model: str, keep_alive: str = "30m") -> None:
        """Load ``model`` into memory and keep it resident for ``keep_alive``."""
        payload = {"model": model, "prompt": "hi", "keep_alive": keep_alive}
        self._post_generate(payload, LOAD_TIMEOUT, "load")

    def unload(self, model: str) -> None:
        """Evict ``model`` from memory."""
        payload = {"model": model, "keep_alive": 0}
        self._post_generate(payload, UNLOAD_TIMEOUT, "unload")

    def _post_generate(self, payload: dict[str, Any], timeout: float, action: str) -> None:
        try:
            response = self.session.post(
                f"{self.base_url}/api/generate",
                json={**payload, "stream": False},
                timeout=timeout,
            )
            response.raise_for_status()
            logger.debug("Model %s: %s", action, payload["model"])
        except requests.exceptions.RequestException as e:
            logger.warning("Model %s failed for %s: %s", action, payload["model"], e)

    def chat_with_image(
        self, model: str, prompt: str, image_path: Path, timeout: float
    ) -> str:
        """Ask a vision-capable model about one image.

        Args:
            model: Vision model name
            prompt: Critique prompt
            image_path: PNG screenshot to attach
            timeout: Request timeout in seconds

        Returns:
            The model's answer, or an empty string on any failure
        """
        try:
            image_b64 = base64.b64encode(image_path.read_bytes()).decode("ascii")
        except OSError as e:
            logger.warning("Could not read screenshot %s: %s", image_path, e)
            return ""

        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt, "images": [image_b64]}],
            "stream": False,
        }

        try:
            response = self.session.post(
                f"{self.base_url}/api/chat", json=payload, timeout=timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning("Vision request failed for %s: %s", image_path.name, e)
            return ""

        message = data.get("message") or {}
        return (message.get("content") or "").strip()

    def __repr__(self) -> str:
        return f"OllamaRuntime(base_url={self.base_url!r})"


def url_reachable(url: str, timeout: float = 5) -> bool:
    """Whether anything answers HTTP at ``url`` (any status code counts)."""
    try:
        requests.get(url, timeout=timeout)
        return True
    except requests.exceptions.RequestException:
        return False

"""Coding-agent invocation.

Two backends share one contract: ``invoke(prompt, timeout)`` always returns
an ``AgentResponse`` and never raises. Timeouts and failures come back as an
empty response so the build loop can record "no response" and move on.
"""

import asyncio
import json
import logging
import os
import re
import shutil
import subprocess
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from claude_agent_sdk import ClaudeAgentOptions, ClaudeSDKClient
from claude_agent_sdk.types import (
    AssistantMessage,
    HookMatcher,
    ResultMessage,
    SystemMessage,
    TextBlock,
)

from .config import (
    SUMMARY_MAX_LENGTH,
    AgentBackend,
    AgentSettings,
    get_gateway_token,
    get_proxy_env_vars,
)
from .tracing import TracingManager


logger = logging.getLogger(__name__)

NO_RESPONSE_SUMMARY = "No response (timeout or error)"

_CONFIDENCE_PATTERN = re.compile(
    r"confidence[\"']?\s*[:=]\s*[\"']?(\d+(?:\.\d+)?)", re.IGNORECASE
)

# Tools the agent may use inside the project directory
ALLOWED_TOOLS = ["Read", "Glob", "Grep", "Write", "Edit", "MultiEdit", "Bash"]
WRITE_TOOLS = ("Write", "Edit", "MultiEdit")


def extract_confidence(text: Optional[str]) -> Optional[int]:
    """
    Read a self-reported ``CONFIDENCE: N`` score from agent output.

    The last occurrence wins. Decimals are rounded. Values outside 0-10 and
    text without a score yield None.

    Args:
        text: Raw agent response

    Returns:
        Score 0-10, or None
    """
    if not text:
        return None
    matches = _CONFIDENCE_PATTERN.findall(text)
    if not matches:
        return None
    try:
        score = round(float(matches[-1]))
    except ValueError:
        return None
    if 0 <= score <= 10:
        return score
    return None


def summarize_response(text: Optional[str], limit: int = SUMMARY_MAX_LENGTH) -> str:
    """
    Short summary of an agent response for cycle history.

    JSON responses are unwrapped to their ``content`` or ``result`` field.
    The confidence line is dropped and whitespace collapsed.

    Args:
        text: Raw agent response
        limit: Maximum summary length

    Returns:
        Summary text, or the no-response marker for empty input
    """
    if not text or not text.strip():
        return NO_RESPONSE_SUMMARY

    body = text
    try:
        data = json.loads(text)
    except ValueError:
        data = None
    if isinstance(data, dict):
        body = str(data.get("content") or data.get("result") or data)

    body = _CONFIDENCE_PATTERN.sub("", body)
    body = " ".join(body.split())
    return body[:limit] or NO_RESPONSE_SUMMARY


@dataclass
class AgentResponse:
    """Result of one agent invocation."""

    text: str = ""
    timed_out: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    @property
    def confidence(self) -> Optional[int]:
        return extract_confidence(self.text)

    @property
    def summary(self) -> str:
        return summarize_response(self.text)


class CodingAgent:
    """Base class for coding-agent backends."""

    backend: AgentBackend

    def __init__(
        self,
        settings: AgentSettings,
        output_dir: Path,
        session_id: Optional[str] = None,
        tracing: Optional[TracingManager] = None,
    ) -> None:
        self.settings = settings
        self.output_dir = output_dir
        self.session_id = session_id
        self.tracing = tracing or TracingManager()

    def invoke(self, prompt: str, timeout: float) -> AgentResponse:
        """
        Send ``prompt`` and wait up to ``timeout`` seconds for the answer.

        Args:
            prompt: Full prompt text
            timeout: Seconds to wait

        Returns:
            AgentResponse; empty on timeout or failure
        """
        start = time.monotonic()
        with self.tracing.span(
            "agent_call", backend=self.backend.value, timeout=timeout
        ) as span:
            response = self._invoke(prompt, max(1.0, timeout))
            response.duration_seconds = round(time.monotonic() - start, 1)
            span.set_attribute("agent.response_length", len(response.text))
            span.set_attribute("agent.timed_out", response.timed_out)
        if response.error:
            logger.warning("Agent call failed: %s", response.error)
        return response

    def _invoke(self, prompt: str, timeout: float) -> AgentResponse:
        raise NotImplementedError


def _capture_session_id(message: Any, current_session_id: Optional[str]) -> Optional[str]:
    """Extract session ID from message if available."""
    if not isinstance(message, (SystemMessage, ResultMessage)):
        return current_session_id

    session_id = getattr(message, "session_id", None) or (
        getattr(message, "data", {}).get("session_id")
        if hasattr(message, "data")
        else None
    )
    return session_id if session_id else current_session_id


def _is_within(path: str, root: Path) -> bool:
    try:
        resolved = (root / path).resolve() if not os.path.isabs(path) else Path(path).resolve()
        resolved.relative_to(root.resolve())
        return True
    except ValueError:
        return False


def make_write_guard(project_root: Path):
    """PreToolUse hook that denies file writes outside ``project_root``."""

    async def write_guard(
        input_data: dict[str, Any],
        tool_use_id: Optional[str] = None,
        context: Any = None,
    ) -> dict[str, Any]:
        if not isinstance(input_data, dict):
            return {}
        if input_data.get("tool_name") not in WRITE_TOOLS:
            return {}
        tool_input = input_data.get("tool_input") or {}
        file_path = tool_input.get("file_path")
        if not file_path or _is_within(file_path, project_root):
            return {}

        reason = f"Writes are restricted to {project_root}; refused {file_path}"
        print(f"🚨 BLOCKED {input_data['tool_name']}: {reason}")
        return {
            "hookSpecificOutput": {
                "hookEventName": "PreToolUse",
                "permissionDecision": "deny",
                "permissionDecisionReason": reason,
            }
        }

    return write_guard


class ClaudeAgent(CodingAgent):
    """Claude Code driven through the Claude Agent SDK.

    The CLI talks to a local model proxy (``ANTHROPIC_BASE_URL``), so the
    coding model is whatever the proxy serves. The session id reported by the
    CLI is kept and passed back as ``resume`` so the agent remembers earlier
    cycles.
    """

    backend = AgentBackend.CLAUDE

    def _options(self) -> ClaudeAgentOptions:
        cli_path = shutil.which("claude")
        return ClaudeAgentOptions(
            model=self.settings.model,
            cli_path=cli_path,
            allowed_tools=ALLOWED_TOOLS,
            permission_mode="acceptEdits",
            hooks={
                "PreToolUse": [
                    HookMatcher(matcher="*", hooks=[make_write_guard(self.output_dir)]),
                ],
            },
            resume=self.session_id,
            env=get_proxy_env_vars(self.settings),
            max_turns=1000,
            cwd=str(self.output_dir),
        )

    async def _query(self, prompt: str) -> str:
        chunks: list[str] = []
        result_text = ""

        async with ClaudeSDKClient(options=self._options()) as client:
            await client.query(prompt)
            async for message in client.receive_response():
                self.session_id = _capture_session_id(message, self.session_id)
                if isinstance(message, AssistantMessage):
                    for block in message.content:
                        if isinstance(block, TextBlock):
                            chunks.append(block.text)
                elif isinstance(message, ResultMessage) and message.result:
                    result_text = message.result

        return result_text or "\n".join(chunks)

    def _invoke(self, prompt: str, timeout: float) -> AgentResponse:
        try:
            text = asyncio.run(asyncio.wait_for(self._query(prompt), timeout=timeout))
        except TimeoutError:
            return AgentResponse(timed_out=True)
        except Exception as e:
            return AgentResponse(error=f"{type(e).__name__}: {e}")
        return AgentResponse(text=text or "")


class OpenClawAgent(CodingAgent):
    """OpenClaw agent CLI talking to a local gateway.

    The session id is generated once per run and passed on every call, so the
    gateway keeps conversational memory across cycles.
    """

    backend = AgentBackend.OPENCLAW

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if not self.session_id:
            self.session_id = f"tritium-{uuid.uuid4().hex[:12]}"

    def _command(self, prompt: str, timeout: float) -> list[str]:
        return [
            "openclaw",
            "agent",
            "--session-id",
            str(self.session_id),
            "--message",
            prompt,
            "--thinking",
            self.settings.thinking,
            "--timeout",
            str(int(timeout)),
        ]

    def _invoke(self, prompt: str, timeout: float) -> AgentResponse:
        env = {**os.environ, "OPENCLAW_GATEWAY_TOKEN": get_gateway_token()}
        try:
            result = subprocess.run(
                self._command(prompt, timeout),
                capture_output=True,
                text=True,
                # Grace period for the CLI to report its own timeout
                timeout=timeout + 30,
                cwd=self.output_dir,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return AgentResponse(timed_out=True)
        except OSError as e:
            return AgentResponse(error=str(e))

        if result.returncode != 0:
            stderr = result.stderr.strip().splitlines()
            return AgentResponse(
                error=f"openclaw exited {result.returncode}: "
                + (stderr[-1] if stderr else "no output")
            )
        return AgentResponse(text=result.stdout)


def create_agent(
    settings: AgentSettings,
    output_dir: Path,
    session_id: Optional[str] = None,
    tracing: Optional[TracingManager] = None,
) -> CodingAgent:
    """Build the agent for the configured backend."""
    if settings.backend == AgentBackend.OPENCLAW:
        return OpenClawAgent(settings, output_dir, session_id, tracing)
    return ClaudeAgent(settings, output_dir, session_id, tracing)

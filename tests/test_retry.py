"""Tests for tritium/retry.py - Retry logic with exponential backoff."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from tritium.retry import (
    RETRY_STATUS_CODES,
    RetryConfig,
    calculate_delay,
    is_transient_error,
    with_retry,
)


def _http_error(status: int) -> requests.exceptions.HTTPError:
    response = MagicMock(spec=requests.Response)
    response.status_code = status
    error = requests.exceptions.HTTPError(f"{status} error")
    error.response = response
    return error


class TestRetryConfig:
    """Tests for RetryConfig dataclass."""

    def test_default_values(self) -> None:
        """RetryConfig has short defaults suited to a local runtime."""
        config = RetryConfig()
        assert config.max_retries == 2
        assert config.base_delay == 1.0
        assert config.max_delay == 10.0
        assert config.exponential_base == 2.0
        assert config.jitter is True


class TestStatusCodes:
    """Tests for the retried status codes."""

    def test_loading_model_is_retried(self) -> None:
        """503 is what Ollama answers while a model loads."""
        assert 503 in RETRY_STATUS_CODES
        assert 429 in RETRY_STATUS_CODES

    def test_missing_model_is_not_retried(self) -> None:
        """404 means the model does not exist."""
        assert 404 not in RETRY_STATUS_CODES


class TestIsTransientError:
    """Tests for is_transient_error."""

    def test_http_status_from_response(self) -> None:
        """requests HTTPError status codes are classified."""
        assert is_transient_error(_http_error(503)) is True
        assert is_transient_error(_http_error(404)) is False

    def test_status_code_attribute(self) -> None:
        """A status_code attribute on the error is used."""
        error = Exception("server")
        error.status_code = 502  # type: ignore[attr-defined]
        assert is_transient_error(error) is True

    def test_connection_error_is_transient(self) -> None:
        """A refused connection is retried."""
        assert is_transient_error(requests.exceptions.ConnectionError("refused")) is True
        assert is_transient_error(ConnectionResetError("reset")) is True

    def test_read_timeout_is_not_retried(self) -> None:
        """A read timeout is not retried."""
        assert is_transient_error(requests.exceptions.ReadTimeout("slow")) is False

    def test_message_patterns(self) -> None:
        """Known transient messages are retried, others are not."""
        assert is_transient_error(Exception("model is loading, try later")) is True
        assert is_transient_error(ValueError("bad payload")) is False


class TestCalculateDelay:
    """Tests for calculate_delay."""

    def test_exponential_growth(self) -> None:
        """Delay doubles each attempt without jitter."""
        config = RetryConfig(jitter=False)
        assert calculate_delay(0, config) == 1.0
        assert calculate_delay(1, config) == 2.0
        assert calculate_delay(2, config) == 4.0

    def test_capped_at_max_delay(self) -> None:
        """Delay never exceeds max_delay."""
        assert calculate_delay(10, RetryConfig(jitter=False)) == 10.0

    def test_jitter_range(self) -> None:
        """Jitter keeps the delay between half and one and a half times the base."""
        config = RetryConfig(base_delay=2.0)
        for _ in range(20):
            assert 1.0 <= calculate_delay(0, config) <= 3.0


def _flaky(*outcomes: object) -> tuple[list[int], object]:
    """Function that raises or returns ``outcomes`` in order, counting calls."""
    calls: list[int] = []

    def list_models() -> object:
        calls.append(1)
        outcome = outcomes[len(calls) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return calls, list_models


class TestWithRetry:
    """Tests for the with_retry decorator."""

    @pytest.fixture(autouse=True)
    def no_sleep(self):
        with patch("tritium.retry.time.sleep") as sleep:
            yield sleep

    def test_success_first_try(self) -> None:
        """A successful call is not retried."""
        calls, func = _flaky("ok")
        assert with_retry()(func)() == "ok"
        assert len(calls) == 1

    def test_retries_transient_then_succeeds(self, no_sleep: MagicMock) -> None:
        """Transient failures are retried with a pause."""
        calls, func = _flaky(requests.exceptions.ConnectionError("refused"), "ok")
        assert with_retry(RetryConfig(jitter=False))(func)() == "ok"
        assert len(calls) == 2
        no_sleep.assert_called_once_with(1.0)

    def test_permanent_error_not_retried(self, no_sleep: MagicMock) -> None:
        """A missing model raises immediately."""
        calls, func = _flaky(_http_error(404))
        with pytest.raises(requests.exceptions.HTTPError):
            with_retry()(func)()
        assert len(calls) == 1
        no_sleep.assert_not_called()

    def test_gives_up_after_max_retries(self) -> None:
        """The last transient error is raised after max_retries."""
        calls, func = _flaky(*[_http_error(503)] * 4)
        with pytest.raises(requests.exceptions.HTTPError):
            with_retry(RetryConfig(max_retries=3))(func)()
        assert len(calls) == 4

    def test_keeps_function_name(self) -> None:
        """The wrapper keeps the wrapped function's name."""
        _, func = _flaky("ok")
        assert with_retry()(func).__name__ == "list_models"

    def test_passes_arguments(self) -> None:
        """Arguments reach the wrapped function."""

        @with_retry()
        def add(a: int, b: int = 0) -> int:
            return a + b

        assert add(2, b=3) == 5

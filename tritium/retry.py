"""Retry with backoff for requests against the local model runtime.

A runtime that is still loading or swapping a model answers 503, or
refuses connections for a few seconds. Those calls are retried. Missing
models, bad requests and slow generations fail on the first attempt.
"""

import functools
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

import requests


logger = logging.getLogger(__name__)

T = TypeVar("T")
P = ParamSpec("P")


@dataclass
class RetryConfig:
    """Backoff settings for runtime requests.

    Attributes:
        max_retries: Attempts after the first one
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between retries
        jitter: Spread delays between 0.5x and 1.5x
    """

    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True


# Rate limiting, server errors, and 503 while a model loads
RETRY_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

LOADING_MESSAGES = (
    "model is loading",
    "loading model",
    "server busy",
    "connection refused",
    "connection reset",
)


def response_status(error: Exception) -> int | None:
    """HTTP status carried by ``error`` or by its response, if any."""
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(getattr(error, "response", None), "status_code", None)
    return status


def is_transient_error(error: Exception) -> bool:
    """Whether a failed runtime request is worth another attempt."""
    # The caller's timeout already covered a slow generation
    if isinstance(error, requests.exceptions.ReadTimeout):
        return False
    if isinstance(error, (requests.exceptions.ConnectionError, ConnectionError)):
        return True

    status = response_status(error)
    if status is not None:
        return status in RETRY_STATUS_CODES

    message = str(error).lower()
    return any(phrase in message for phrase in LOADING_MESSAGES)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff before retry ``attempt`` (0-based), capped at ``max_delay``."""
    delay = min(config.base_delay * config.exponential_base**attempt, config.max_delay)
    if config.jitter:
        return delay * random.uniform(0.5, 1.5)
    return delay


def with_retry(
    config: RetryConfig | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator that retries transient runtime failures with backoff.

    Permanent errors are raised on the first attempt. Once retries run out
    the last error is raised.

    Args:
        config: Retry configuration (uses defaults if None)

    Example:
        @with_retry(RetryConfig(max_retries=3))
        def list_models():
            response = session.get(f"{base_url}/api/tags", timeout=5)
            response.raise_for_status()
            return response.json()
    """
    config = config or RetryConfig()

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if attempt >= config.max_retries or not is_transient_error(e):
                        raise
                    delay = calculate_delay(attempt, config)
                    attempt += 1
                    logger.info(
                        "%s failed (%s), retry %d/%d in %.1fs",
                        func.__name__,
                        e,
                        attempt,
                        config.max_retries,
                        delay,
                    )
                    time.sleep(delay)

        return wrapper

    return decorator

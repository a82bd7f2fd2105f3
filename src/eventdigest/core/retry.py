"""
Transport-level retry with exponential backoff.

Used inside the external capabilities (OpenAI calls, Slack webhook posts).
Whole flush attempts are never retried here: a failed flush leaves its events
pending and the next webhook or sweep picks the batch up again.
"""

import dataclasses
import functools
import logging
import random
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

import httpx
from openai import APIConnectionError, APITimeoutError, InternalServerError, RateLimitError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 60.0
DEFAULT_EXPONENTIAL_BASE = 2.0
DEFAULT_JITTER_FACTOR = 0.1


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    exponential_base: float = DEFAULT_EXPONENTIAL_BASE
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,)

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay for a given attempt number using exponential backoff.

        Args:
            attempt: The current attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base**attempt)
        jitter = delay * self.jitter_factor * (2 * random.random() - 1)
        return min(delay + jitter, self.max_delay)


class RetryError(Exception):
    """Raised when all retries are exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Exception | None = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


OPENAI_RETRY_CONFIG = RetryConfig(
    max_retries=3,
    base_delay=1.0,
    max_delay=60.0,
    retryable_exceptions=(
        APIConnectionError,
        APITimeoutError,
        RateLimitError,
        InternalServerError,
    ),
)

# Only transport failures are retried; an HTTP error status from Slack is final
DELIVERY_RETRY_CONFIG = RetryConfig(
    max_retries=2,
    base_delay=0.5,
    max_delay=10.0,
    jitter_factor=0.2,
    retryable_exceptions=(httpx.TransportError,),
)


# "database is locked" surfaces as OperationalError when a sweep and a webhook
# invocation write at the same moment
DATABASE_RETRY_CONFIG = RetryConfig(
    max_retries=3,
    base_delay=0.1,
    max_delay=5.0,
    retryable_exceptions=(sqlite3.OperationalError,),
)


def call_with_retry(
    func: Callable[[], T],
    config: RetryConfig | None = None,
    description: str | None = None,
    on_retry: Callable[[int, Exception], None] | None = None,
) -> T:
    """
    Call ``func`` and retry it on the configured exceptions.

    Args:
        func: Zero-argument callable to execute
        config: Retry configuration (defaults to RetryConfig())
        description: Name used in log messages
        on_retry: Callback invoked with (attempt, error) before each retry

    Returns:
        Whatever ``func`` returns

    Raises:
        RetryError: When every attempt failed with a retryable exception.
            Non-retryable exceptions propagate unchanged.
    """
    config = config or RetryConfig()
    name = description or getattr(func, "__name__", "call")
    attempts = 0

    while True:
        try:
            return func()
        except config.retryable_exceptions as e:
            attempts += 1

            if attempts > config.max_retries:
                logger.error(f"All {config.max_retries} retries exhausted for {name}: {e}")
                raise RetryError(
                    f"Failed after {attempts} attempts: {e}",
                    attempts=attempts,
                    last_error=e,
                ) from e

            delay = config.calculate_delay(attempts - 1)
            logger.warning(
                f"Retry {attempts}/{config.max_retries} for {name} after {delay:.2f}s: {e}"
            )

            if on_retry:
                on_retry(attempts, e)

            time.sleep(delay)


def retry_with_backoff(
    config: RetryConfig | None = None,
    max_retries: int | None = None,
    base_delay: float | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator form of :func:`call_with_retry`.

    Usage:
        @retry_with_backoff(config=OPENAI_RETRY_CONFIG)
        def call_llm():
            ...
    """
    # Copy so overrides never mutate the shared module-level configs
    config = dataclasses.replace(config) if config is not None else RetryConfig()
    if max_retries is not None:
        config.max_retries = max_retries
    if base_delay is not None:
        config.base_delay = base_delay

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return call_with_retry(
                lambda: func(*args, **kwargs),
                config=config,
                description=func.__name__,
            )

        return wrapper

    return decorator

"""
Retry Logic — riding out a busy summarization endpoint.

Summarization requests are cheap to repeat and not urgent, so the policy is
deliberately simple: a fixed number of attempts with a linearly growing pause
(2 s, then 4 s, ...). Rate limits, gateway timeouts and "model overloaded"
answers are retried, as is any transport-level failure. Everything else (bad
key, bad request, unknown model) fails at once.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 503, 504})
RETRYABLE_BODY_MARKERS = ("overloaded", "UNAVAILABLE")


class SummaryAPIError(Exception):
    """A non-2xx answer from the summarization endpoint."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body or ""
        super().__init__(f"HTTP {status_code}: {self.body[:200]}")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        timeout: float = 30.0,
    ):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.timeout = timeout


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if an error is transient and worth retrying.

    Retryable:
    - 429 (rate limit), 503 (unavailable), 504 (gateway timeout)
    - any answer whose body says the model is overloaded or UNAVAILABLE
    - transport errors: connect/read failures, timeouts, dropped sockets

    NOT retryable:
    - 400, 401, 403, 404 and other client errors
    - anything that is not an HTTP or network failure
    """
    if isinstance(error, SummaryAPIError):
        if error.status_code in RETRYABLE_STATUS_CODES:
            return True
        return any(marker in error.body for marker in RETRYABLE_BODY_MARKERS)
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    return False


def compute_delay(attempt: int, config: RetryConfig) -> float:
    """Pause before retry number ``attempt`` (1-based): ``base_delay × attempt``."""
    return config.base_delay * max(1, attempt)


async def with_retries(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, Exception, float], Any]] = None,
) -> T:
    """
    Execute an async function with retry logic.

    Args:
        func: The async function to execute (no arguments, use a closure)
        config: Retry configuration (uses defaults if not specified)
        on_retry: Optional callback (sync or async) receiving attempt, error, delay

    Returns:
        The result of the function call

    Raises:
        The last error if it is not retryable or all attempts are used up
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await func()
        except Exception as e:
            if not is_retryable_error(e):
                logger.error(
                    "retry.non_retryable_error",
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                    attempt=attempt,
                )
                raise

            if attempt >= config.max_attempts:
                logger.error(
                    "retry.exhausted",
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                    total_attempts=attempt,
                )
                raise

            delay = compute_delay(attempt, config)
            logger.warning(
                "retry.attempt",
                error_type=type(e).__name__,
                error=str(e)[:200],
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 1),
            )

            if on_retry:
                result = on_retry(attempt, e, delay)
                if inspect.isawaitable(result):
                    await result

            await asyncio.sleep(delay)

    raise RuntimeError("with_retries exited without a result")

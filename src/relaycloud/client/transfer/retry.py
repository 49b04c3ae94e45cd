"""Retry logic with exponential backoff.

This module provides:
- backoff_delay: Delay before a given attempt
- is_retryable: Structured classification of an exception
- retry_with_backoff: Async retry loop honoring server wait hints
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from relaycloud.client.api import APIError, ErrorKind
from relaycloud.core.types import IntegrityError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0


def backoff_delay(
    attempt: int,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
) -> float:
    """Delay to wait before a 1-based attempt number.

    Attempt 1 runs immediately; attempt k > 1 waits
    initial_backoff * multiplier ** (k - 2), i.e. 1, 2, 4, 8s by default.
    """
    if attempt <= 1:
        return 0.0
    return initial_backoff * multiplier ** (attempt - 2)


def error_kind(error: BaseException) -> ErrorKind | None:
    """Classification of an exception, None for unclassified errors."""
    if isinstance(error, APIError):
        return error.kind
    if isinstance(error, IntegrityError):
        # Empty or corrupted transfer, another attempt may succeed
        return ErrorKind.TRANSIENT_NETWORK
    return None


def is_retryable(error: BaseException) -> bool:
    """Check if an exception should consume an attempt and retry."""
    kind = error_kind(error)
    return kind is not None and kind.is_transient


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """Execute a coroutine function with exponential backoff retry.

    Transient failures consume an attempt and retry after the computed
    backoff, or after the server's retry_after hint when that is larger.
    Anything else is raised at once.

    Args:
        func: Coroutine function to execute.
        max_attempts: Total attempts, including the first.
        initial_backoff: Delay before the second attempt.
        sleep: Coroutine function used to wait.
        on_retry: Optional callback (next_attempt, error, delay).

    Returns:
        Result of the function.

    Raises:
        The last exception if all attempts fail, or the first
        non-retryable exception.
    """
    last_error: BaseException | None = None

    for attempt in range(1, max_attempts + 1):
        if attempt > 1:
            delay = backoff_delay(attempt, initial_backoff)
            hint = getattr(last_error, "retry_after", None)
            if hint is not None and hint > delay:
                delay = hint
            if on_retry:
                on_retry(attempt, last_error, delay)  # type: ignore[arg-type]
            await sleep(delay)

        try:
            return await func()
        except Exception as e:
            if not is_retryable(e):
                raise
            last_error = e
            if attempt == max_attempts:
                logger.error(f"All {max_attempts} attempts failed: {e}")
                raise
            logger.warning(f"Attempt {attempt}/{max_attempts} failed: {e}")

    # Should not reach here, but satisfy type checker
    raise RuntimeError("Unexpected retry loop exit")

"""Retry logic with exponential backoff.

This module provides:
- retry_with_backoff: Exponential backoff retry, interruptible by a cancel check
- backoff_delays: The delay sequence used between attempts
- RetryAbortedError: Raised when a cancel check stops further attempts
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from typing import Any

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF = 5.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0


class RetryAbortedError(Exception):
    """Retries were abandoned because cancellation was requested.

    Attributes:
        last_exception: The failure that preceded the aborted wait.
    """

    def __init__(self, last_exception: Exception) -> None:
        super().__init__(f"retry aborted after: {last_exception}")
        self.last_exception = last_exception


def backoff_delays(
    max_retries: int,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    max_backoff: float | None = None,
) -> Iterator[float]:
    """Yield the wait before each retry: attempt k waits initial * multiplier^(k-1)."""
    backoff = initial_backoff
    for _ in range(max_retries):
        yield backoff if max_backoff is None else min(backoff, max_backoff)
        backoff *= backoff_multiplier


def retry_with_backoff(
    func: Callable[[], Any],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    max_backoff: float | None = None,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], Any] = time.sleep,
    should_abort: Callable[[], bool] | None = None,
) -> Any:
    """Execute a function with exponential backoff retry.

    The function runs at most ``max_retries + 1`` times.

    Args:
        func: Function to execute.
        max_retries: Maximum number of retry attempts after the first.
        initial_backoff: Wait before the first retry, in seconds.
        backoff_multiplier: Multiplier applied to the wait for each further retry.
        max_backoff: Optional cap on a single wait.
        retryable_exceptions: Tuple of exception types to retry on.
        sleep: Function used to wait between attempts.
        should_abort: Checked after each wait; returning True stops retrying.

    Returns:
        Result of the function.

    Raises:
        RetryAbortedError: If should_abort returned True.
        The last exception if all retries fail.
    """
    delays = backoff_delays(max_retries, initial_backoff, backoff_multiplier, max_backoff)
    attempt = 0

    while True:
        attempt += 1
        try:
            return func()
        except retryable_exceptions as e:
            delay = next(delays, None)
            if delay is None:
                logger.debug(f"All {max_retries} retries failed: {e}")
                raise

            logger.debug(
                f"Attempt {attempt}/{max_retries + 1} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            sleep(delay)
            if should_abort is not None and should_abort():
                raise RetryAbortedError(e) from e

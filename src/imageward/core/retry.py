"""Bounded retry with backoff for engine operations"""

import logging
import time
from typing import Callable, Optional, TypeVar

from imageward.core.errors import APIFailure, RetriesExhausted, TransportFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE = "retryable"
FATAL = "fatal"

BACKOFF_CONSTANT = "constant"
BACKOFF_LINEAR = "linear"
BACKOFF_SHAPES = (BACKOFF_CONSTANT, BACKOFF_LINEAR)


def classify_failure(error: BaseException) -> str:
    """Classify an exception as RETRYABLE or FATAL

    Transport failures are always retryable; API failures only for 5xx,
    408 and 429. Anything else is fatal.
    """
    if isinstance(error, TransportFailure):
        return RETRYABLE
    if isinstance(error, APIFailure) and error.retryable:
        return RETRYABLE
    return FATAL


class RetryPolicy:
    """How often and how patiently to re-invoke a failing operation"""

    def __init__(self, max_attempts: int = 3, delay: float = 1.0, backoff: str = BACKOFF_LINEAR,
                 classify: Callable[[BaseException], str] = classify_failure,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize retry policy

        Args:
            max_attempts: Total attempts including the first (>= 1)
            delay: Base delay in seconds between attempts
            backoff: 'constant' (always delay) or 'linear' (delay * attempt)
            classify: Maps an exception to RETRYABLE or FATAL
            sleep: Sleep function, replaceable in tests
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if delay < 0:
            raise ValueError("delay must not be negative")
        if backoff not in BACKOFF_SHAPES:
            raise ValueError(f"Unknown backoff shape: {backoff}")

        self.max_attempts = max_attempts
        self.delay = delay
        self.backoff = backoff
        self.classify = classify
        self.sleep = sleep

    def wait_time(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt"""
        if self.backoff == BACKOFF_LINEAR:
            return self.delay * attempt
        return self.delay


def with_retries(policy: RetryPolicy, operation: Callable[[], T], description: Optional[str] = None) -> T:
    """Run an operation, retrying retryable failures

    Args:
        policy: Retry policy
        operation: Zero-argument callable; must be safe to repeat
        description: Human readable name used in logs and errors

    Returns:
        Whatever the operation returned

    Raises:
        RetriesExhausted: If every attempt failed with a retryable error
        Exception: The original error on a fatal failure
    """
    what = description or getattr(operation, "__name__", "operation")

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return operation()
        except Exception as e:
            if policy.classify(e) != RETRYABLE:
                logger.error(f"{what} failed: {e}")
                raise

            if attempt >= policy.max_attempts:
                logger.error(f"{what} failed after {attempt} attempt(s): {e}")
                raise RetriesExhausted(e, attempt, what) from e

            wait = policy.wait_time(attempt)
            logger.warning(
                f"{what} failed (attempt {attempt}/{policy.max_attempts}): {e}; retrying in {wait:.1f}s"
            )
            policy.sleep(wait)

    # max_attempts >= 1 guarantees the loop returns or raises
    raise AssertionError("unreachable")

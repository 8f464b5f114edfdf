"""
Retry configuration for idempotent backend reads.

Centralized retry logic using tenacity for exponential backoff. Only
read-only calls whose repetition cannot change server state are decorated;
run submission, status polling and every mutating call are never retried
(a retried submission could start a duplicate job, and the poll loop has its
own stop-on-error policy).

Key features:
- Exponential backoff with configurable min/max wait times
- Retry on connection failures, 429 and 5xx responses
- Fail fast on client errors (400, 401, 403, 404)

Example:
    >>> from geo_tracker.api.retry_config import create_retry_decorator
    >>> @create_retry_decorator()
    ... async def check_health():
    ...     ...
"""

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from geo_tracker.exceptions import TransportError

# ============================================================================
# RETRY CONSTANTS
# ============================================================================

# Total attempts = 1 initial + 2 retries
MAX_ATTEMPTS = 3

MIN_WAIT_SECONDS = 1

MAX_WAIT_SECONDS = 10

# 429: Rate limit exceeded
# 500-504: Server errors
RETRY_STATUS_CODES = frozenset([429, 500, 502, 503, 504])

# HTTP request timeout in seconds, per attempt
REQUEST_TIMEOUT = 30.0


def is_retryable(exc: BaseException) -> bool:
    """
    Decide whether a failed read is worth repeating.

    Connection-level failures (no status code) and RETRY_STATUS_CODES are
    retryable; every other HTTP error is permanent.
    """
    if not isinstance(exc, TransportError):
        return False
    return exc.status_code is None or exc.status_code in RETRY_STATUS_CODES


# ============================================================================
# RETRY DECORATOR FACTORY
# ============================================================================


def create_retry_decorator():
    """
    Create a tenacity retry decorator for idempotent backend reads.

    Returns a configured retry decorator with:
    - Exponential backoff (1s min, 10s max)
    - Max 3 attempts total
    - Retry only when is_retryable() approves the TransportError

    Returns:
        Retry decorator; the last exception is re-raised unchanged
    """
    return retry(
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=1,
            min=MIN_WAIT_SECONDS,
            max=MAX_WAIT_SECONDS,
        ),
        retry=retry_if_exception(is_retryable),
        reraise=True,
    )

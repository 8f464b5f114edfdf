"""
Tests for api/retry_config.py module.

Test coverage:
- Constants
- is_retryable classification
- Retry behavior on transient errors and fail-fast on permanent ones
"""

import pytest

from geo_tracker.api.retry_config import (
    MAX_ATTEMPTS,
    RETRY_STATUS_CODES,
    create_retry_decorator,
    is_retryable,
)
from geo_tracker.exceptions import TransportError, ValidationError

# ============================================================================
# CONSTANTS TESTS
# ============================================================================


def test_max_attempts_value():
    """MAX_ATTEMPTS should be 3."""
    assert MAX_ATTEMPTS == 3


def test_retry_status_codes_values():
    """RETRY_STATUS_CODES should include 429 and 5xx errors."""
    assert {429, 500, 502, 503, 504} == RETRY_STATUS_CODES


# ============================================================================
# CLASSIFICATION TESTS
# ============================================================================


@pytest.mark.parametrize("status_code", [None, 429, 500, 502, 503, 504])
def test_transient_errors_retryable(status_code):
    """Connection failures and 429/5xx should be retried."""
    assert is_retryable(TransportError("boom", status_code=status_code)) is True


@pytest.mark.parametrize("status_code", [400, 401, 403, 404, 422])
def test_permanent_errors_not_retryable(status_code):
    """Client errors should fail fast."""
    assert is_retryable(TransportError("boom", status_code=status_code)) is False


def test_other_exceptions_not_retryable():
    """Only TransportError is considered."""
    assert is_retryable(ValidationError("bad input")) is False
    assert is_retryable(RuntimeError("bug")) is False


# ============================================================================
# DECORATOR BEHAVIOR TESTS
# ============================================================================


@pytest.mark.asyncio
async def test_permanent_error_raised_after_one_attempt():
    """A 404 should be re-raised unchanged without retrying."""
    calls = []

    @create_retry_decorator()
    async def fetch():
        calls.append(1)
        raise TransportError("Job not found", status_code=404)

    with pytest.raises(TransportError, match="Job not found"):
        await fetch()

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_success_on_first_attempt_not_delayed():
    """A successful call returns immediately."""

    @create_retry_decorator()
    async def fetch():
        return "ok"

    assert await fetch() == "ok"


@pytest.mark.asyncio
async def test_transient_error_retried_until_success():
    """A 503 followed by success should return the success (real 1s backoff)."""
    calls = []

    @create_retry_decorator()
    async def fetch():
        calls.append(1)
        if len(calls) == 1:
            raise TransportError("API error: 503", status_code=503)
        return "ok"

    assert await fetch() == "ok"
    assert len(calls) == 2

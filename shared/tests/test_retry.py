"""
Tests for retry logic with exponential backoff.
"""

import pytest
from unittest.mock import AsyncMock, patch

from shared.errors import NetworkError, RetryableError, ValidationError
from shared.retry import retry_with_backoff


@pytest.mark.asyncio
async def test_retry_succeeds_on_first_attempt():
    """Test that function succeeds on first attempt."""
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=0.01)
    async def successful_function():
        nonlocal call_count
        call_count += 1
        return "success"

    assert await successful_function() == "success"
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_succeeds_after_retries():
    """Test that function succeeds after retries."""
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=0.01)
    async def retryable_function():
        nonlocal call_count
        call_count += 1
        if call_count < 2:
            raise RetryableError("Temporary failure")
        return "success"

    assert await retryable_function() == "success"
    assert call_count == 2


@pytest.mark.asyncio
async def test_retry_fails_after_max_attempts():
    """Test that the last error propagates after max attempts."""
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=0.01)
    async def always_fails():
        nonlocal call_count
        call_count += 1
        raise RetryableError("Always fails")

    with pytest.raises(RetryableError, match="Always fails"):
        await always_fails()
    assert call_count == 3


@pytest.mark.asyncio
async def test_retry_does_not_retry_other_errors():
    """Test that non-retryable errors propagate immediately."""
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=0.01)
    async def invalid():
        nonlocal call_count
        call_count += 1
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        await invalid()
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_single_attempt_raises_immediately():
    """Test that max_attempts=1 makes exactly one call."""
    call_count = 0

    @retry_with_backoff(max_attempts=1, base_delay=0.01, retryable_exceptions=(NetworkError,))
    async def fetch():
        nonlocal call_count
        call_count += 1
        raise NetworkError("HTTP 503", status_code=503)

    with pytest.raises(NetworkError) as exc_info:
        await fetch()
    assert exc_info.value.status_code == 503
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_backoff_delays():
    """Test that delays grow exponentially."""
    @retry_with_backoff(max_attempts=3, base_delay=2)
    async def always_fails():
        raise RetryableError("fail")

    with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        with pytest.raises(RetryableError):
            await always_fails()

    assert [c.args[0] for c in mock_sleep.call_args_list] == [2, 4]


def test_retry_sync_function():
    """Test that sync functions are retried too."""
    call_count = 0

    @retry_with_backoff(max_attempts=2, base_delay=0)
    def flaky():
        nonlocal call_count
        call_count += 1
        if call_count == 1:
            raise RetryableError("once")
        return 42

    assert flaky() == 42
    assert call_count == 2

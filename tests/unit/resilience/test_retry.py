"""Unit tests for retry logic"""
import asyncio
import pytest

from rewards.exceptions import StorageUnavailableError, StorageWriteError
from rewards.resilience.metrics import storage_retries_total
from rewards.resilience.retry import (
    retry_with_backoff,
    with_retry,
    is_retryable_error,
    calculate_backoff,
    MAX_DELAY,
)


def test_is_retryable_error_transient():
    """Test that transient storage errors are retryable"""
    assert is_retryable_error(StorageUnavailableError("Redis down")) == True
    assert is_retryable_error(ConnectionError("Connection reset")) == True
    assert is_retryable_error(asyncio.TimeoutError()) == True
    assert is_retryable_error(OSError("Disk busy")) == True


def test_is_retryable_error_by_class_name():
    """Test that client errors matched by name are retryable"""
    class BusyLoadingError(Exception):
        pass

    assert is_retryable_error(BusyLoadingError("loading")) == True


def test_is_retryable_error_non_retryable():
    """Test that non-retryable errors are identified correctly"""
    assert is_retryable_error(ValueError("Bad value")) == False
    assert is_retryable_error(TypeError("Type error")) == False
    assert is_retryable_error(StorageWriteError("Rejected")) == False


def test_calculate_backoff():
    """Test exponential backoff calculation"""
    # First attempt: ~0.5s
    delay_0 = calculate_backoff(0)
    assert 0.45 <= delay_0 <= 0.55

    # Second attempt: ~1s
    delay_1 = calculate_backoff(1)
    assert 0.9 <= delay_1 <= 1.1

    # Third attempt: ~2s
    delay_2 = calculate_backoff(2)
    assert 1.8 <= delay_2 <= 2.2

    assert delay_1 > delay_0
    assert delay_2 > delay_1


def test_calculate_backoff_max_delay():
    """Test that backoff respects max delay"""
    delay = calculate_backoff(20)
    assert delay <= MAX_DELAY * 1.1


def test_calculate_backoff_zero_base():
    assert calculate_backoff(3, base_delay=0, max_delay=0) == 0


@pytest.mark.asyncio
async def test_retry_with_backoff_success_first_try():
    """Test that function succeeds on first try"""

    call_count = 0

    async def successful_function():
        nonlocal call_count
        call_count += 1
        return "success"

    result = await retry_with_backoff(successful_function, max_retries=3, base_delay=0)

    assert result == "success"
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_with_backoff_success_after_retries():
    """Test that function succeeds after some retries"""

    attempt = 0

    async def flaky_function():
        nonlocal attempt
        attempt += 1
        if attempt < 3:
            raise StorageUnavailableError("Simulated outage")
        return "success"

    before = storage_retries_total.labels(operation="flaky_function")._value.get()

    result = await retry_with_backoff(flaky_function, max_retries=3, base_delay=0)

    assert result == "success"
    assert attempt == 3
    assert storage_retries_total.labels(operation="flaky_function")._value.get() == before + 2


@pytest.mark.asyncio
async def test_retry_with_backoff_exhausted():
    """Test that retries are exhausted for persistent failures"""

    attempt = 0

    async def always_fails():
        nonlocal attempt
        attempt += 1
        raise ConnectionError("Always fails")

    with pytest.raises(ConnectionError, match="Always fails"):
        await retry_with_backoff(always_fails, max_retries=3, base_delay=0)

    # Should be called 4 times (initial + 3 retries)
    assert attempt == 4


@pytest.mark.asyncio
async def test_retry_with_backoff_non_retryable_error():
    """Test that non-retryable errors are not retried"""

    attempt = 0

    async def non_retryable_function():
        nonlocal attempt
        attempt += 1
        raise ValueError("Non-retryable error")

    with pytest.raises(ValueError, match="Non-retryable error"):
        await retry_with_backoff(non_retryable_function, max_retries=3, base_delay=0)

    assert attempt == 1


@pytest.mark.asyncio
async def test_retry_passes_arguments():
    """Test that positional and keyword arguments reach the function"""
    received = {}

    async def write(key, value, *, flag=False):
        received.update(key=key, value=value, flag=flag)

    await retry_with_backoff(write, "rewards:streak", "{}", flag=True, base_delay=0)

    assert received == {"key": "rewards:streak", "value": "{}", "flag": True}


@pytest.mark.asyncio
async def test_with_retry_decorator():
    """Test that @with_retry decorator works correctly"""

    attempt = 0

    @with_retry(max_retries=2, base_delay=0)
    async def decorated_function():
        nonlocal attempt
        attempt += 1
        if attempt < 2:
            raise StorageUnavailableError("Transient")
        return "decorated"

    result = await decorated_function()

    assert result == "decorated"
    assert attempt == 2
    assert decorated_function.__name__ == "decorated_function"

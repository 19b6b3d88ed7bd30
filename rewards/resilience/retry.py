"""Backoff retries for gateway calls

Transient storage failures (timeouts, dropped connections, I/O hiccups) are
retried with a doubling, jittered delay. Once the attempts run out the error
propagates and the record store parks the write in its deferred queue.
"""

import asyncio
import random
import logging
from typing import Callable, Any, Optional, TypeVar
from functools import wraps

from rewards.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 0.5  # seconds
MAX_DELAY = 10.0  # seconds
JITTER = 0.1  # fraction of the delay

# Transient errors raised by storage clients we don't import directly
TRANSIENT_ERROR_NAMES = {
    "ConnectionError",
    "TimeoutError",
    "BusyLoadingError",
    "TryAgainError",
}


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if a storage error is transient and should be retried.

    Retryable errors:
    - Timeouts and dropped connections
    - OS-level I/O errors (disk busy, interrupted writes)
    - StorageUnavailableError raised by gateways

    Non-retryable errors:
    - Serialization bugs (TypeError, ValueError)
    - Anything else unknown

    Args:
        exc: Error raised by a gateway call

    Returns:
        Whether another attempt is worthwhile
    """
    if isinstance(exc, StorageUnavailableError):
        return True

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError, OSError)):
        return True

    # Redis client errors (check by class name to avoid import)
    if exc.__class__.__name__ in TRANSIENT_ERROR_NAMES:
        return True

    return False


def calculate_backoff(
    attempt: int,
    base_delay: float = BASE_DELAY,
    max_delay: float = MAX_DELAY
) -> float:
    """
    Delay before retry number `attempt`.

    The base delay doubles per attempt up to max_delay, then moves by up to
    JITTER of itself in either direction. Never negative.

    Args:
        attempt: Zero-based retry number
        base_delay: Delay for the first retry
        max_delay: Upper bound before jitter

    Returns:
        Delay in seconds

    Example (base_delay=0.5):
        Attempt 0: ~0.5s
        Attempt 1: ~1s
        Attempt 2: ~2s
    """
    delay = min(base_delay * (2 ** attempt), max_delay)

    spread = JITTER * delay
    return max(delay + random.uniform(-spread, spread), 0.0)


async def retry_with_backoff(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    max_delay: float = MAX_DELAY,
    label: Optional[str] = None,
    **kwargs: Any
) -> T:
    """
    Await `func` until it succeeds, retrying transient storage errors.

    Non-retryable errors propagate at once; retryable ones propagate after
    max_retries extra attempts.

    Args:
        func: Coroutine function, usually a gateway method
        max_retries: Extra attempts after the first call
        base_delay: Delay before the first retry
        max_delay: Upper bound for a single delay
        label: Name used in logs and metrics (defaults to func.__name__)
        *args, **kwargs: Forwarded to func

    Returns:
        Whatever func returns

    Raises:
        The final error once retrying stops

    Example:
        await retry_with_backoff(gateway.set, key, payload, max_retries=3)
    """
    name = label or getattr(func, "__name__", "storage_call")

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as exc:
            if attempt >= max_retries:
                logger.error(
                    f"[RETRY] Giving up on {name} after {max_retries} retries"
                )
                raise

            if not is_retryable_error(exc):
                logger.warning(
                    f"[RETRY] {name} failed with a permanent error: "
                    f"{type(exc).__name__}: {exc}"
                )
                raise

            backoff = calculate_backoff(attempt, base_delay, max_delay)

            from rewards.resilience.metrics import record_storage_retry
            record_storage_retry(name)

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {name} "
                f"after {backoff:.2f}s (error: {type(exc).__name__})"
            )

            await asyncio.sleep(backoff)

    raise RuntimeError(f"retry loop for {name} ended without a result")


def with_retry(
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    max_delay: float = MAX_DELAY
) -> Callable:
    """
    Wrap a coroutine function in retry_with_backoff.

    Example:
        @with_retry(max_retries=3)
        async def write_record():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_with_backoff(
                func,
                *args,
                max_retries=max_retries,
                base_delay=base_delay,
                max_delay=max_delay,
                **kwargs
            )
        return wrapper
    return decorator

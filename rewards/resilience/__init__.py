"""Resilience patterns for persistence writes

This module provides retry logic with exponential backoff and metrics
collection for storage operations.
"""

from rewards.resilience.retry import retry_with_backoff, with_retry, is_retryable_error
from rewards.resilience.metrics import (
    record_storage_retry,
    record_storage_failure,
    set_deferred_writes,
    record_achievement_unlock,
    record_notification,
)

__all__ = [
    # Retry
    "retry_with_backoff",
    "with_retry",
    "is_retryable_error",
    # Metrics
    "record_storage_retry",
    "record_storage_failure",
    "set_deferred_writes",
    "record_achievement_unlock",
    "record_notification",
]

"""Prometheus metrics for the reward engine

Exposes counters for storage resilience and reward events.
Recording a metric never raises into engine code.
"""

import logging
from prometheus_client import Counter, Gauge

logger = logging.getLogger(__name__)

# Storage retry attempts
# Labels: operation (gateway call or record key)
storage_retries_total = Counter(
    'rewards_storage_retries_total',
    'Total number of storage retry attempts',
    ['operation']
)

# Storage failures after retries
# Labels: operation (read/write), record (record key)
storage_failures_total = Counter(
    'rewards_storage_failures_total',
    'Total number of storage operations that failed',
    ['operation', 'record']
)

# Writes waiting in the deferred retry queue
deferred_writes = Gauge(
    'rewards_deferred_writes',
    'Number of record writes waiting for a deferred retry'
)

# Achievement unlocks
# Labels: rarity (common/rare/epic/legendary)
achievements_unlocked_total = Counter(
    'rewards_achievements_unlocked_total',
    'Total number of achievements unlocked',
    ['rarity']
)

# Notifications
# Labels: type (achievement/streak_milestone/cosmetic_unlock), suppressed (true/false)
notifications_total = Counter(
    'rewards_notifications_total',
    'Total number of reward notifications enqueued',
    ['type', 'suppressed']
)


def record_storage_retry(operation: str) -> None:
    """Record a storage retry attempt"""
    try:
        storage_retries_total.labels(operation=operation).inc()
        logger.debug(f"[METRICS] Storage retry for {operation}")
    except Exception as e:
        logger.error(f"Failed to record storage retry: {e}")


def record_storage_failure(operation: str, record: str) -> None:
    """
    Record a storage failure.

    Args:
        operation: 'read' or 'write'
        record: Record key that failed
    """
    try:
        storage_failures_total.labels(operation=operation, record=record).inc()
        logger.debug(f"[METRICS] Storage {operation} failure for {record}")
    except Exception as e:
        logger.error(f"Failed to record storage failure: {e}")


def set_deferred_writes(count: int) -> None:
    """Set the current size of the deferred write queue"""
    try:
        deferred_writes.set(count)
    except Exception as e:
        logger.error(f"Failed to record deferred writes: {e}")


def record_achievement_unlock(rarity: str) -> None:
    """Record an achievement unlock by rarity tier"""
    try:
        achievements_unlocked_total.labels(rarity=rarity).inc()
    except Exception as e:
        logger.error(f"Failed to record achievement unlock: {e}")


def record_notification(notification_type: str, suppressed: bool) -> None:
    """Record an enqueued notification"""
    try:
        notifications_total.labels(
            type=notification_type,
            suppressed='true' if suppressed else 'false'
        ).inc()
    except Exception as e:
        logger.error(f"Failed to record notification: {e}")

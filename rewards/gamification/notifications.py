"""
Reward Notification Queue

Ordered delivery of reward events to the presentation layer:
- Strict FIFO by enqueue order (priority is a display hint only)
- One notification surfaces at a time via dequeue()
- Suppression mode: when notifications are disabled, events are still
  recorded (tagged suppressed) but never reach the consumer

Disabling notifications never disables the underlying achievement, streak
or cosmetic state changes; those happen before enqueue is called.
"""

import logging
from collections import deque
from typing import Callable, Deque, List, Optional
from uuid import uuid4

from rewards.config import NOTIFICATIONS_ENABLED
from rewards.models.achievement import Achievement
from rewards.models.cosmetic import Cosmetic
from rewards.models.notification import (
    RARITY_PRIORITY,
    NotificationPriority,
    NotificationType,
    RewardNotification,
)
from rewards.models.streak import StreakMilestone
from rewards.resilience.metrics import record_notification
from rewards.utils.datetime_helpers import Clock, now_utc

logger = logging.getLogger(__name__)

NotificationListener = Callable[[RewardNotification], None]

# Suppressed events kept for inspection
SUPPRESSED_LOG_LIMIT = 100


class NotificationQueue:
    """FIFO queue of pending reward notifications"""

    def __init__(self, enabled: bool = NOTIFICATIONS_ENABLED, clock: Clock = now_utc):
        self._enabled = enabled
        self._clock = clock
        self._queue: Deque[RewardNotification] = deque()
        self._suppressed: Deque[RewardNotification] = deque(maxlen=SUPPRESSED_LOG_LIMIT)
        self._listeners: List[NotificationListener] = []

    # ==========================================================================
    # Configuration
    # ==========================================================================

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """
        Enable or disable notification display.

        Already-queued notifications stay queued; only new events are affected.
        """
        self._enabled = enabled
        logger.info(f"Notifications {'enabled' if enabled else 'disabled'}")

    def add_listener(self, listener: NotificationListener) -> Callable[[], None]:
        """
        Subscribe to visible notifications as they are enqueued.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ==========================================================================
    # Queue operations
    # ==========================================================================

    def enqueue(self, notification: RewardNotification) -> RewardNotification:
        """Append a notification, or record it as suppressed when disabled"""
        stamped = notification.model_copy(update={
            "enqueued_at": notification.enqueued_at or self._clock(),
            "suppressed": not self._enabled,
        })

        record_notification(stamped.type.value, stamped.suppressed)

        if stamped.suppressed:
            self._suppressed.append(stamped)
            logger.debug(f"Notification suppressed: {stamped.id}")
            return stamped

        self._queue.append(stamped)
        logger.debug(f"Queued notification: {stamped.id}, queue length: {len(self._queue)}")

        for listener in list(self._listeners):
            try:
                listener(stamped)
            except Exception as e:
                logger.error(f"Notification listener error: {e}", exc_info=True)

        return stamped

    def dequeue(self) -> Optional[RewardNotification]:
        """Remove and return the oldest visible notification"""
        if not self._queue:
            return None
        return self._queue.popleft()

    def peek(self) -> Optional[RewardNotification]:
        return self._queue[0] if self._queue else None

    def pending(self) -> List[RewardNotification]:
        """Queued notifications in delivery order"""
        return list(self._queue)

    def suppressed(self) -> List[RewardNotification]:
        """Recently suppressed notifications, oldest first"""
        return list(self._suppressed)

    def dismiss(self, notification_id: str) -> bool:
        """Drop a queued notification before it is displayed"""
        for notification in self._queue:
            if notification.id == notification_id:
                self._queue.remove(notification)
                return True
        return False

    def clear(self) -> None:
        self._queue.clear()
        self._suppressed.clear()

    def __len__(self) -> int:
        return len(self._queue)

    # ==========================================================================
    # Builders
    # ==========================================================================

    def notify_achievement(self, achievement: Achievement) -> RewardNotification:
        """Queue an achievement-unlocked event"""
        return self.enqueue(RewardNotification(
            id=f"achievement_{achievement.id}_{uuid4().hex[:8]}",
            type=NotificationType.ACHIEVEMENT,
            title="Achievement Unlocked!",
            message=achievement.name,
            priority=RARITY_PRIORITY[achievement.rarity],
            rarity=achievement.rarity,
            payload={"achievement": achievement.model_dump(mode="json", by_alias=True)},
        ))

    def notify_streak_milestone(self, milestone: StreakMilestone, current_streak: int) -> RewardNotification:
        """Queue a streak-milestone event"""
        return self.enqueue(RewardNotification(
            id=f"streak_{milestone.days}_{uuid4().hex[:8]}",
            type=NotificationType.STREAK_MILESTONE,
            title=f"{milestone.days}-Day Streak!",
            message=f"Amazing! You've kept your health streak going for {current_streak} days!",
            priority=NotificationPriority.HIGH if milestone.days >= 30 else NotificationPriority.NORMAL,
            payload={
                "milestone": milestone.model_dump(mode="json", by_alias=True),
                "currentStreak": current_streak,
            },
        ))

    def notify_cosmetic(self, cosmetic: Cosmetic) -> RewardNotification:
        """Queue a cosmetic-unlocked event"""
        return self.enqueue(RewardNotification(
            id=f"cosmetic_{cosmetic.id}_{uuid4().hex[:8]}",
            type=NotificationType.COSMETIC_UNLOCK,
            title="New Cosmetic Unlocked!",
            message=cosmetic.name,
            priority=RARITY_PRIORITY[cosmetic.rarity],
            rarity=cosmetic.rarity,
            payload={"cosmeticId": cosmetic.id, "category": cosmetic.category.value},
        ))

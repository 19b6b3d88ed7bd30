"""Unit tests for the reward notification queue (rewards/gamification/notifications.py)"""
import pytest

from rewards.gamification.catalog import ACHIEVEMENTS_BY_ID, COSMETICS_BY_ID
from rewards.gamification.notifications import NotificationQueue
from rewards.models.notification import NotificationPriority, NotificationType, RewardNotification
from rewards.models.streak import STREAK_MILESTONES


def _event(event_id, priority=NotificationPriority.NORMAL):
    return RewardNotification(
        id=event_id,
        type=NotificationType.ACHIEVEMENT,
        title="t",
        message="m",
        priority=priority,
    )


# ============================================================================
# Ordering
# ============================================================================

def test_delivers_in_enqueue_order_regardless_of_priority(notifications):
    """Priority is a display hint; delivery is strictly FIFO"""
    notifications.enqueue(_event("a", NotificationPriority.LOW))
    notifications.enqueue(_event("b", NotificationPriority.HIGH))
    notifications.enqueue(_event("c", NotificationPriority.NORMAL))

    delivered = [notifications.dequeue().id for _ in range(3)]

    assert delivered == ["a", "b", "c"]
    assert notifications.dequeue() is None


def test_peek_and_pending_do_not_consume(notifications):
    notifications.enqueue(_event("first"))
    notifications.enqueue(_event("second"))

    assert notifications.peek().id == "first"
    assert [n.id for n in notifications.pending()] == ["first", "second"]
    assert len(notifications) == 2


def test_enqueue_stamps_time(notifications, clock):
    stamped = notifications.enqueue(_event("x"))
    assert stamped.enqueued_at == clock()
    assert stamped.suppressed is False


def test_dismiss_and_clear(notifications):
    notifications.enqueue(_event("keep"))
    notifications.enqueue(_event("drop"))

    assert notifications.dismiss("drop") is True
    assert notifications.dismiss("missing") is False
    assert [n.id for n in notifications.pending()] == ["keep"]

    notifications.clear()
    assert len(notifications) == 0


# ============================================================================
# Suppression
# ============================================================================

def test_disabled_queue_records_but_never_surfaces(clock):
    queue = NotificationQueue(enabled=False, clock=clock)
    seen = []
    queue.add_listener(seen.append)

    event = queue.notify_achievement(ACHIEVEMENTS_BY_ID["steps_5000"])

    assert event.suppressed is True
    assert len(queue) == 0
    assert queue.dequeue() is None
    assert [n.id for n in queue.suppressed()] == [event.id]
    assert seen == []


def test_toggling_only_affects_new_events(notifications):
    notifications.enqueue(_event("before"))
    notifications.set_enabled(False)
    notifications.enqueue(_event("during"))
    notifications.set_enabled(True)
    notifications.enqueue(_event("after"))

    assert [n.id for n in notifications.pending()] == ["before", "after"]
    assert notifications.enabled is True


# ============================================================================
# Listeners
# ============================================================================

def test_listener_receives_visible_events_until_unsubscribed(notifications):
    seen = []
    unsubscribe = notifications.add_listener(seen.append)

    notifications.enqueue(_event("one"))
    unsubscribe()
    notifications.enqueue(_event("two"))

    assert [n.id for n in seen] == ["one"]


def test_listener_error_does_not_break_enqueue(notifications):
    def broken(_):
        raise RuntimeError("listener failed")

    notifications.add_listener(broken)
    notifications.enqueue(_event("still-queued"))

    assert notifications.peek().id == "still-queued"


# ============================================================================
# Builders
# ============================================================================

def test_achievement_notification_carries_payload_and_rarity_priority(notifications):
    achievement = ACHIEVEMENTS_BY_ID["streak_30"]

    event = notifications.notify_achievement(achievement)

    assert event.type == NotificationType.ACHIEVEMENT
    assert event.message == achievement.name
    assert event.priority == NotificationPriority.HIGH
    assert event.payload["achievement"]["id"] == "streak_30"
    assert event.payload["achievement"]["cosmeticRewards"] == ["background_stars"]


def test_streak_and_cosmetic_notifications(notifications):
    milestone = STREAK_MILESTONES[0]

    streak_event = notifications.notify_streak_milestone(milestone, 7)
    cosmetic_event = notifications.notify_cosmetic(COSMETICS_BY_ID["hat_crown"])

    assert streak_event.type == NotificationType.STREAK_MILESTONE
    assert streak_event.payload["currentStreak"] == 7
    assert streak_event.payload["milestone"]["achievementId"] == "streak_7"
    assert cosmetic_event.type == NotificationType.COSMETIC_UNLOCK
    assert cosmetic_event.payload == {"cosmeticId": "hat_crown", "category": "hat"}
    assert streak_event.id != cosmetic_event.id

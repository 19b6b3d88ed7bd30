"""Reward notification models"""
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import Field

from rewards.models.base import RewardModel
from rewards.models.achievement import RarityTier


class NotificationType(str, Enum):
    ACHIEVEMENT = "achievement"
    STREAK_MILESTONE = "streak_milestone"
    COSMETIC_UNLOCK = "cosmetic_unlock"


class NotificationPriority(str, Enum):
    """Display hint only; never used to reorder the queue"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


RARITY_PRIORITY = {
    RarityTier.COMMON: NotificationPriority.LOW,
    RarityTier.RARE: NotificationPriority.NORMAL,
    RarityTier.EPIC: NotificationPriority.HIGH,
    RarityTier.LEGENDARY: NotificationPriority.HIGH,
}


class RewardNotification(RewardModel):
    """A queued reward event"""
    id: str
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    rarity: Optional[RarityTier] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    enqueued_at: Optional[datetime] = None
    suppressed: bool = False

"""Achievement models for gamification"""
from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import Field

from rewards.models.base import RewardModel


class AchievementCategory(str, Enum):
    """Achievement categories"""
    HEALTH_MILESTONES = "health_milestones"
    STREAK_REWARDS = "streak_rewards"
    CHALLENGE_COMPLETION = "challenge_completion"
    EXPLORATION = "exploration"
    SPECIAL_EVENTS = "special_events"


class RarityTier(str, Enum):
    """Rarity tiers, ordered common < rare < epic < legendary"""
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @property
    def rank(self) -> int:
        return RARITY_ORDER[self]


RARITY_ORDER = {
    RarityTier.COMMON: 1,
    RarityTier.RARE: 2,
    RarityTier.EPIC: 3,
    RarityTier.LEGENDARY: 4,
}


class UnlockConditionType(str, Enum):
    """What metric an unlock condition is evaluated against"""
    STEPS = "steps"
    STREAK = "streak"
    CHALLENGE = "challenge"
    EVOLUTION = "evolution"
    CUSTOM = "custom"


class ComparisonType(str, Enum):
    """How a metric value is compared with the threshold"""
    AT_LEAST = "gte"
    EXACT = "eq"
    CONSECUTIVE = "consecutive"


class AchievementStatus(str, Enum):
    """Status filter for achievement queries"""
    EARNED = "earned"
    LOCKED = "locked"
    ALL = "all"


class UnlockCondition(RewardModel):
    """Criteria for unlocking an achievement"""
    type: UnlockConditionType
    threshold: float = Field(ge=0)
    comparison: ComparisonType = ComparisonType.AT_LEAST


class AchievementProgress(RewardModel):
    """Progress snapshot toward an achievement"""
    current: float = 0
    target: float = 0
    percentage: float = Field(default=0, ge=0, le=100)
    remaining: float = Field(default=0, ge=0)

    @classmethod
    def compute(cls, current: float, target: float) -> "AchievementProgress":
        """Build a snapshot with percentage clamped to [0, 100]"""
        if target > 0:
            percentage = min(100.0, max(0.0, 100 * current / target))
        else:
            percentage = 0.0
        return cls(
            current=current,
            target=target,
            percentage=percentage,
            remaining=max(0.0, target - current),
        )

    @classmethod
    def complete(cls, target: float) -> "AchievementProgress":
        return cls(current=target, target=target, percentage=100, remaining=0)


class Achievement(RewardModel):
    """Achievement definition plus earned state"""
    id: str = Field(min_length=1)
    name: str
    description: str
    category: AchievementCategory
    rarity: RarityTier
    icon_url: str = ""
    unlock_condition: UnlockCondition
    cosmetic_rewards: List[str] = Field(default_factory=list)
    unlocked_at: Optional[datetime] = None
    progress: Optional[AchievementProgress] = None

    @property
    def is_earned(self) -> bool:
        return self.unlocked_at is not None


class AchievementStatistics(RewardModel):
    """Aggregate metrics about earned achievements"""
    total_earned: int = 0
    total_available: int = 0
    completion_percentage: float = 0
    rarest_badge: Optional[Achievement] = None
    recent_unlocks: List[Achievement] = Field(default_factory=list)


class AchievementUnlockResult(RewardModel):
    """Result of an unlock request"""
    achievement: Achievement
    cosmetics_unlocked: List[str] = Field(default_factory=list)
    is_new_unlock: bool


class AchievementStorageData(RewardModel):
    """Persisted achievements record"""
    achievements: List[Achievement] = Field(default_factory=list)
    statistics: AchievementStatistics = Field(default_factory=AchievementStatistics)
    last_updated: datetime

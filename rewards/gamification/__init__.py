"""
Reward engines for the companion

- Achievements with cosmetic rewards
- Daily streak with a milestone ladder
- Rotating weekly challenges
- Cosmetic inventory and render layers
- FIFO reward notifications
"""

from rewards.gamification.achievement_system import AchievementService
from rewards.gamification.challenges import ChallengeService
from rewards.gamification.cosmetics import CosmeticService
from rewards.gamification.notifications import NotificationQueue
from rewards.gamification.streak_system import StreakService

__all__ = [
    "AchievementService",
    "ChallengeService",
    "CosmeticService",
    "NotificationQueue",
    "StreakService",
]

"""
Service Container - Dependency Injection Container

Wires the reward engines to one record store. Engines are lazy-loaded on
first access and constructed with their collaborators explicitly; there is
no process-wide instance.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import logging

from rewards.config import DATA_PATH, NOTIFICATIONS_ENABLED, REDIS_URL, STORAGE_BACKEND
from rewards.storage.gateway import create_storage
from rewards.storage.record_store import RecordStore
from rewards.utils.datetime_helpers import Clock, now_utc

logger = logging.getLogger(__name__)


@dataclass
class RewardContainer:
    """
    Dependency injection container for the reward engines.

    Engines are lazy-loaded on first access via properties. The record store
    and clock are injected.
    """

    store: RecordStore
    clock: Clock = now_utc
    notifications_enabled: bool = NOTIFICATIONS_ENABLED

    # Engines (lazy-loaded via properties)
    _notifications: Optional[object] = field(default=None, init=False, repr=False)
    _cosmetics: Optional[object] = field(default=None, init=False, repr=False)
    _achievements: Optional[object] = field(default=None, init=False, repr=False)
    _streak: Optional[object] = field(default=None, init=False, repr=False)
    _challenges: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def notifications(self):
        """Get NotificationQueue instance (lazy-loaded)"""
        if self._notifications is None:
            from rewards.gamification.notifications import NotificationQueue
            self._notifications = NotificationQueue(enabled=self.notifications_enabled, clock=self.clock)
            logger.debug("NotificationQueue instantiated")
        return self._notifications

    @property
    def cosmetics(self):
        """Get CosmeticService instance (lazy-loaded)"""
        if self._cosmetics is None:
            from rewards.gamification.cosmetics import CosmeticService
            self._cosmetics = CosmeticService(self.store, clock=self.clock)
            logger.debug("CosmeticService instantiated")
        return self._cosmetics

    @property
    def achievements(self):
        """Get AchievementService instance (lazy-loaded)"""
        if self._achievements is None:
            from rewards.gamification.achievement_system import AchievementService
            self._achievements = AchievementService(
                self.store,
                self.cosmetics,
                self.notifications,
                clock=self.clock,
            )
            logger.debug("AchievementService instantiated")
        return self._achievements

    @property
    def streak(self):
        """Get StreakService instance (lazy-loaded)"""
        if self._streak is None:
            from rewards.gamification.streak_system import StreakService
            self._streak = StreakService(
                self.store,
                self.achievements,
                self.notifications,
                clock=self.clock,
            )
            logger.debug("StreakService instantiated")
        return self._streak

    @property
    def challenges(self):
        """Get ChallengeService instance (lazy-loaded)"""
        if self._challenges is None:
            from rewards.gamification.challenges import ChallengeService
            self._challenges = ChallengeService(
                self.store,
                self.achievements,
                self.cosmetics,
                self.notifications,
                clock=self.clock,
            )
            logger.debug("ChallengeService instantiated")
        return self._challenges

    async def initialize(self) -> None:
        """
        Load every engine's persisted state.

        Cosmetics load first so achievements can reconcile missing rewards
        against the inventory.
        """
        await self.cosmetics.initialize()
        await self.achievements.initialize()
        await self.streak.initialize()
        await self.challenges.initialize()
        logger.info("Reward engines initialized")

    async def flush_pending(self) -> int:
        """Retry deferred writes; returns how many are still pending"""
        return await self.store.flush_pending()

    async def close(self) -> None:
        remaining = await self.flush_pending()
        if remaining:
            logger.warning(f"{remaining} deferred write(s) could not be flushed before close")
        await self.store.gateway.close()


def create_container(
    backend: str = STORAGE_BACKEND,
    data_path: Path = DATA_PATH,
    redis_url: str = REDIS_URL,
    clock: Clock = now_utc,
) -> RewardContainer:
    """
    Build a container over the configured storage backend.

    Args:
        backend: 'memory', 'file' or 'redis'
        data_path: Directory for file storage
        redis_url: Connection URL for redis storage
        clock: Time source shared by every engine

    Returns:
        RewardContainer: Not yet initialized; call initialize()
    """
    store = RecordStore(create_storage(backend, data_path=data_path, redis_url=redis_url))
    logger.info(f"Reward container created with {backend} storage")
    return RewardContainer(store=store, clock=clock)

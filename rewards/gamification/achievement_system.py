"""
Achievement System

Tracks and awards achievements across five categories:
- Health milestones (daily steps)
- Streak rewards (driven by the streak milestone ladder)
- Challenge completion
- Exploration (customisation, evolution)
- Special events

Features:
- Milestone evaluation against the latest health metrics
- Idempotent unlocking with cosmetic rewards and notifications
- Progress tracking for locked achievements
- Statistics and conjunctive filtering
"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from rewards.config import RECENT_UNLOCKS_LIMIT
from rewards.exceptions import RecordNotFoundError, ValidationError
from rewards.gamification.catalog import ACHIEVEMENT_CATALOG
from rewards.gamification.cosmetics import CosmeticService
from rewards.gamification.notifications import NotificationQueue
from rewards.models.achievement import (
    Achievement,
    AchievementCategory,
    AchievementProgress,
    AchievementStatistics,
    AchievementStatus,
    AchievementStorageData,
    AchievementUnlockResult,
    ComparisonType,
    RarityTier,
    UnlockCondition,
    UnlockConditionType,
)
from rewards.models.health import HealthMetrics
from rewards.resilience.metrics import record_achievement_unlock
from rewards.storage.record_store import ACHIEVEMENTS_KEY, RecordStore
from rewards.utils.datetime_helpers import Clock, now_utc

logger = logging.getLogger(__name__)


def condition_met(value: float, condition: UnlockCondition, consecutive_as_at_least: bool = False) -> bool:
    """
    Compare a metric value with an unlock condition.

    Consecutive-day conditions belong to the streak engine and never match
    here unless consecutive_as_at_least is set.
    """
    if condition.comparison == ComparisonType.AT_LEAST:
        return value >= condition.threshold
    if condition.comparison == ComparisonType.EXACT:
        return value == condition.threshold
    if consecutive_as_at_least:
        return value >= condition.threshold
    return False


class AchievementService:
    """Achievement catalog state, unlocks and progress"""

    def __init__(
        self,
        store: RecordStore,
        cosmetics: CosmeticService,
        notifications: NotificationQueue,
        clock: Clock = now_utc,
        recent_unlocks_limit: int = RECENT_UNLOCKS_LIMIT,
    ):
        self.store = store
        self.cosmetics = cosmetics
        self.notifications = notifications
        self._clock = clock
        self._recent_unlocks_limit = recent_unlocks_limit
        self._lock = asyncio.Lock()
        self._achievements: Dict[str, Achievement] = {
            a.id: a.model_copy(deep=True) for a in ACHIEVEMENT_CATALOG
        }
        self._latest_metrics: Dict[UnlockConditionType, float] = {}

    # ==========================================================================
    # Loading
    # ==========================================================================

    async def initialize(self) -> None:
        """
        Merge persisted earned state into the catalog.

        Malformed entries are dropped with a warning. Cosmetic rewards of
        earned achievements are re-granted if missing from the inventory,
        which retries grants that failed after an unlock.
        """
        raw = await self.store.read_raw(ACHIEVEMENTS_KEY)
        entries = raw.get("achievements") if isinstance(raw, dict) else None

        if raw is not None and not isinstance(entries, list):
            logger.warning("Achievement record has no achievement list, starting from catalog")
            entries = []

        for entry in entries or []:
            try:
                stored = Achievement.model_validate(entry)
            except PydanticValidationError as e:
                logger.warning(f"Dropping malformed achievement entry ({e.error_count()} error(s))")
                continue

            current = self._achievements.get(stored.id)
            if current is None:
                logger.warning(f"Dropping unknown achievement from storage: {stored.id}")
                continue

            current.unlocked_at = stored.unlocked_at
            current.progress = stored.progress

        await self._reconcile_cosmetics()

        earned = sum(1 for a in self._achievements.values() if a.is_earned)
        logger.info(f"Loaded achievements: {earned}/{len(self._achievements)} earned")

    async def _reconcile_cosmetics(self) -> None:
        for achievement in self._achievements.values():
            if not achievement.is_earned:
                continue
            for cosmetic_id in achievement.cosmetic_rewards:
                if self.cosmetics.is_owned(cosmetic_id):
                    continue
                granted = await self.cosmetics.grant_cosmetic(cosmetic_id, source_achievement=achievement.id)
                if granted is not None:
                    logger.info(f"Re-granted missing cosmetic {cosmetic_id} for {achievement.id}")

    # ==========================================================================
    # Milestone evaluation
    # ==========================================================================

    def check_milestone(self, metrics: Union[HealthMetrics, Dict[str, Any]]) -> List[Achievement]:
        """
        Find unearned achievements whose condition the metrics now satisfy.

        Does not unlock anything; the caller decides. The metric values are
        remembered as the latest known values for progress queries.

        Args:
            metrics: HealthMetrics or a dict of the same fields

        Returns:
            Newly eligible achievements (copies)
        """
        if not isinstance(metrics, HealthMetrics):
            try:
                metrics = HealthMetrics.model_validate(metrics)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid health metrics: {e.error_count()} error(s)",
                    field="metrics",
                    value=metrics,
                    operation="check_milestone",
                )

        values = {kind: value for kind, value in metrics.condition_values().items() if math.isfinite(value)}
        self._latest_metrics.update(values)

        eligible = []
        for achievement in self._achievements.values():
            if achievement.is_earned:
                continue
            condition = achievement.unlock_condition
            value = values.get(condition.type)
            if value is None:
                continue
            if condition_met(value, condition):
                eligible.append(achievement.model_copy(deep=True))

        if eligible:
            logger.debug(f"Milestone check found {len(eligible)} eligible: {[a.id for a in eligible]}")
        return eligible

    # ==========================================================================
    # Unlocking
    # ==========================================================================

    async def unlock_achievement(self, achievement_id: str) -> AchievementUnlockResult:
        """
        Unlock an achievement and grant its cosmetic rewards.

        Already-earned achievements are returned as-is with is_new_unlock=False
        and no side effects. The persisted unlock is the durable fact; cosmetic
        grants and notifications that fail afterwards are logged only.

        Raises:
            RecordNotFoundError: unknown achievement id
        """
        async with self._lock:
            achievement = self._achievements.get(achievement_id)
            if achievement is None:
                raise RecordNotFoundError(
                    f"Achievement not found: {achievement_id}",
                    record_type="achievement",
                    record_id=achievement_id,
                    operation="unlock_achievement",
                )

            if achievement.is_earned:
                return AchievementUnlockResult(
                    achievement=achievement.model_copy(deep=True),
                    cosmetics_unlocked=[],
                    is_new_unlock=False,
                )

            achievement.unlocked_at = self._clock()
            achievement.progress = AchievementProgress.complete(achievement.unlock_condition.threshold)
            await self._persist()

            record_achievement_unlock(achievement.rarity.value)
            logger.info(f"Achievement unlocked: {achievement_id} ({achievement.rarity.value})")

            granted = []
            for cosmetic_id in achievement.cosmetic_rewards:
                try:
                    cosmetic = await self.cosmetics.grant_cosmetic(cosmetic_id, source_achievement=achievement_id)
                except Exception as e:
                    logger.error(f"Error granting cosmetic {cosmetic_id} for {achievement_id}: {e}", exc_info=True)
                    continue
                if cosmetic is not None:
                    granted.append(cosmetic)

            unlocked = achievement.model_copy(deep=True)

        self.notifications.notify_achievement(unlocked)
        for cosmetic in granted:
            self.notifications.notify_cosmetic(cosmetic)

        return AchievementUnlockResult(
            achievement=unlocked,
            cosmetics_unlocked=[c.id for c in granted],
            is_new_unlock=True,
        )

    async def unlock_by_condition(self, kind: UnlockConditionType, value: float) -> List[Achievement]:
        """
        Unlock every unearned achievement of this kind that value satisfies.

        Consecutive conditions are treated as at-least here.

        Returns:
            Achievements newly unlocked by this call
        """
        if not math.isfinite(value):
            raise ValidationError(
                f"Condition value must be finite, got {value}",
                field="value",
                value=value,
                operation="unlock_by_condition",
            )

        self._latest_metrics[kind] = value

        candidates = [
            a.id for a in self._achievements.values()
            if not a.is_earned
            and a.unlock_condition.type == kind
            and condition_met(value, a.unlock_condition, consecutive_as_at_least=True)
        ]

        unlocked = []
        for achievement_id in candidates:
            result = await self.unlock_achievement(achievement_id)
            if result.is_new_unlock:
                unlocked.append(result.achievement)
        return unlocked

    # ==========================================================================
    # Progress
    # ==========================================================================

    def get_achievement_progress(self, achievement_id: str) -> AchievementProgress:
        """
        Progress toward an achievement.

        Earned achievements always report (target, target, 100). Unearned
        ones are recomputed from the latest known metric, falling back to
        the stored snapshot, then to zero.
        """
        achievement = self._get_or_raise(achievement_id, "get_achievement_progress")
        target = achievement.unlock_condition.threshold

        if achievement.is_earned:
            return AchievementProgress.complete(target)

        current = self._latest_metrics.get(achievement.unlock_condition.type)
        if current is None:
            current = achievement.progress.current if achievement.progress else 0

        return AchievementProgress.compute(current, target)

    async def update_progress(self, achievement_id: str, current: float) -> AchievementProgress:
        """Store and persist a progress snapshot for an unearned achievement"""
        if not math.isfinite(current) or current < 0:
            raise ValidationError(
                f"Progress must be a finite non-negative number, got {current}",
                field="current",
                value=current,
                operation="update_progress",
            )

        async with self._lock:
            achievement = self._get_or_raise(achievement_id, "update_progress")
            if achievement.is_earned:
                return AchievementProgress.complete(achievement.unlock_condition.threshold)

            progress = AchievementProgress.compute(current, achievement.unlock_condition.threshold)
            achievement.progress = progress
            await self._persist()

        return progress.model_copy()

    # ==========================================================================
    # Statistics & Queries
    # ==========================================================================

    def get_statistics(self) -> AchievementStatistics:
        """
        Aggregate statistics.

        rarest_badge is the earned achievement with the highest rarity; ties go
        to the earliest unlock. recent_unlocks is newest first.
        """
        earned = [a for a in self._achievements.values() if a.is_earned]
        total = len(self._achievements)

        rarest = None
        if earned:
            rarest = min(earned, key=lambda a: (-a.rarity.rank, a.unlocked_at))

        recent = sorted(earned, key=lambda a: a.unlocked_at, reverse=True)[:self._recent_unlocks_limit]

        return AchievementStatistics(
            total_earned=len(earned),
            total_available=total,
            completion_percentage=(100 * len(earned) / total) if total else 0.0,
            rarest_badge=rarest.model_copy(deep=True) if rarest else None,
            recent_unlocks=[a.model_copy(deep=True) for a in recent],
        )

    def filter(
        self,
        category: Optional[AchievementCategory] = None,
        status: Optional[Union[AchievementStatus, str]] = None,
        rarity: Optional[RarityTier] = None,
    ) -> List[Achievement]:
        """Achievements matching every provided predicate"""
        if status is not None:
            status = AchievementStatus(status)

        results = []
        for achievement in self._achievements.values():
            if category is not None and achievement.category != category:
                continue
            if rarity is not None and achievement.rarity != rarity:
                continue
            if status == AchievementStatus.EARNED and not achievement.is_earned:
                continue
            if status == AchievementStatus.LOCKED and achievement.is_earned:
                continue
            results.append(achievement.model_copy(deep=True))
        return results

    def get_all_achievements(self) -> List[Achievement]:
        return [a.model_copy(deep=True) for a in self._achievements.values()]

    def get_earned_achievements(self) -> List[Achievement]:
        return [a.model_copy(deep=True) for a in self._achievements.values() if a.is_earned]

    def get_achievement(self, achievement_id: str) -> Optional[Achievement]:
        achievement = self._achievements.get(achievement_id)
        return achievement.model_copy(deep=True) if achievement else None

    def is_earned(self, achievement_id: str) -> bool:
        achievement = self._achievements.get(achievement_id)
        return achievement is not None and achievement.is_earned

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def to_storage_data(self) -> AchievementStorageData:
        return AchievementStorageData(
            achievements=self.get_all_achievements(),
            statistics=self.get_statistics(),
            last_updated=self._clock(),
        )

    async def _persist(self) -> bool:
        return await self.store.save(ACHIEVEMENTS_KEY, self.to_storage_data())

    def _get_or_raise(self, achievement_id: str, operation: str) -> Achievement:
        achievement = self._achievements.get(achievement_id)
        if achievement is None:
            raise RecordNotFoundError(
                f"Achievement not found: {achievement_id}",
                record_type="achievement",
                record_id=achievement_id,
                operation=operation,
            )
        return achievement

"""
RewardPipeline - ordered reward flow for one event

Each entry point runs the engines in a fixed order inside one storage batch,
so every record touched by the event is written once at the end:

    health update: streak -> achievements -> challenges
    week boundary: challenges
    equip action:  cosmetics -> achievements
    evolution:     achievements

Cosmetic grants and notifications happen inside the engines as a
consequence of unlocks.
"""

import datetime as dt
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, ValidationError as PydanticValidationError

from rewards.config import DAILY_STEPS_GOAL
from rewards.exceptions import ValidationError
from rewards.gamification.catalog import FIRST_EQUIP_ACHIEVEMENT_ID
from rewards.models.achievement import Achievement, UnlockConditionType
from rewards.models.base import RewardModel
from rewards.models.challenge import Challenge
from rewards.models.health import DailyHealthRecord, HealthMetrics
from rewards.models.notification import RewardNotification
from rewards.models.streak import StreakUpdate
from rewards.services.container import RewardContainer

logger = logging.getLogger(__name__)


class RewardUpdate(RewardModel):
    """Everything one health update changed"""
    streak: StreakUpdate
    achievements_unlocked: List[Achievement] = Field(default_factory=list)
    cosmetics_unlocked: List[str] = Field(default_factory=list)
    challenges: List[Challenge] = Field(default_factory=list)
    challenges_completed: List[str] = Field(default_factory=list)
    notifications: List[RewardNotification] = Field(default_factory=list)


class RewardPipeline:
    """
    Runs the reward engines for discrete events.

    Responsibilities:
    - Daily criteria evaluation and streak update
    - Milestone checks and achievement unlocks
    - Challenge progress
    - First-equip and evolution achievements
    """

    def __init__(self, container: RewardContainer, daily_steps_goal: int = DAILY_STEPS_GOAL):
        self.container = container
        self.daily_steps_goal = daily_steps_goal

    async def process_health_update(
        self,
        day: dt.date,
        metrics: Union[HealthMetrics, Dict[str, Any]],
        met_criteria: Optional[bool] = None,
        week_records: Optional[List[DailyHealthRecord]] = None,
    ) -> RewardUpdate:
        """
        Apply one day's health observation to every engine.

        Args:
            day: Day the observation belongs to
            metrics: Today's metric values
            met_criteria: Daily criteria result; defaults to steps >= daily goal
            week_records: This week's earlier records, for challenge progress

        Returns:
            RewardUpdate describing what changed
        """
        metrics = self._validate_metrics(metrics)
        if met_criteria is None:
            met_criteria = (metrics.steps or 0) >= self.daily_steps_goal

        c = self.container
        earned_before = {a.id for a in c.achievements.get_earned_achievements()}
        owned_before = {item.id for item in c.cosmetics.get_inventory().items}
        completed_before = set(c.challenges.get_completed_challenge_ids())
        unsubscribe, delivered = self._capture_notifications()

        try:
            async with c.store.batch():
                streak_update = await c.streak.record_daily_progress(day, met_criteria)

                current_metrics = metrics.model_copy(update={"streak": c.streak.get_current_streak()})
                for achievement in c.achievements.check_milestone(current_metrics):
                    await c.achievements.unlock_achievement(achievement.id)

                await c.challenges.update_streak_progress(c.streak.get_current_streak())
                today = DailyHealthRecord(
                    date=day,
                    steps=metrics.steps or 0,
                    sleep_hours=metrics.sleep_hours,
                    hrv=metrics.hrv,
                )
                challenges = await c.challenges.update_all_challenge_progress(today, week_records or [])
        finally:
            unsubscribe()

        update = RewardUpdate(
            streak=streak_update,
            achievements_unlocked=[
                a for a in c.achievements.get_earned_achievements() if a.id not in earned_before
            ],
            cosmetics_unlocked=[
                item.id for item in c.cosmetics.get_inventory().items if item.id not in owned_before
            ],
            challenges=challenges,
            challenges_completed=[
                cid for cid in c.challenges.get_completed_challenge_ids() if cid not in completed_before
            ],
            notifications=delivered,
        )

        logger.info(
            f"Health update for {day}: streak {streak_update.previous_streak} -> {streak_update.new_streak}, "
            f"{len(update.achievements_unlocked)} achievement(s), "
            f"{len(update.challenges_completed)} challenge(s) completed"
        )
        return update

    async def on_week_boundary(self, today: dt.date, recent_history: List[DailyHealthRecord]) -> List[Challenge]:
        """Rotate to the week containing today and generate its challenges"""
        async with self.container.store.batch():
            return await self.container.challenges.generate_weekly_challenges(recent_history, today=today)

    async def equip_cosmetic(self, cosmetic_id: str) -> bool:
        """
        Equip a cosmetic; the first successful equip unlocks the
        customisation achievement.
        """
        c = self.container
        async with c.store.batch():
            equipped = await c.cosmetics.equip_cosmetic(cosmetic_id)
            if equipped and not c.achievements.is_earned(FIRST_EQUIP_ACHIEVEMENT_ID):
                await c.achievements.unlock_achievement(FIRST_EQUIP_ACHIEVEMENT_ID)
        return equipped

    async def record_evolution(self, evolution_count: int) -> List[Achievement]:
        """Unlock evolution achievements for the companion's evolution count"""
        async with self.container.store.batch():
            return await self.container.achievements.unlock_by_condition(
                UnlockConditionType.EVOLUTION,
                evolution_count,
            )

    def _validate_metrics(self, metrics: Union[HealthMetrics, Dict[str, Any]]) -> HealthMetrics:
        if isinstance(metrics, HealthMetrics):
            return metrics
        try:
            return HealthMetrics.model_validate(metrics)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid health metrics: {e.error_count()} error(s)",
                field="metrics",
                value=metrics,
                operation="process_health_update",
            )

    def _capture_notifications(self):
        delivered: List[RewardNotification] = []
        unsubscribe = self.container.notifications.add_listener(delivered.append)
        return unsubscribe, delivered

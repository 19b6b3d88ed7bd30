"""
Weekly Challenge System

Generates a small set of challenges each week, personalised from the user's
recent health history, and tracks them to completion.

Rules:
- One active set per week; weeks start on Monday and the window is
  [week_start, week_start + 7)
- Generating twice for the same week returns the existing set
- Template choice is deterministic: it rotates with the ISO week number
- Progress is cumulative: clamped to [0, target] and never regresses
- Completion dispatches the reward exactly once

Challenge rewards:
- Optional achievement unlock, optional cosmetic grant, bonus points
- Completed-challenge counts feed the challenge achievements
- Completing the whole weekly set unlocks the weekly bonus achievement
"""

import asyncio
import datetime as dt
import logging
import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from rewards.config import DAILY_STEPS_GOAL, WEEKLY_CHALLENGE_COUNT
from rewards.exceptions import RecordNotFoundError, RewardEngineError, SchemaValidationError, ValidationError
from rewards.gamification.achievement_system import AchievementService
from rewards.gamification.catalog import WEEKLY_BONUS_ACHIEVEMENT_ID
from rewards.gamification.cosmetics import CosmeticService
from rewards.gamification.notifications import NotificationQueue
from rewards.models.achievement import UnlockConditionType
from rewards.models.challenge import (
    Challenge,
    ChallengeObjective,
    ChallengeObjectiveType,
    ChallengeReward,
    ChallengeStorageData,
)
from rewards.models.health import DailyHealthRecord
from rewards.storage.record_store import CHALLENGES_KEY, RecordStore, validate_record
from rewards.utils.datetime_helpers import UTC, Clock, get_week_end, get_week_start, now_utc

logger = logging.getLogger(__name__)

# Used when the history has no data for a metric
DEFAULT_AVG_STEPS = 7500
DEFAULT_AVG_SLEEP = 7.0
DEFAULT_AVG_HRV = 40

COMBINED_SLEEP_GOAL = 7.0


# ============================================
# Challenge Templates
# ============================================

@dataclass(frozen=True)
class ChallengeTemplate:
    """Blueprint for a weekly challenge; targets are personalised at generation"""
    id: str
    title: str
    description: str
    objective_type: ChallengeObjectiveType
    unit: str
    base_target: float
    reward: ChallengeReward
    difficulty_multiplier: float = 1.0


CHALLENGE_TEMPLATES: List[ChallengeTemplate] = [
    # Steps
    ChallengeTemplate(
        "steps_weekly_total", "Step Master", "Walk {target} steps this week",
        ChallengeObjectiveType.STEPS, "steps", 50000,
        ChallengeReward(bonus_points=100), 1.1,
    ),
    ChallengeTemplate(
        "steps_daily_goal", "Daily Walker", "Hit {target} steps in a single day",
        ChallengeObjectiveType.STEPS, "steps", 10000,
        ChallengeReward(bonus_points=50), 1.2,
    ),
    ChallengeTemplate(
        "steps_consistency", "Consistent Stepper", "Walk at least {threshold} steps on {target} days",
        ChallengeObjectiveType.STEPS, "days", 5,
        ChallengeReward(bonus_points=75), 0.8,
    ),
    # Sleep
    ChallengeTemplate(
        "sleep_weekly_avg", "Sleep Champion", "Average {target} hours of sleep this week",
        ChallengeObjectiveType.SLEEP, "hours", 7,
        ChallengeReward(bonus_points=100),
    ),
    ChallengeTemplate(
        "sleep_quality", "Rest Master", "Get {threshold}+ hours of sleep on {target} nights",
        ChallengeObjectiveType.SLEEP, "nights", 4,
        ChallengeReward(cosmetic_id="background_stars", bonus_points=75),
    ),
    # HRV
    ChallengeTemplate(
        "hrv_improvement", "Stress Buster", "Keep HRV at or above {threshold}ms on {target} days",
        ChallengeObjectiveType.HRV, "days", 3,
        ChallengeReward(bonus_points=100),
    ),
    # Streak
    ChallengeTemplate(
        "streak_maintain", "Streak Keeper", "Reach a {target}-day streak",
        ChallengeObjectiveType.STREAK, "days", 3,
        ChallengeReward(bonus_points=50),
    ),
    # Combined
    ChallengeTemplate(
        "combined_active_day", "Active Day", "Hit the step goal AND the sleep goal on the same day",
        ChallengeObjectiveType.COMBINED, "days", 1,
        ChallengeReward(achievement_id="challenge_first", bonus_points=150),
    ),
]

TEMPLATES_BY_ID: Dict[str, ChallengeTemplate] = {t.id: t for t in CHALLENGE_TEMPLATES}


# ============================================
# History helpers
# ============================================

def average_steps(history: List[DailyHealthRecord]) -> float:
    if not history:
        return DEFAULT_AVG_STEPS
    return round(sum(day.steps for day in history) / len(history))


def average_sleep(history: List[DailyHealthRecord]) -> float:
    nights = [day.sleep_hours for day in history if day.sleep_hours is not None]
    if not nights:
        return DEFAULT_AVG_SLEEP
    return round(sum(nights) / len(nights), 1)


def average_hrv(history: List[DailyHealthRecord]) -> float:
    readings = [day.hrv for day in history if day.hrv is not None]
    if not readings:
        return DEFAULT_AVG_HRV
    return round(sum(readings) / len(readings))


def select_templates(history: List[DailyHealthRecord], week_number: int, count: int) -> List[ChallengeTemplate]:
    """
    Pick templates for a week.

    Only metrics present in the history are eligible; streak and combined
    templates always are. The starting point rotates with the week number and
    the first pass prefers one template per objective type.
    """
    has_steps = any(day.steps > 0 for day in history)
    has_sleep = any(day.sleep_hours is not None for day in history)
    has_hrv = any(day.hrv is not None for day in history)

    eligible_types = {ChallengeObjectiveType.STREAK, ChallengeObjectiveType.COMBINED}
    if has_steps:
        eligible_types.add(ChallengeObjectiveType.STEPS)
    if has_sleep:
        eligible_types.add(ChallengeObjectiveType.SLEEP)
    if has_hrv:
        eligible_types.add(ChallengeObjectiveType.HRV)

    available = [t for t in CHALLENGE_TEMPLATES if t.objective_type in eligible_types]
    offset = week_number % len(available)
    rotated = available[offset:] + available[:offset]

    selected: List[ChallengeTemplate] = []
    used_types = set()
    for template in rotated:
        if len(selected) >= count:
            break
        if template.objective_type not in used_types:
            selected.append(template)
            used_types.add(template.objective_type)

    for template in rotated:
        if len(selected) >= count:
            break
        if template not in selected:
            selected.append(template)

    return selected


def build_objective(template: ChallengeTemplate, history: List[DailyHealthRecord]) -> ChallengeObjective:
    """Personalise a template's target from rolling averages"""
    target = template.base_target
    threshold = None

    if template.id == "steps_weekly_total":
        target = max(1, round(average_steps(history) * 7 * template.difficulty_multiplier))
    elif template.id == "steps_daily_goal":
        target = max(1, round(average_steps(history) * template.difficulty_multiplier))
    elif template.id == "steps_consistency":
        threshold = max(1, round(average_steps(history) * template.difficulty_multiplier))
    elif template.id == "sleep_weekly_avg":
        target = max(1.0, round(average_sleep(history) * template.difficulty_multiplier, 1))
    elif template.id == "sleep_quality":
        threshold = max(1.0, average_sleep(history))
    elif template.id == "hrv_improvement":
        threshold = max(1, average_hrv(history))

    return ChallengeObjective(
        type=template.objective_type,
        target=target,
        unit=template.unit,
        daily_threshold=threshold,
    )


# ============================================
# Progress calculators (keyed by template id)
# ============================================

ProgressCalculator = Callable[[Challenge, List[DailyHealthRecord]], float]


def _days_at_or_above(value_of: Callable[[DailyHealthRecord], Optional[float]]) -> ProgressCalculator:
    def calculate(challenge: Challenge, records: List[DailyHealthRecord]) -> float:
        threshold = challenge.objective.daily_threshold or 0
        values = [value_of(day) for day in records]
        return sum(1 for value in values if value is not None and value >= threshold)
    return calculate


def _weekly_steps(challenge: Challenge, records: List[DailyHealthRecord]) -> float:
    return sum(day.steps for day in records)


def _best_day_steps(challenge: Challenge, records: List[DailyHealthRecord]) -> float:
    return max((day.steps for day in records), default=0)


def _average_sleep(challenge: Challenge, records: List[DailyHealthRecord]) -> float:
    nights = [day.sleep_hours for day in records if day.sleep_hours is not None]
    if not nights:
        return 0
    return round(sum(nights) / len(nights), 1)


def _active_days(challenge: Challenge, records: List[DailyHealthRecord]) -> float:
    return sum(
        1 for day in records
        if day.steps >= DAILY_STEPS_GOAL and (day.sleep_hours or 0) >= COMBINED_SLEEP_GOAL
    )


PROGRESS_CALCULATORS: Dict[str, ProgressCalculator] = {
    "steps_weekly_total": _weekly_steps,
    "steps_daily_goal": _best_day_steps,
    "steps_consistency": _days_at_or_above(lambda day: day.steps),
    "sleep_weekly_avg": _average_sleep,
    "sleep_quality": _days_at_or_above(lambda day: day.sleep_hours),
    "hrv_improvement": _days_at_or_above(lambda day: day.hrv),
    "combined_active_day": _active_days,
}


class ChallengeService:
    """Weekly challenge set, progress and reward dispatch"""

    def __init__(
        self,
        store: RecordStore,
        achievements: AchievementService,
        cosmetics: CosmeticService,
        notifications: NotificationQueue,
        clock: Clock = now_utc,
        challenge_count: int = WEEKLY_CHALLENGE_COUNT,
    ):
        self.store = store
        self.achievements = achievements
        self.cosmetics = cosmetics
        self.notifications = notifications
        self._clock = clock
        self._challenge_count = challenge_count
        self._lock = asyncio.Lock()
        self._active: List[Challenge] = []
        self._completed_ids: List[str] = []
        self._week_start: Optional[dt.date] = None
        self._bonus_points = 0

    async def initialize(self) -> None:
        """Load persisted challenges and rotate out a set from a past week"""
        raw = await self.store.read_raw(CHALLENGES_KEY)
        if raw is not None:
            try:
                data = validate_record(CHALLENGES_KEY, raw, ChallengeStorageData)
            except SchemaValidationError:
                data = self._salvage(raw)

            self._active = data.active_challenges
            self._completed_ids = list(dict.fromkeys(data.completed_challenge_ids))
            self._week_start = data.week_start_date
            self._bonus_points = data.bonus_points

        await self.rotate_week(self._clock().date())
        logger.info(f"Loaded {len(self._active)} active challenges, {len(self._completed_ids)} completed overall")

    def _salvage(self, raw: Any) -> ChallengeStorageData:
        if not isinstance(raw, dict):
            return ChallengeStorageData()

        active = []
        raw_active = raw.get("activeChallenges")
        for entry in raw_active if isinstance(raw_active, list) else []:
            try:
                active.append(Challenge.model_validate(entry))
            except PydanticValidationError:
                logger.warning(f"Dropping malformed challenge entry: {entry!r:.80}")

        raw_completed = raw.get("completedChallengeIds")
        completed = [c for c in raw_completed if isinstance(c, str)] if isinstance(raw_completed, list) else []

        week_start = None
        try:
            if raw.get("weekStartDate"):
                week_start = dt.date.fromisoformat(raw["weekStartDate"])
        except (TypeError, ValueError):
            logger.warning("Unreadable weekStartDate, treating challenges as a past week")

        bonus = raw.get("bonusPoints")
        return ChallengeStorageData(
            active_challenges=active,
            completed_challenge_ids=completed,
            week_start_date=week_start,
            bonus_points=bonus if isinstance(bonus, int) and bonus >= 0 else 0,
        )

    # ==========================================================================
    # Generation
    # ==========================================================================

    async def generate_weekly_challenges(
        self,
        recent_history: List[DailyHealthRecord],
        today: Optional[dt.date] = None,
    ) -> List[Challenge]:
        """
        Generate this week's challenges from recent health history.

        Args:
            recent_history: Recent days used to personalise targets
            today: Day inside the target week (defaults to the clock's date)

        Returns:
            The week's challenges; the existing set if one was already generated
        """
        today = today or self._clock().date()
        week_start = get_week_start(today)

        async with self._lock:
            if self._week_start == week_start and self._active:
                logger.debug(f"Challenges for week {week_start} already exist")
                return self._copies()

            if self._active:
                logger.info(f"Rotating out {len(self._active)} challenges from week {self._week_start}")

            week_end = get_week_end(today)
            week_number = today.isocalendar()[1]
            challenges = []
            for template in select_templates(recent_history, week_number, self._challenge_count):
                objective = build_objective(template, recent_history)
                challenges.append(Challenge(
                    id=f"{template.id}_{week_start.isoformat()}",
                    template_id=template.id,
                    title=template.title,
                    description=template.description.format(
                        target=_display(objective.target),
                        threshold=_display(objective.daily_threshold),
                    ),
                    objective=objective,
                    reward=template.reward.model_copy(),
                    start_date=week_start,
                    end_date=week_end,
                ))

            self._active = challenges
            self._week_start = week_start
            await self._persist()

        logger.info(f"Generated {len(challenges)} challenges for week {week_start}: {[c.template_id for c in challenges]}")
        return self._copies()

    async def rotate_week(self, today: dt.date) -> bool:
        """
        Drop the active set if it belongs to an earlier week.

        Completed challenge ids and bonus points are kept.

        Returns:
            True if a rotation happened
        """
        week_start = get_week_start(today)
        async with self._lock:
            if self._week_start == week_start:
                return False

            had_active = bool(self._active)
            self._active = []
            self._week_start = week_start
            if had_active:
                await self._persist()
                logger.info(f"Rotated to week {week_start}")
            return had_active

    # ==========================================================================
    # Progress Tracking
    # ==========================================================================

    async def update_challenge_progress(self, challenge_id: str, progress: float) -> Challenge:
        """
        Report cumulative progress for a challenge.

        Progress is clamped to [0, target] and never goes down. Reaching the
        target completes the challenge.

        Raises:
            ValidationError: progress is not a finite number
            RecordNotFoundError: no active challenge with this id
        """
        if not isinstance(progress, (int, float)) or not math.isfinite(progress):
            raise ValidationError(
                f"Challenge progress must be a finite number, got {progress!r}",
                field="progress",
                value=progress,
                operation="update_challenge_progress",
            )

        async with self._lock:
            challenge = self._get_or_raise(challenge_id, "update_challenge_progress")
            if challenge.completed:
                return challenge.model_copy(deep=True)

            target = challenge.objective.target
            clamped = min(max(float(progress), 0.0), target)
            reached = clamped >= target

            if clamped > challenge.progress:
                challenge.progress = clamped
                if not reached:
                    await self._persist()

        if reached:
            await self.complete_challenge(challenge_id)

        return self._get_or_raise(challenge_id, "update_challenge_progress").model_copy(deep=True)

    async def update_all_challenge_progress(
        self,
        today: DailyHealthRecord,
        week_records: List[DailyHealthRecord],
    ) -> List[Challenge]:
        """
        Recompute metric-driven challenges from this week's records.

        Args:
            today: The current day's data (replaces any record for the same date)
            week_records: Health records for the current week

        Returns:
            Active challenges after the update
        """
        by_date = {record.date: record for record in week_records}
        by_date[today.date] = today

        for challenge in list(self._active):
            if challenge.completed:
                continue
            calculator = PROGRESS_CALCULATORS.get(challenge.template_id)
            if calculator is None:
                continue
            records = [
                by_date[d] for d in sorted(by_date)
                if challenge.start_date <= d < challenge.end_date
            ]
            await self.update_challenge_progress(challenge.id, calculator(challenge, records))

        return self._copies()

    async def update_streak_progress(self, current_streak: int) -> None:
        """Feed the current streak into streak challenges"""
        for challenge in list(self._active):
            if challenge.objective.type == ChallengeObjectiveType.STREAK and not challenge.completed:
                await self.update_challenge_progress(challenge.id, current_streak)

    # ==========================================================================
    # Challenge Completion
    # ==========================================================================

    async def complete_challenge(self, challenge_id: str) -> ChallengeReward:
        """
        Mark a challenge completed and dispatch its reward once.

        Repeat calls return the reward without dispatching it again.

        Raises:
            RecordNotFoundError: no active challenge with this id
        """
        async with self._lock:
            challenge = self._get_or_raise(challenge_id, "complete_challenge")
            reward = challenge.reward.model_copy()

            if challenge.completed and challenge_id in self._completed_ids:
                return reward

            challenge.completed = True
            challenge.progress = challenge.objective.target
            if challenge_id not in self._completed_ids:
                self._completed_ids.append(challenge_id)
            self._bonus_points += reward.bonus_points or 0
            await self._persist()
            logger.info(f"Challenge completed: {challenge_id}")

            await self._dispatch_reward(challenge_id, reward)
            completed_total = len(self._completed_ids)

        try:
            await self.achievements.unlock_by_condition(UnlockConditionType.CHALLENGE, completed_total)
        except RewardEngineError as e:
            logger.error(f"Error unlocking challenge-count achievements: {e}")

        await self.check_all_completed()
        return reward

    async def _dispatch_reward(self, challenge_id: str, reward: ChallengeReward) -> None:
        if reward.achievement_id:
            try:
                await self.achievements.unlock_achievement(reward.achievement_id)
            except RewardEngineError as e:
                logger.error(f"Error unlocking reward achievement for {challenge_id}: {e}")

        if reward.cosmetic_id:
            cosmetic = await self.cosmetics.grant_cosmetic(reward.cosmetic_id)
            if cosmetic is not None:
                self.notifications.notify_cosmetic(cosmetic)

    async def check_all_completed(self) -> bool:
        """
        True iff every active challenge is completed.

        A True result unlocks the weekly bonus achievement (idempotent).
        """
        all_completed = bool(self._active) and all(c.completed for c in self._active)
        if all_completed:
            try:
                result = await self.achievements.unlock_achievement(WEEKLY_BONUS_ACHIEVEMENT_ID)
            except RewardEngineError as e:
                logger.error(f"Error awarding weekly bonus achievement: {e}")
            else:
                if result.is_new_unlock:
                    logger.info("Awarded bonus achievement for completing all weekly challenges")
        return all_completed

    # ==========================================================================
    # Queries
    # ==========================================================================

    def get_active_challenges(self) -> List[Challenge]:
        return self._copies()

    def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        challenge = self._find(challenge_id)
        return challenge.model_copy(deep=True) if challenge else None

    def get_completed_challenge_ids(self) -> List[str]:
        return list(self._completed_ids)

    @property
    def week_start_date(self) -> Optional[dt.date]:
        return self._week_start

    @property
    def bonus_points(self) -> int:
        return self._bonus_points

    def get_time_remaining(self, now: Optional[datetime] = None) -> timedelta:
        """Time until the active set expires, zero when there is none"""
        if not self._active:
            return timedelta(0)
        now = now or self._clock()
        expires = datetime.combine(self._active[0].end_date, time.min, tzinfo=UTC)
        return max(timedelta(0), expires - now)

    def format_time_remaining(self, now: Optional[datetime] = None) -> str:
        remaining = self.get_time_remaining(now)
        if remaining <= timedelta(0):
            return "Expired"

        hours = remaining.seconds // 3600
        if remaining.days > 0:
            return f"{remaining.days}d {hours}h remaining"
        return f"{hours}h remaining"

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def to_storage_data(self) -> ChallengeStorageData:
        return ChallengeStorageData(
            active_challenges=self._copies(),
            completed_challenge_ids=list(self._completed_ids),
            week_start_date=self._week_start,
            bonus_points=self._bonus_points,
        )

    async def _persist(self) -> bool:
        return await self.store.save(CHALLENGES_KEY, self.to_storage_data())

    def _copies(self) -> List[Challenge]:
        return [c.model_copy(deep=True) for c in self._active]

    def _find(self, challenge_id: str) -> Optional[Challenge]:
        for challenge in self._active:
            if challenge.id == challenge_id:
                return challenge
        return None

    def _get_or_raise(self, challenge_id: str, operation: str) -> Challenge:
        challenge = self._find(challenge_id)
        if challenge is None:
            raise RecordNotFoundError(
                f"Challenge not found: {challenge_id}",
                record_type="challenge",
                record_id=challenge_id,
                operation=operation,
            )
        return challenge


def _display(value: Optional[float]) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:g}"

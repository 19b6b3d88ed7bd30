"""
Daily Streak Tracking System

Tracks the run of consecutive days on which the daily health criteria were met.

Logic:
- Met, first record ever or exactly the day after the last record: +1
- Met, same day as the last record: duplicate delivery, no change
- Met, after a gap: a new run starts at 1
- Met, earlier than the last record: history correction only
- Missed, any day: reset to 0, no grace period

Features:
- Longest streak tracking (never decreases)
- Milestone ladder (7, 14, 30, 60, 90 days) unlocking streak achievements
- Recovery of corrupted state by replaying history
"""

import asyncio
import datetime as dt
import logging
from datetime import timedelta
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from rewards.config import STREAK_HISTORY_LIMIT
from rewards.exceptions import RewardEngineError, SchemaValidationError
from rewards.gamification.achievement_system import AchievementService
from rewards.gamification.notifications import NotificationQueue
from rewards.models.streak import (
    STREAK_MILESTONES,
    StreakMilestone,
    StreakRecord,
    StreakState,
    StreakStorageData,
    StreakUpdate,
)
from rewards.storage.record_store import STREAK_KEY, RecordStore, validate_record
from rewards.utils.datetime_helpers import Clock, is_next_day, now_utc

logger = logging.getLogger(__name__)


def replay_history(records: List[StreakRecord]) -> Tuple[int, int]:
    """
    Derive (current, longest) from date-sorted, de-duplicated records.

    current is the trailing contiguous run of met days.
    """
    current = 0
    longest = 0
    last_date: Optional[dt.date] = None

    for record in records:
        if record.met_criteria:
            if last_date is None or is_next_day(last_date, record.date):
                current += 1
            else:
                current = 1
            longest = max(longest, current)
        else:
            current = 0
        last_date = record.date

    return current, longest


class StreakService:
    """Daily streak counter, history and milestone ladder"""

    def __init__(
        self,
        store: RecordStore,
        achievements: AchievementService,
        notifications: NotificationQueue,
        clock: Clock = now_utc,
        history_limit: int = STREAK_HISTORY_LIMIT,
    ):
        self.store = store
        self.achievements = achievements
        self.notifications = notifications
        self._clock = clock
        self._history_limit = history_limit
        self._lock = asyncio.Lock()
        self._state = StreakState()

    async def initialize(self) -> None:
        """Load persisted streak state, recovering it if it fails validation"""
        raw = await self.store.read_raw(STREAK_KEY)
        if raw is None:
            logger.info("No stored streak, starting at 0")
            return

        try:
            self._state = validate_record(STREAK_KEY, raw, StreakStorageData).state
        except SchemaValidationError:
            await self.recover_from_corruption(raw)
            return

        logger.info(
            f"Loaded streak: current={self._state.current_streak}, "
            f"longest={self._state.longest_streak}"
        )

    # ==========================================================================
    # Core Streak Tracking
    # ==========================================================================

    async def record_daily_progress(self, day: dt.date, met_criteria: bool) -> StreakUpdate:
        """
        Record whether the daily criteria were met on a given day.

        Args:
            day: Calendar day being recorded
            met_criteria: Whether the user met the daily health criteria

        Returns:
            StreakUpdate with the previous/new streak and any milestone reached
        """
        async with self._lock:
            state = self._state
            previous = state.current_streak
            last = state.last_recorded_date

            if not met_criteria and last is not None and day < last:
                # Missed always resets, last_recorded_date stays put
                state.current_streak = 0
                state.reached_milestones = []
                self._upsert_history(StreakRecord(date=day, met_criteria=False, streak_count=0))
                await self._persist()
                logger.info(f"Streak reset by missed record for earlier day {day}: {previous} -> 0")
                return StreakUpdate(
                    previous_streak=previous,
                    new_streak=0,
                    was_reset=previous > 0,
                    is_correction=True,
                )

            if last is not None and day < last:
                self._upsert_history(StreakRecord(
                    date=day,
                    met_criteria=True,
                    streak_count=self._correction_count(day),
                ))
                await self._persist()
                logger.info(f"Recorded out-of-order correction for {day}")
                return StreakUpdate(previous_streak=previous, new_streak=previous, is_correction=True)

            if met_criteria and last == day:
                logger.debug(f"Duplicate streak record for {day}, ignoring")
                return StreakUpdate(previous_streak=previous, new_streak=previous, is_duplicate=True)

            was_reset = False
            if not met_criteria:
                new_streak = 0
                was_reset = previous > 0
            elif last is None or is_next_day(last, day):
                new_streak = previous + 1
            else:
                # Gap in days, a new run starts today
                new_streak = 1
                was_reset = previous > 0

            if new_streak <= 1:
                # A new run, milestones can trigger again
                state.reached_milestones = []

            state.current_streak = new_streak
            state.longest_streak = max(state.longest_streak, new_streak)
            state.last_recorded_date = day
            self._upsert_history(StreakRecord(date=day, met_criteria=met_criteria, streak_count=new_streak))

            milestone = self._flag_milestone(new_streak)
            await self._persist()

            if milestone is not None:
                await self._trigger_milestone(milestone, new_streak)

        if was_reset:
            logger.info(f"Streak reset on {day}: {previous} -> {new_streak}")
        else:
            logger.debug(f"Streak recorded for {day}: {previous} -> {new_streak}")

        return StreakUpdate(
            previous_streak=previous,
            new_streak=new_streak,
            was_reset=was_reset,
            milestone_reached=milestone,
        )

    def _upsert_history(self, record: StreakRecord) -> None:
        history = [r for r in self._state.streak_history if r.date != record.date]
        history.append(record)
        history.sort(key=lambda r: r.date)
        self._state.streak_history = history[-self._history_limit:]

    def _correction_count(self, day: dt.date) -> int:
        day_before = day - timedelta(days=1)
        for record in self._state.streak_history:
            if record.date == day_before and record.met_criteria:
                return record.streak_count + 1
        return 1

    # ==========================================================================
    # Milestones
    # ==========================================================================

    def _flag_milestone(self, streak: int) -> Optional[StreakMilestone]:
        for milestone in STREAK_MILESTONES:
            if streak == milestone.days and milestone.days not in self._state.reached_milestones:
                self._state.reached_milestones.append(milestone.days)
                return milestone
        return None

    async def _trigger_milestone(self, milestone: StreakMilestone, streak: int) -> None:
        try:
            await self.achievements.unlock_achievement(milestone.achievement_id)
        except RewardEngineError as e:
            logger.error(f"Error unlocking milestone achievement {milestone.achievement_id}: {e}")

        self.notifications.notify_streak_milestone(milestone, streak)
        logger.info(f"Streak milestone reached: {milestone.days} days")

    def get_next_milestone(self) -> Optional[StreakMilestone]:
        """Smallest ladder entry above the current streak, None when exhausted"""
        for milestone in STREAK_MILESTONES:
            if self._state.current_streak < milestone.days:
                return milestone
        return None

    def get_days_until_milestone(self) -> int:
        milestone = self.get_next_milestone()
        if milestone is None:
            return 0
        return milestone.days - self._state.current_streak

    # ==========================================================================
    # Queries
    # ==========================================================================

    def get_current_streak(self) -> int:
        return self._state.current_streak

    def get_longest_streak(self) -> int:
        return self._state.longest_streak

    def get_streak_state(self) -> StreakState:
        return self._state.model_copy(deep=True)

    def get_streak_history(self) -> List[StreakRecord]:
        return [r.model_copy() for r in self._state.streak_history]

    # ==========================================================================
    # Error Recovery
    # ==========================================================================

    async def recover_from_corruption(self, raw: Any = None) -> StreakState:
        """
        Rebuild a valid state from a corrupted streak record. Never raises.

        An intact history is replayed to derive the counters. If any history
        entry is unreadable, both counters are reset to 0 and the readable
        entries are kept.

        Args:
            raw: Decoded stored record; read from storage when omitted
        """
        logger.warning("Attempting to recover streak from corruption")

        if raw is None:
            raw = await self.store.read_raw(STREAK_KEY)

        async with self._lock:
            try:
                self._state = self._rebuild(raw)
            except Exception as e:
                logger.error(f"Streak recovery failed, resetting to default: {e}", exc_info=True)
                self._state = StreakState()

            await self._persist()

        logger.info(
            f"Streak recovered: current={self._state.current_streak}, "
            f"longest={self._state.longest_streak}, history={len(self._state.streak_history)}"
        )
        return self._state.model_copy(deep=True)

    def _rebuild(self, raw: Any) -> StreakState:
        state_raw = raw.get("state") if isinstance(raw, dict) else None
        if not isinstance(state_raw, dict):
            return StreakState()

        history_raw = state_raw.get("streakHistory", state_raw.get("streak_history"))
        if not isinstance(history_raw, list):
            return StreakState()

        by_date = {}
        intact = True
        for entry in history_raw:
            try:
                record = StreakRecord.model_validate(entry)
            except PydanticValidationError:
                intact = False
                continue
            by_date[record.date] = record

        history = [by_date[d] for d in sorted(by_date)][-self._history_limit:]

        if not intact or not history:
            logger.warning(f"Streak history damaged, keeping {len(history)} salvageable record(s)")
            return StreakState(
                last_recorded_date=history[-1].date if history else None,
                streak_history=history,
            )

        current, longest = replay_history(history)

        # Runs older than the history window may have been longer
        stored_longest = state_raw.get("longestStreak", state_raw.get("longest_streak"))
        if isinstance(stored_longest, int) and not isinstance(stored_longest, bool) and stored_longest > longest:
            longest = stored_longest

        return StreakState(
            current_streak=current,
            longest_streak=longest,
            last_recorded_date=history[-1].date,
            streak_history=history,
            reached_milestones=[m.days for m in STREAK_MILESTONES if m.days <= current],
        )

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def to_storage_data(self) -> StreakStorageData:
        return StreakStorageData(state=self._state.model_copy(deep=True), last_updated=self._clock())

    async def _persist(self) -> bool:
        return await self.store.save(STREAK_KEY, self.to_storage_data())

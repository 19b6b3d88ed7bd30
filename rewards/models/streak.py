"""Streak models for gamification"""
import datetime as dt
from datetime import datetime
from typing import Optional, List

from pydantic import Field, model_validator

from rewards.models.base import RewardModel


class StreakRecord(RewardModel):
    """A single day's streak entry"""
    date: dt.date
    met_criteria: bool
    streak_count: int = Field(ge=0)


class StreakState(RewardModel):
    """Current streak counters and per-day history"""
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_recorded_date: Optional[dt.date] = None
    streak_history: List[StreakRecord] = Field(default_factory=list)
    reached_milestones: List[int] = Field(default_factory=list)

    @model_validator(mode='after')
    def check_longest(self) -> "StreakState":
        if self.longest_streak < self.current_streak:
            raise ValueError("longest_streak must be >= current_streak")
        return self


class StreakMilestone(RewardModel):
    """A ladder entry that triggers an achievement"""
    days: int
    achievement_id: str


class StreakUpdate(RewardModel):
    """Result of recording a day"""
    previous_streak: int
    new_streak: int
    was_reset: bool = False
    is_duplicate: bool = False
    is_correction: bool = False
    milestone_reached: Optional[StreakMilestone] = None


class StreakStorageData(RewardModel):
    """Persisted streak record"""
    state: StreakState
    last_updated: datetime


STREAK_MILESTONES: List[StreakMilestone] = [
    StreakMilestone(days=7, achievement_id="streak_7"),
    StreakMilestone(days=14, achievement_id="streak_14"),
    StreakMilestone(days=30, achievement_id="streak_30"),
    StreakMilestone(days=60, achievement_id="streak_60"),
    StreakMilestone(days=90, achievement_id="streak_90"),
]

"""Weekly challenge models"""
from datetime import date
from enum import Enum
from typing import Optional, List

from pydantic import Field

from rewards.models.base import RewardModel


class ChallengeObjectiveType(str, Enum):
    """Metric a challenge tracks"""
    STEPS = "steps"
    SLEEP = "sleep"
    HRV = "hrv"
    STREAK = "streak"
    COMBINED = "combined"


class ChallengeObjective(RewardModel):
    """Goal for a challenge.

    daily_threshold is set for "N days at or above X" objectives, where
    target counts days.
    """
    type: ChallengeObjectiveType
    target: float = Field(gt=0)
    unit: str
    daily_threshold: Optional[float] = None


class ChallengeReward(RewardModel):
    """What completing a challenge grants"""
    achievement_id: Optional[str] = None
    cosmetic_id: Optional[str] = None
    bonus_points: Optional[int] = None


class Challenge(RewardModel):
    """A weekly challenge. The window is [start_date, end_date)."""
    id: str = Field(min_length=1)
    template_id: str
    title: str
    description: str
    objective: ChallengeObjective
    reward: ChallengeReward = Field(default_factory=ChallengeReward)
    start_date: date
    end_date: date
    progress: float = Field(default=0, ge=0)
    completed: bool = False


class ChallengeStorageData(RewardModel):
    """Persisted challenges record"""
    active_challenges: List[Challenge] = Field(default_factory=list)
    completed_challenge_ids: List[str] = Field(default_factory=list)
    week_start_date: Optional[date] = None
    bonus_points: int = 0

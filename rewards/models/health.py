"""Health observation inputs consumed by the reward engine"""
import datetime as dt
from typing import Optional, Dict

from pydantic import Field

from rewards.models.base import RewardModel
from rewards.models.achievement import UnlockConditionType


class HealthMetrics(RewardModel):
    """Latest known metric values for milestone checks"""
    steps: Optional[float] = Field(None, ge=0)
    sleep_hours: Optional[float] = Field(None, ge=0, le=24)
    hrv: Optional[float] = Field(None, ge=0)
    streak: Optional[int] = Field(None, ge=0)
    challenges_completed: Optional[int] = Field(None, ge=0)
    evolutions: Optional[int] = Field(None, ge=0)

    def condition_values(self) -> Dict[UnlockConditionType, float]:
        """Map available metrics onto unlock condition kinds"""
        mapping = {
            UnlockConditionType.STEPS: self.steps,
            UnlockConditionType.STREAK: self.streak,
            UnlockConditionType.CHALLENGE: self.challenges_completed,
            UnlockConditionType.EVOLUTION: self.evolutions,
        }
        return {kind: value for kind, value in mapping.items() if value is not None}


class DailyHealthRecord(RewardModel):
    """One day of history used for challenge generation and progress"""
    date: dt.date
    steps: float = Field(default=0, ge=0)
    sleep_hours: Optional[float] = Field(None, ge=0, le=24)
    hrv: Optional[float] = Field(None, ge=0)

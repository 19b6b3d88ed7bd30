"""Service layer: engine wiring and the reward pipeline"""

from rewards.services.container import RewardContainer, create_container
from rewards.services.reward_pipeline import RewardPipeline, RewardUpdate

__all__ = [
    "RewardContainer",
    "create_container",
    "RewardPipeline",
    "RewardUpdate",
]

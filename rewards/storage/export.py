"""
Full-state export

Bundles the four reward records into one document for backup or inspection,
using the same JSON encoding as persistence.
"""

import logging
from datetime import datetime

from rewards.models.achievement import AchievementStorageData
from rewards.models.base import RewardModel
from rewards.models.challenge import ChallengeStorageData
from rewards.models.cosmetic import CosmeticStorageData
from rewards.models.streak import StreakStorageData
from rewards.storage.record_store import decode_record, encode_record

logger = logging.getLogger(__name__)


class FullStateExport(RewardModel):
    """Backup bundle of every reward record"""
    achievements: AchievementStorageData
    streak: StreakStorageData
    challenges: ChallengeStorageData
    cosmetics: CosmeticStorageData
    export_date: datetime


def build_export(container) -> FullStateExport:
    """Snapshot every engine's current state"""
    return FullStateExport(
        achievements=container.achievements.to_storage_data(),
        streak=container.streak.to_storage_data(),
        challenges=container.challenges.to_storage_data(),
        cosmetics=container.cosmetics.to_storage_data(),
        export_date=container.clock(),
    )


def export_all_data(container) -> str:
    """
    Export all reward state as JSON.

    Args:
        container: Initialized RewardContainer

    Returns:
        JSON document with camelCase keys
    """
    payload = encode_record(build_export(container))
    logger.info(f"Exported reward state ({len(payload)} bytes)")
    return payload


def load_export(payload: str) -> FullStateExport:
    """Decode and validate an export produced by export_all_data"""
    return decode_record(payload, FullStateExport)

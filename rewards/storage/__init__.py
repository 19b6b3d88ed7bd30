"""Persistence for reward records"""

from rewards.storage.gateway import (
    StorageGateway,
    InMemoryStorage,
    FileStorage,
    RedisStorage,
    create_storage,
)
from rewards.storage.record_store import (
    RecordStore,
    ACHIEVEMENTS_KEY,
    STREAK_KEY,
    CHALLENGES_KEY,
    COSMETICS_KEY,
    validate_record,
)
from rewards.storage.export import FullStateExport, export_all_data, load_export

__all__ = [
    "StorageGateway",
    "InMemoryStorage",
    "FileStorage",
    "RedisStorage",
    "create_storage",
    "RecordStore",
    "ACHIEVEMENTS_KEY",
    "STREAK_KEY",
    "CHALLENGES_KEY",
    "COSMETICS_KEY",
    "validate_record",
    "FullStateExport",
    "export_all_data",
    "load_export",
]

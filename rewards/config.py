"""Configuration management"""
import os
from pathlib import Path
from dotenv import load_dotenv

from rewards.exceptions import ConfigurationError

load_dotenv()

# Logging
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Storage
# - 'memory': process-local dict (tests, demos)
# - 'file': one JSON file per record under DATA_PATH
# - 'redis': one key per record on REDIS_URL
STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "file")
DATA_PATH: Path = Path(os.getenv("DATA_PATH", "./data"))
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Write retries (exponential backoff, then deferred retry queue)
STORAGE_MAX_RETRIES: int = int(os.getenv("STORAGE_MAX_RETRIES", "3"))
STORAGE_RETRY_BASE_DELAY: float = float(os.getenv("STORAGE_RETRY_BASE_DELAY", "0.5"))
STORAGE_RETRY_MAX_DELAY: float = float(os.getenv("STORAGE_RETRY_MAX_DELAY", "10.0"))

# Notifications (user preference, can be toggled at runtime)
NOTIFICATIONS_ENABLED: bool = os.getenv("NOTIFICATIONS_ENABLED", "true").lower() == "true"

# Gamification tuning
DAILY_STEPS_GOAL: int = int(os.getenv("DAILY_STEPS_GOAL", "8000"))
WEEKLY_CHALLENGE_COUNT: int = int(os.getenv("WEEKLY_CHALLENGE_COUNT", "3"))
RECENT_UNLOCKS_LIMIT: int = int(os.getenv("RECENT_UNLOCKS_LIMIT", "5"))
STREAK_HISTORY_LIMIT: int = int(os.getenv("STREAK_HISTORY_LIMIT", "365"))

VALID_STORAGE_BACKENDS = ("memory", "file", "redis")


def validate_config() -> None:
    """Validate configuration values"""
    if STORAGE_BACKEND not in VALID_STORAGE_BACKENDS:
        raise ConfigurationError(
            f"STORAGE_BACKEND must be one of {', '.join(VALID_STORAGE_BACKENDS)}",
            config_key="STORAGE_BACKEND",
        )
    if STORAGE_BACKEND == "redis" and not REDIS_URL:
        raise ConfigurationError("REDIS_URL is required for redis storage", config_key="REDIS_URL")
    if STORAGE_MAX_RETRIES < 0:
        raise ConfigurationError("STORAGE_MAX_RETRIES must be >= 0", config_key="STORAGE_MAX_RETRIES")
    if WEEKLY_CHALLENGE_COUNT < 1:
        raise ConfigurationError("WEEKLY_CHALLENGE_COUNT must be >= 1", config_key="WEEKLY_CHALLENGE_COUNT")
    if STREAK_HISTORY_LIMIT < 1:
        raise ConfigurationError("STREAK_HISTORY_LIMIT must be >= 1", config_key="STREAK_HISTORY_LIMIT")

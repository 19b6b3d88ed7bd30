"""Global test fixtures and utilities for reward engine tests"""
import json
import pytest
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from rewards.exceptions import StorageUnavailableError
from rewards.gamification.achievement_system import AchievementService
from rewards.gamification.challenges import ChallengeService
from rewards.gamification.cosmetics import CosmeticService
from rewards.gamification.notifications import NotificationQueue
from rewards.gamification.streak_system import StreakService
from rewards.models.health import DailyHealthRecord
from rewards.services.container import RewardContainer
from rewards.storage.gateway import InMemoryStorage
from rewards.storage.record_store import RecordStore


# Wednesday of ISO week 10; the week window is 2024-03-04 .. 2024-03-11
FIXED_NOW = datetime(2024, 3, 6, 12, 0, 0, tzinfo=timezone.utc)
WEEK_START = date(2024, 3, 4)


# ============================================================================
# Time Fixtures
# ============================================================================

class FakeClock:
    """Deterministic, manually advanced clock"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock frozen at FIXED_NOW"""
    return FakeClock()


@pytest.fixture
def week_start():
    return WEEK_START


# ============================================================================
# Storage Fixtures
# ============================================================================

class FlakyStorage(InMemoryStorage):
    """In-memory gateway that fails a configurable number of calls"""

    def __init__(self, fail_sets: int = 0, fail_gets: bool = False, error: Optional[Exception] = None):
        super().__init__()
        self.fail_sets = fail_sets
        self.fail_gets = fail_gets
        self.error = error or StorageUnavailableError("simulated outage")
        self.set_calls = 0

    async def get(self, key):
        if self.fail_gets:
            raise self.error
        return await super().get(key)

    async def set(self, key, value):
        self.set_calls += 1
        if self.fail_sets:
            self.fail_sets -= 1
            raise self.error
        await super().set(key, value)


@pytest.fixture
def memory_gateway():
    return InMemoryStorage()


@pytest.fixture
def flaky_gateway_factory():
    """Build gateways that fail the first N writes"""
    return FlakyStorage


@pytest.fixture
def record_store(memory_gateway):
    """Record store with instant retries"""
    return RecordStore(memory_gateway, max_retries=2, base_delay=0, max_delay=0)


@pytest.fixture
def write_raw(memory_gateway):
    """Write an arbitrary JSON value (or raw text) straight into storage"""
    async def _write(key, value):
        payload = value if isinstance(value, str) else json.dumps(value)
        await memory_gateway.set(key, payload)
    return _write


@pytest.fixture
def read_raw(memory_gateway):
    """Read and decode a stored record, bypassing the record store"""
    async def _read(key):
        payload = await memory_gateway.get(key)
        return json.loads(payload) if payload is not None else None
    return _read


# ============================================================================
# Engine Fixtures
# ============================================================================

@pytest.fixture
def notifications(clock):
    return NotificationQueue(enabled=True, clock=clock)


@pytest.fixture
def cosmetics(record_store, clock):
    return CosmeticService(record_store, clock=clock)


@pytest.fixture
def achievements(record_store, cosmetics, notifications, clock):
    return AchievementService(record_store, cosmetics, notifications, clock=clock)


@pytest.fixture
def streak(record_store, achievements, notifications, clock):
    return StreakService(record_store, achievements, notifications, clock=clock)


@pytest.fixture
def challenges(record_store, achievements, cosmetics, notifications, clock):
    return ChallengeService(record_store, achievements, cosmetics, notifications, clock=clock, challenge_count=3)


@pytest.fixture
def container(record_store, clock):
    return RewardContainer(store=record_store, clock=clock, notifications_enabled=True)


# ============================================================================
# Health Data Fixtures
# ============================================================================

@pytest.fixture
def full_history():
    """A week with steps, sleep and HRV on every day"""
    return [
        DailyHealthRecord(date=date(2024, 2, 26) + timedelta(days=i), steps=10000, sleep_hours=7.5, hrv=50)
        for i in range(7)
    ]

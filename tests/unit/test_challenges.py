"""Unit tests for weekly challenges (rewards/gamification/challenges.py)"""
import pytest
from datetime import date, datetime, timedelta, timezone

from rewards.exceptions import RecordNotFoundError, ValidationError
from rewards.gamification.challenges import (
    TEMPLATES_BY_ID,
    ChallengeService,
    build_objective,
    select_templates,
)
from rewards.models.challenge import ChallengeObjectiveType
from rewards.models.health import DailyHealthRecord
from rewards.models.notification import NotificationType
from rewards.storage.record_store import CHALLENGES_KEY


def _ids(challenges):
    return [c.template_id for c in challenges]


def _by_template(challenges):
    return {c.template_id: c for c in challenges}


# ============================================================================
# Template selection & objectives
# ============================================================================

def test_select_templates_prefers_distinct_objective_types():
    steps_only = [DailyHealthRecord(date=date(2024, 3, 1), steps=5000)]

    three = select_templates(steps_only, week_number=0, count=3)
    four = select_templates(steps_only, week_number=0, count=4)

    assert [t.id for t in three] == ["steps_weekly_total", "streak_maintain", "combined_active_day"]
    assert [t.id for t in four] == ["steps_weekly_total", "streak_maintain", "combined_active_day", "steps_daily_goal"]


def test_select_templates_is_deterministic_and_rotates(full_history):
    week_10 = select_templates(full_history, week_number=10, count=3)

    assert [t.id for t in week_10] == [t.id for t in select_templates(full_history, 10, 3)]
    assert [t.id for t in week_10] == ["steps_consistency", "sleep_weekly_avg", "hrv_improvement"]
    assert [t.id for t in select_templates(full_history, 11, 3)] != [t.id for t in week_10]


def test_select_templates_without_data_uses_generic_templates():
    assert [t.id for t in select_templates([], week_number=10, count=3)] == ["streak_maintain", "combined_active_day"]


def test_build_objective_personalises_targets(full_history):
    weekly = build_objective(TEMPLATES_BY_ID["steps_weekly_total"], full_history)
    daily = build_objective(TEMPLATES_BY_ID["steps_daily_goal"], full_history)
    consistency = build_objective(TEMPLATES_BY_ID["steps_consistency"], full_history)
    sleep = build_objective(TEMPLATES_BY_ID["sleep_weekly_avg"], full_history)

    assert weekly.target == 77000
    assert daily.target == 12000
    assert (consistency.target, consistency.daily_threshold) == (5, 8000)
    assert sleep.target == 7.5


def test_build_objective_falls_back_to_defaults():
    weekly = build_objective(TEMPLATES_BY_ID["steps_weekly_total"], [])
    hrv = build_objective(TEMPLATES_BY_ID["hrv_improvement"], [])

    assert weekly.target == 57750
    assert hrv.daily_threshold == 40


# ============================================================================
# Generation
# ============================================================================

@pytest.mark.asyncio
async def test_generate_weekly_challenges(challenges, full_history, week_start, read_raw):
    generated = await challenges.generate_weekly_challenges(full_history)

    assert _ids(generated) == ["steps_consistency", "sleep_weekly_avg", "hrv_improvement"]
    assert generated[0].id == "steps_consistency_2024-03-04"
    assert generated[0].description == "Walk at least 8,000 steps on 5 days"
    assert all(c.start_date == week_start for c in generated)
    assert all(c.end_date == week_start + timedelta(days=7) for c in generated)
    assert all(c.progress == 0 and not c.completed for c in generated)

    stored = await read_raw(CHALLENGES_KEY)
    assert stored["weekStartDate"] == "2024-03-04"
    assert len(stored["activeChallenges"]) == 3


@pytest.mark.asyncio
async def test_generate_twice_in_same_week_returns_existing(challenges, full_history):
    first = await challenges.generate_weekly_challenges(full_history)
    await challenges.update_challenge_progress(first[0].id, 2)

    second = await challenges.generate_weekly_challenges([], today=date(2024, 3, 10))

    assert [c.id for c in second] == [c.id for c in first]
    assert second[0].progress == 2


@pytest.mark.asyncio
async def test_new_week_replaces_set(challenges, full_history):
    await challenges.generate_weekly_challenges(full_history)

    next_week = await challenges.generate_weekly_challenges(full_history, today=date(2024, 3, 11))

    assert all(c.start_date == date(2024, 3, 11) for c in next_week)
    assert challenges.week_start_date == date(2024, 3, 11)


@pytest.mark.asyncio
async def test_rotate_week_keeps_completed_history(challenges, full_history):
    generated = await challenges.generate_weekly_challenges(full_history)
    await challenges.complete_challenge(generated[0].id)

    assert await challenges.rotate_week(date(2024, 3, 8)) is False
    assert await challenges.rotate_week(date(2024, 3, 11)) is True

    assert challenges.get_active_challenges() == []
    assert challenges.get_completed_challenge_ids() == [generated[0].id]
    assert challenges.bonus_points == 75


# ============================================================================
# Progress
# ============================================================================

@pytest.mark.asyncio
async def test_progress_is_clamped_and_monotonic(challenges, full_history):
    hrv = _by_template(await challenges.generate_weekly_challenges(full_history))["hrv_improvement"]

    await challenges.update_challenge_progress(hrv.id, 2)
    lowered = await challenges.update_challenge_progress(hrv.id, 1)
    negative = await challenges.update_challenge_progress(hrv.id, -4)

    assert lowered.progress == 2
    assert negative.progress == 2
    assert not lowered.completed


@pytest.mark.asyncio
async def test_reaching_target_completes(challenges, full_history):
    consistency = _by_template(await challenges.generate_weekly_challenges(full_history))["steps_consistency"]

    updated = await challenges.update_challenge_progress(consistency.id, 99)

    assert updated.progress == 5
    assert updated.completed is True
    assert challenges.bonus_points == 75


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [float("nan"), float("inf"), "5", None])
async def test_progress_rejects_non_numbers(challenges, full_history, value):
    generated = await challenges.generate_weekly_challenges(full_history)

    with pytest.raises(ValidationError):
        await challenges.update_challenge_progress(generated[0].id, value)

    assert challenges.get_challenge(generated[0].id).progress == 0


@pytest.mark.asyncio
async def test_progress_unknown_challenge_raises(challenges):
    with pytest.raises(RecordNotFoundError):
        await challenges.update_challenge_progress("nope_2024-03-04", 1)


@pytest.mark.asyncio
async def test_update_all_uses_only_records_in_window(challenges, full_history):
    await challenges.generate_weekly_challenges(full_history)
    week_records = [
        DailyHealthRecord(date=date(2024, 3, 3), steps=20000, sleep_hours=9, hrv=90),
        DailyHealthRecord(date=date(2024, 3, 4), steps=8500, sleep_hours=7, hrv=52),
        DailyHealthRecord(date=date(2024, 3, 5), steps=3000, sleep_hours=6, hrv=40),
    ]
    today = DailyHealthRecord(date=date(2024, 3, 6), steps=9000, sleep_hours=8, hrv=55)

    updated = _by_template(await challenges.update_all_challenge_progress(today, week_records))

    assert updated["steps_consistency"].progress == 2
    assert updated["sleep_weekly_avg"].progress == 7.0
    assert updated["hrv_improvement"].progress == 2


@pytest.mark.asyncio
async def test_update_streak_progress_completes_streak_challenge(challenges):
    generated = _by_template(await challenges.generate_weekly_challenges([]))
    streak_id = generated["streak_maintain"].id

    await challenges.update_streak_progress(2)
    assert challenges.get_challenge(streak_id).progress == 2

    await challenges.update_streak_progress(3)
    assert challenges.get_challenge(streak_id).completed is True


# ============================================================================
# Completion & rewards
# ============================================================================

@pytest.mark.asyncio
async def test_complete_is_idempotent(challenges, full_history):
    generated = await challenges.generate_weekly_challenges(full_history)

    first = await challenges.complete_challenge(generated[1].id)
    second = await challenges.complete_challenge(generated[1].id)

    assert first.bonus_points == second.bonus_points == 100
    assert challenges.bonus_points == 100
    assert challenges.get_completed_challenge_ids() == [generated[1].id]


@pytest.mark.asyncio
async def test_first_completion_unlocks_challenge_achievement(challenges, achievements, full_history):
    generated = await challenges.generate_weekly_challenges(full_history)

    await challenges.complete_challenge(generated[0].id)

    assert achievements.is_earned("challenge_first")
    assert not achievements.is_earned("challenge_weekly_all")


@pytest.mark.asyncio
async def test_completing_every_challenge_awards_weekly_bonus(challenges, achievements, cosmetics, full_history):
    generated = await challenges.generate_weekly_challenges(full_history)

    for challenge in generated:
        await challenges.complete_challenge(challenge.id)

    assert await challenges.check_all_completed() is True
    assert achievements.is_earned("challenge_weekly_all")
    assert cosmetics.is_owned("hat_champion")
    assert challenges.bonus_points == 75 + 100 + 100


@pytest.mark.asyncio
async def test_cosmetic_reward_is_granted_and_notified(challenges, cosmetics, notifications, full_history):
    # ISO week 12 starts the rotation at the sleep-quality template
    generated = _by_template(await challenges.generate_weekly_challenges(full_history, today=date(2024, 3, 18)))

    await challenges.complete_challenge(generated["sleep_quality"].id)

    assert cosmetics.is_owned("background_stars")
    cosmetic_events = [n for n in notifications.pending() if n.type == NotificationType.COSMETIC_UNLOCK]
    assert [n.payload["cosmeticId"] for n in cosmetic_events] == ["background_stars"]


@pytest.mark.asyncio
async def test_combined_challenge_rewards_achievement(challenges, achievements):
    generated = _by_template(await challenges.generate_weekly_challenges([]))
    combined = generated["combined_active_day"]
    assert combined.objective.type == ChallengeObjectiveType.COMBINED

    await challenges.update_challenge_progress(combined.id, 1)

    assert achievements.is_earned("challenge_first")
    assert challenges.bonus_points == 150


# ============================================================================
# Time remaining
# ============================================================================

@pytest.mark.asyncio
async def test_time_remaining(challenges, full_history):
    assert challenges.format_time_remaining() == "Expired"

    await challenges.generate_weekly_challenges(full_history)

    assert challenges.get_time_remaining() == timedelta(days=4, hours=12)
    assert challenges.format_time_remaining() == "4d 12h remaining"
    assert challenges.format_time_remaining(datetime(2024, 3, 10, 20, 0, tzinfo=timezone.utc)) == "4h remaining"
    assert challenges.format_time_remaining(datetime(2024, 3, 11, 1, 0, tzinfo=timezone.utc)) == "Expired"


# ============================================================================
# Loading
# ============================================================================

@pytest.mark.asyncio
async def test_initialize_rotates_out_past_week(
    challenges, record_store, achievements, cosmetics, notifications, clock, full_history, week_start,
):
    generated = await challenges.generate_weekly_challenges(full_history, today=date(2024, 2, 28))
    await challenges.complete_challenge(generated[0].id)

    reloaded = ChallengeService(record_store, achievements, cosmetics, notifications, clock=clock)
    await reloaded.initialize()

    assert reloaded.get_active_challenges() == []
    assert reloaded.week_start_date == week_start
    assert reloaded.get_completed_challenge_ids() == [generated[0].id]


@pytest.mark.asyncio
async def test_initialize_salvages_readable_entries(
    challenges, record_store, achievements, cosmetics, notifications, clock, full_history, write_raw,
):
    generated = await challenges.generate_weekly_challenges(full_history)
    await write_raw(CHALLENGES_KEY, {
        "activeChallenges": [generated[0].model_dump(mode="json", by_alias=True), {"id": ""}],
        "completedChallengeIds": ["old_challenge", 3],
        "weekStartDate": "2024-03-04",
        "bonusPoints": 50,
    })

    reloaded = ChallengeService(record_store, achievements, cosmetics, notifications, clock=clock)
    await reloaded.initialize()

    assert [c.id for c in reloaded.get_active_challenges()] == [generated[0].id]
    assert reloaded.get_completed_challenge_ids() == ["old_challenge"]
    assert reloaded.bonus_points == 50

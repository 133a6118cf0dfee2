"""Unit tests for RewardService"""
import asyncio
from datetime import date, timedelta

import pytest

from rankicard.exceptions import ConcurrencyConflictError, InsufficientGoldError, StudyCapExceededError
from rankicard.gamification.activity_normalizer import FitnessSource, StudySource
from rankicard.gamification.memory_store import InMemoryProfileStore
from rankicard.services.reward_service import RewardService, RewardStatus


# ============================================================================
# XP
# ============================================================================

@pytest.mark.asyncio
async def test_add_xp_updates_total_and_level(reward_service, test_user_id):
    outcome = await reward_service.add_xp(test_user_id, 60)

    assert outcome.status == RewardStatus.GRANTED
    assert outcome.new_total_xp == 60
    assert outcome.new_level == 2
    assert outcome.leveled_up is True
    assert outcome.progress.current_level == 2


@pytest.mark.asyncio
async def test_add_xp_without_level_up(reward_service, test_user_id):
    outcome = await reward_service.add_xp(test_user_id, 10)

    assert outcome.leveled_up is False
    assert outcome.message == "+10 XP"


@pytest.mark.asyncio
async def test_rank_change_detected(reward_service, test_user_id):
    # Level 10 starts at 4050 XP
    outcome = await reward_service.add_xp(test_user_id, 4050)

    assert outcome.new_level == 10
    assert outcome.old_rank == "F"
    assert outcome.new_rank == "E"
    assert outcome.rank_changed is True


@pytest.mark.parametrize("amount", [0, -5])
@pytest.mark.asyncio
async def test_non_positive_xp_rejected(reward_service, test_user_id, amount):
    outcome = await reward_service.add_xp(test_user_id, amount)

    assert outcome.status == RewardStatus.REJECTED
    assert (await reward_service.get_progress(test_user_id)).total_xp == 0


@pytest.mark.asyncio
async def test_concurrent_grants_do_not_lose_increments(reward_service, test_user_id):
    await asyncio.gather(*(reward_service.add_xp(test_user_id, 5) for _ in range(50)))

    progress = await reward_service.get_progress(test_user_id)
    assert progress.total_xp == 250
    assert progress.version == 50


@pytest.mark.asyncio
async def test_award_dispatches_on_source(reward_service, test_user_id):
    outcome = await reward_service.award(test_user_id, FitnessSource(kind="Run", distance_meters=1000))

    assert outcome.xp_awarded == 270


# ============================================================================
# Conflicts
# ============================================================================

@pytest.mark.asyncio
async def test_conflict_is_retried_once(clock, test_user_id):
    store = InMemoryProfileStore()
    real_write = store.write_progress
    calls = {"n": 0}

    async def flaky_write(user_id, changes, expected_version):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConcurrencyConflictError(expected_version=expected_version)
        return await real_write(user_id, changes, expected_version)

    store.write_progress = flaky_write
    service = RewardService(store, clock=clock)

    outcome = await service.add_xp(test_user_id, 20)

    assert outcome.status == RewardStatus.GRANTED
    assert calls["n"] == 2
    assert (await store.read_progress(test_user_id)).total_xp == 20


@pytest.mark.asyncio
async def test_conflict_surfaces_after_retry(clock, test_user_id):
    store = InMemoryProfileStore()

    async def always_conflicts(user_id, changes, expected_version):
        raise ConcurrencyConflictError(expected_version=expected_version)

    store.write_progress = always_conflicts
    service = RewardService(store, clock=clock)

    outcome = await service.add_xp(test_user_id, 20)

    assert outcome.status == RewardStatus.CONFLICT
    assert isinstance(outcome.error, ConcurrencyConflictError)
    assert (await store.read_progress(test_user_id)).total_xp == 0


# ============================================================================
# Study cap
# ============================================================================

@pytest.mark.asyncio
async def test_study_cap_is_all_or_nothing(reward_service, test_user_id):
    first = await reward_service.add_study_xp(test_user_id, 1500)
    second = await reward_service.add_study_xp(test_user_id, 1)

    assert first.status == RewardStatus.GRANTED
    assert second.status == RewardStatus.REJECTED
    assert isinstance(second.error, StudyCapExceededError)

    progress = await reward_service.get_progress(test_user_id)
    assert progress.today_study_xp == 1500
    assert progress.total_xp == 1500


@pytest.mark.asyncio
async def test_partial_fit_is_rejected_whole(reward_service, test_user_id):
    await reward_service.add_study_xp(test_user_id, 1400)

    outcome = await reward_service.add_study_xp(test_user_id, 175)

    assert outcome.status == RewardStatus.REJECTED
    assert (await reward_service.get_progress(test_user_id)).today_study_xp == 1400


@pytest.mark.asyncio
async def test_study_counter_resets_on_new_day(reward_service, clock, test_user_id):
    await reward_service.add_study_xp(test_user_id, 1500)
    clock.advance(24 * 3600)

    outcome = await reward_service.add_study_xp(test_user_id, 350)

    assert outcome.status == RewardStatus.GRANTED
    progress = await reward_service.get_progress(test_user_id)
    assert progress.today_study_xp == 350
    assert progress.last_study_date == clock.today()
    assert progress.total_xp == 1850
    assert progress.study_sessions == 2


@pytest.mark.asyncio
async def test_award_study_source_goes_through_cap(reward_service, test_user_id):
    await reward_service.add_study_xp(test_user_id, 1400)

    outcome = await reward_service.award(test_user_id, StudySource(minutes=25))

    assert outcome.status == RewardStatus.REJECTED


# ============================================================================
# Gold
# ============================================================================

@pytest.mark.asyncio
async def test_add_and_spend_gold(reward_service, test_user_id):
    await reward_service.add_gold(test_user_id, 100)

    outcome = await reward_service.spend_gold(test_user_id, 40)

    assert outcome.success
    assert outcome.gold_delta == -40
    assert outcome.progress.gold == 60


@pytest.mark.asyncio
async def test_overspending_is_rejected(reward_service, test_user_id):
    await reward_service.add_gold(test_user_id, 30)

    outcome = await reward_service.spend_gold(test_user_id, 31)

    assert outcome.status == RewardStatus.REJECTED
    assert isinstance(outcome.error, InsufficientGoldError)
    assert outcome.message == "Not enough gold!"
    assert (await reward_service.get_progress(test_user_id)).gold == 30


@pytest.mark.asyncio
async def test_mission_reward_is_single_write(reward_service, test_user_id):
    outcome = await reward_service.grant_mission_reward(test_user_id, "m1", xp=19, gold=15)

    assert outcome.success
    assert outcome.progress.total_xp == 19
    assert outcome.progress.gold == 15
    assert outcome.progress.version == 1


# ============================================================================
# External sync
# ============================================================================

@pytest.mark.asyncio
async def test_external_sync_moves_watermark_with_xp(reward_service, test_user_id):
    outcome = await reward_service.apply_external_sync(test_user_id, "strava", 270, 1_700_000_200)

    assert outcome.progress.total_xp == 270
    assert outcome.progress.fitness_sync_cursor == 1_700_000_200
    assert outcome.progress.music_sync_cursor == 0


@pytest.mark.asyncio
async def test_external_sync_watermark_never_moves_back(reward_service, test_user_id):
    await reward_service.apply_external_sync(test_user_id, "spotify", 3, 500)

    outcome = await reward_service.apply_external_sync(test_user_id, "spotify", 0, 400)

    assert outcome.progress.music_sync_cursor == 500
    assert outcome.progress.total_xp == 3


# ============================================================================
# Streaks and daily refresh
# ============================================================================

@pytest.mark.asyncio
async def test_load_profile_starts_streak(reward_service, clock, test_user_id):
    refresh = await reward_service.load_profile(test_user_id)

    assert refresh.streak.streak_count == 1
    assert refresh.progress.streak_last_date == clock.today()


@pytest.mark.asyncio
async def test_load_profile_twice_same_day_is_noop(reward_service, test_user_id):
    await reward_service.load_profile(test_user_id)
    second = await reward_service.load_profile(test_user_id)

    assert second.streak.changed is False
    assert second.progress.streak_count == 1


@pytest.mark.asyncio
async def test_streak_resets_after_gap(reward_service, profile_store, clock, test_user_id):
    snapshot = await profile_store.read_progress(test_user_id)
    await profile_store.write_progress(
        test_user_id,
        {"streak_count": 9, "streak_last_date": clock.today() - timedelta(days=3)},
        snapshot.version,
    )

    refresh = await reward_service.evaluate_streak(test_user_id)

    assert refresh.streak.reset is True
    assert refresh.progress.streak_count == 1
    assert refresh.progress.streak_last_date == clock.today()


@pytest.mark.asyncio
async def test_load_profile_resets_stale_study_counter(reward_service, profile_store, clock, test_user_id):
    snapshot = await profile_store.read_progress(test_user_id)
    await profile_store.write_progress(
        test_user_id,
        {"today_study_xp": 700, "last_study_date": date(2024, 1, 1)},
        snapshot.version,
    )

    refresh = await reward_service.load_profile(test_user_id)

    assert refresh.study_reset is True
    assert refresh.progress.today_study_xp == 0


@pytest.mark.asyncio
async def test_user_locks_do_not_accumulate(reward_service):
    await asyncio.gather(*(reward_service.add_xp(f"user-{i}", 10) for i in range(20)))

    assert len(reward_service._locks) == 0

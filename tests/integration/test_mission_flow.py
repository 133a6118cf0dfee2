"""Daily mission flow against the in-memory stores"""
import asyncio
import random
from datetime import date
from unittest.mock import AsyncMock

import pytest

from rankicard.exceptions import ConnectionError, QueryError
from rankicard.models.mission import MissionStatus
from rankicard.services.mission_service import CompletionStatus, MissionService
from rankicard.services.reward_service import RewardOutcome, RewardStatus


@pytest.fixture
def mission_service(mission_store, reward_service, clock):
    return MissionService(mission_store, reward_service, clock=clock, rng=random.Random(7))


@pytest.mark.asyncio
async def test_new_user_gets_five_missions_in_rank_window(mission_service, test_user_id):
    missions = await mission_service.get_daily_missions(test_user_id)

    assert len(missions) == 5
    assert {m.template.rank for m in missions} <= {"F", "E"}
    assert all(m.status == MissionStatus.PENDING for m in missions)
    assert all(m.reward.xp >= 1 for m in missions)


@pytest.mark.asyncio
async def test_missions_are_generated_once_per_day(mission_service, test_user_id):
    first = await mission_service.get_daily_missions(test_user_id)
    second = await mission_service.get_daily_missions(test_user_id)

    assert [m.template.id for m in first] == [m.template.id for m in second]


@pytest.mark.asyncio
async def test_concurrent_generation_is_single_flight(mission_service, mission_store, clock, test_user_id):
    results = await asyncio.gather(*(mission_service.get_daily_missions(test_user_id) for _ in range(5)))

    assignments = await mission_store.get_assignments_for_day(test_user_id, clock.today())
    assert len(assignments) == 5
    assert all(len(r) == 5 for r in results)


@pytest.mark.asyncio
async def test_new_day_brings_new_assignments(mission_service, mission_store, clock, test_user_id):
    await mission_service.get_daily_missions(test_user_id)
    yesterday = clock.today()
    clock.advance(24 * 3600)

    missions = await mission_service.get_daily_missions(test_user_id)

    assert all(m.assignment.assigned_date == clock.today() for m in missions)
    old = await mission_store.get_assignments_for_day(test_user_id, yesterday)
    assert all(a.effective_status(clock.today()) == MissionStatus.EXPIRED for a in old)


@pytest.mark.asyncio
async def test_complete_mission_grants_xp_and_gold(mission_service, reward_service, test_user_id):
    [mission, *_] = await mission_service.get_daily_missions(test_user_id)

    result = await mission_service.complete_mission(test_user_id, mission.template.id)

    assert result.status == CompletionStatus.COMPLETED
    progress = await reward_service.get_progress(test_user_id)
    assert progress.total_xp == result.reward.xp
    assert progress.gold == mission.template.gold_reward


@pytest.mark.asyncio
async def test_second_completion_grants_nothing(mission_service, reward_service, test_user_id):
    [mission, *_] = await mission_service.get_daily_missions(test_user_id)
    await mission_service.complete_mission(test_user_id, mission.template.id)
    before = await reward_service.get_progress(test_user_id)

    again = await mission_service.complete_mission(test_user_id, mission.template.id)

    assert again.status == CompletionStatus.ALREADY_COMPLETED
    after = await reward_service.get_progress(test_user_id)
    assert after.total_xp == before.total_xp
    assert after.gold == before.gold


@pytest.mark.asyncio
async def test_completed_mission_shows_completed(mission_service, test_user_id):
    [mission, *_] = await mission_service.get_daily_missions(test_user_id)
    await mission_service.complete_mission(test_user_id, mission.template.id)

    missions = await mission_service.get_daily_missions(test_user_id)

    status = {m.template.id: m.status for m in missions}
    assert status[mission.template.id] == MissionStatus.COMPLETED


@pytest.mark.asyncio
async def test_unassigned_mission_is_not_found(mission_service, test_user_id):
    missions = await mission_service.get_daily_missions(test_user_id)
    assigned = {m.template.id for m in missions}
    other = next(mid for mid in ("s1", "s2", "s3", "a1") if mid not in assigned)

    result = await mission_service.complete_mission(test_user_id, other)

    assert result.status == CompletionStatus.NOT_FOUND


@pytest.mark.asyncio
async def test_reward_failure_reverts_completion(mission_store, reward_service, clock, test_user_id):
    service = MissionService(mission_store, reward_service, clock=clock, rng=random.Random(1))
    [mission, *_] = await service.get_daily_missions(test_user_id)
    reward_service.grant_mission_reward = AsyncMock(
        return_value=RewardOutcome(status=RewardStatus.CONFLICT, message="Try again")
    )

    result = await service.complete_mission(test_user_id, mission.template.id)

    assert result.status == CompletionStatus.FAILED
    [assignment] = [
        a for a in await mission_store.get_assignments_for_day(test_user_id, clock.today())
        if a.mission_id == mission.template.id
    ]
    assert assignment.status == MissionStatus.PENDING


@pytest.mark.asyncio
async def test_weekend_completion_pays_weekend_price(mission_store, reward_service, clock, test_user_id):
    # Level 10, rank E
    await reward_service.add_xp(test_user_id, 4050)
    clock.set_day(date(2024, 1, 20))
    service = MissionService(mission_store, reward_service, clock=clock, rng=random.Random(2))

    missions = await service.get_daily_missions(test_user_id)
    same_rank = next(m for m in missions if m.template.rank == "E")
    assert same_rank.reward.xp == 28
    assert "+50% Weekend" in same_rank.reward.bonuses

    result = await service.complete_mission(test_user_id, same_rank.template.id)
    assert result.reward.xp == 28


async def _assignment_status(mission_store, clock, user_id, mission_id):
    [assignment] = [
        a for a in await mission_store.get_assignments_for_day(user_id, clock.today())
        if a.mission_id == mission_id
    ]
    return assignment.status


@pytest.mark.asyncio
async def test_profile_read_failure_leaves_mission_pending(
    mission_service, mission_store, profile_store, reward_service, clock, test_user_id
):
    [mission, *_] = await mission_service.get_daily_missions(test_user_id)
    read_progress = profile_store.read_progress
    calls = {"n": 0}

    async def flaky_read(user_id):
        calls["n"] += 1
        if calls["n"] == 1:
            raise QueryError(message="Database query failed: server closed the connection")
        return await read_progress(user_id)

    profile_store.read_progress = flaky_read

    failed = await mission_service.complete_mission(test_user_id, mission.template.id)

    assert failed.status == CompletionStatus.FAILED
    assert await _assignment_status(mission_store, clock, test_user_id, mission.template.id) == MissionStatus.PENDING
    assert (await reward_service.get_progress(test_user_id)).total_xp == 0

    retry = await mission_service.complete_mission(test_user_id, mission.template.id)

    assert retry.status == CompletionStatus.COMPLETED
    progress = await reward_service.get_progress(test_user_id)
    assert progress.total_xp == retry.reward.xp
    assert progress.gold == mission.template.gold_reward


@pytest.mark.asyncio
async def test_store_failure_on_completion_is_reported(mission_service, mission_store, test_user_id):
    [mission, *_] = await mission_service.get_daily_missions(test_user_id)
    mission_store.mark_completed = AsyncMock(side_effect=ConnectionError())

    result = await mission_service.complete_mission(test_user_id, mission.template.id)

    assert result.status == CompletionStatus.FAILED
    assert "database" in result.message


@pytest.mark.asyncio
async def test_unexpected_grant_error_reverts_and_propagates(mission_store, reward_service, clock, test_user_id):
    service = MissionService(mission_store, reward_service, clock=clock, rng=random.Random(3))
    [mission, *_] = await service.get_daily_missions(test_user_id)
    reward_service.grant_mission_reward = AsyncMock(side_effect=RuntimeError("boom"))

    with pytest.raises(RuntimeError):
        await service.complete_mission(test_user_id, mission.template.id)

    assert await _assignment_status(mission_store, clock, test_user_id, mission.template.id) == MissionStatus.PENDING


@pytest.mark.asyncio
async def test_mission_locks_are_released(mission_service, test_user_id):
    await mission_service.get_daily_missions(test_user_id)

    assert test_user_id not in mission_service._locks
    assert len(mission_service._locks) == 0

"""External sync flow: credentials, cooldown, normalization and reward application"""
from unittest.mock import AsyncMock, MagicMock

import psycopg
import pytest

from rankicard.db.queries import PostgresProfileStore

from rankicard.exceptions import NetworkFailureError, StaleCredentialError
from rankicard.gamification.cooldown import CooldownTracker
from rankicard.models.activity import RawActivity, RawPlay
from rankicard.models.progress import ProviderCredentials
from rankicard.services.sync_service import ExternalSyncService, SyncStatus

NOW = 1_705_492_800  # 2024-01-17 12:00 UTC, the fixture clock


class FakeProvider:
    def __init__(self, name, service):
        self.name = name
        self.service = service
        self.fetch_activities_since = AsyncMock(return_value=[])
        self.fetch_plays_since = AsyncMock(return_value=[])
        self.refresh = AsyncMock()


@pytest.fixture
def strava():
    return FakeProvider("strava", "Strava")


@pytest.fixture
def spotify():
    return FakeProvider("spotify", "Spotify")


@pytest.fixture
def sync_service(profile_store, reward_service, strava, spotify, clock):
    return ExternalSyncService(profile_store, reward_service, strava, spotify, clock=clock)


@pytest.fixture
def cooldown(cooldown_storage, clock):
    return CooldownTracker(cooldown_storage, "strava_sync_cooldown_end:user-123", 900, clock=clock.timestamp)


async def _connect(profile_store, user_id, **overrides):
    fields = {"provider": "strava", "access_token": "access", "refresh_token": "refresh", "expires_at": NOW + 3600}
    fields.update(overrides)
    await profile_store.save_credentials(user_id, ProviderCredentials(**fields))


# ============================================================================
# Fitness
# ============================================================================

@pytest.mark.asyncio
async def test_fitness_sync_grants_xp_and_moves_watermark(sync_service, profile_store, strava, cooldown, test_user_id):
    await _connect(profile_store, test_user_id)
    strava.fetch_activities_since.return_value = [
        RawActivity(kind="Run", distance_meters=5000, start_time=NOW - 500, manual=True),
        RawActivity(kind="Run", distance_meters=1000, start_time=NOW - 100),
    ]

    outcome = await sync_service.sync_fitness(test_user_id, cooldown)

    assert outcome.status == SyncStatus.SUCCESS
    assert outcome.xp_gained == 270
    assert outcome.ignored_count == 1
    progress = await profile_store.read_progress(test_user_id)
    assert progress.total_xp == 270
    assert progress.fitness_sync_cursor == NOW - 100
    strava.fetch_activities_since.assert_awaited_once_with("access", 0)


@pytest.mark.asyncio
async def test_second_sync_is_rate_limited(sync_service, profile_store, strava, cooldown, test_user_id):
    await _connect(profile_store, test_user_id)

    await sync_service.sync_fitness(test_user_id, cooldown)
    outcome = await sync_service.sync_fitness(test_user_id, cooldown)

    assert outcome.status == SyncStatus.RATE_LIMITED
    assert outcome.cooldown_seconds == 900
    assert outcome.message.endswith("15:00")
    assert strava.fetch_activities_since.await_count == 1


@pytest.mark.asyncio
async def test_sync_allowed_again_after_window(sync_service, profile_store, strava, cooldown, clock, test_user_id):
    await _connect(profile_store, test_user_id)
    await sync_service.sync_fitness(test_user_id, cooldown)

    clock.advance(900)
    outcome = await sync_service.sync_fitness(test_user_id, cooldown)

    assert outcome.status == SyncStatus.NO_NEW_ACTIVITY
    assert strava.fetch_activities_since.await_count == 2


@pytest.mark.asyncio
async def test_network_failure_keeps_watermark_but_starts_cooldown(
    sync_service, profile_store, strava, cooldown, test_user_id
):
    await _connect(profile_store, test_user_id)
    strava.fetch_activities_since.side_effect = NetworkFailureError(message="timeout", service="Strava")

    outcome = await sync_service.sync_fitness(test_user_id, cooldown)

    assert outcome.status == SyncStatus.NETWORK_FAILURE
    assert (await profile_store.read_progress(test_user_id)).fitness_sync_cursor == 0
    assert await cooldown.is_active()


@pytest.mark.asyncio
async def test_no_new_activity_is_distinct_from_failure(sync_service, profile_store, strava, cooldown, test_user_id):
    await _connect(profile_store, test_user_id)

    outcome = await sync_service.sync_fitness(test_user_id, cooldown)

    assert outcome.status == SyncStatus.NO_NEW_ACTIVITY
    assert outcome.success


@pytest.mark.asyncio
async def test_rejected_token_is_stale_credential(sync_service, profile_store, strava, cooldown, test_user_id):
    await _connect(profile_store, test_user_id)
    strava.fetch_activities_since.side_effect = StaleCredentialError(service="Strava", status_code=401)

    outcome = await sync_service.sync_fitness(test_user_id, cooldown)

    assert outcome.status == SyncStatus.STALE_CREDENTIAL
    assert (await profile_store.read_progress(test_user_id)).total_xp == 0


@pytest.mark.asyncio
async def test_never_connected_is_stale_credential(sync_service, strava, cooldown, test_user_id):
    outcome = await sync_service.sync_fitness(test_user_id, cooldown)

    assert outcome.status == SyncStatus.STALE_CREDENTIAL
    assert outcome.message == "Connect Strava first."
    strava.fetch_activities_since.assert_not_awaited()
    assert not await cooldown.is_active()


@pytest.mark.asyncio
async def test_credential_store_outage_is_an_error_outcome(reward_service, strava, spotify, cooldown, clock, test_user_id):
    db = MagicMock()
    db.connection.return_value.__aenter__.side_effect = psycopg.OperationalError("connection lost")
    service = ExternalSyncService(PostgresProfileStore(db), reward_service, strava, spotify, clock=clock)

    outcome = await service.sync_fitness(test_user_id, cooldown)

    assert outcome.status == SyncStatus.ERROR
    assert "database" in outcome.message
    assert await cooldown.remaining_seconds() == 0
    strava.fetch_activities_since.assert_not_awaited()


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_saved(sync_service, profile_store, strava, cooldown, test_user_id):
    await _connect(profile_store, test_user_id, expires_at=NOW - 1)
    strava.refresh.return_value = ProviderCredentials(
        provider="strava", access_token="fresh", refresh_token="refresh-2", expires_at=NOW + 21600
    )

    await sync_service.sync_fitness(test_user_id, cooldown)

    strava.refresh.assert_awaited_once_with("refresh", NOW)
    strava.fetch_activities_since.assert_awaited_once_with("fresh", 0)
    stored = await profile_store.get_credentials(test_user_id, "strava")
    assert stored.access_token == "fresh"


@pytest.mark.asyncio
async def test_expired_without_refresh_token_is_stale(sync_service, profile_store, strava, cooldown, test_user_id):
    await _connect(profile_store, test_user_id, expires_at=NOW - 1, refresh_token=None)

    outcome = await sync_service.sync_fitness(test_user_id, cooldown)

    assert outcome.status == SyncStatus.STALE_CREDENTIAL
    strava.refresh.assert_not_awaited()


@pytest.mark.asyncio
async def test_disconnect_clears_credentials(sync_service, profile_store, test_user_id):
    await _connect(profile_store, test_user_id)

    await sync_service.disconnect(test_user_id, "strava")

    assert await sync_service.is_connected(test_user_id, "strava") is False


# ============================================================================
# Music
# ============================================================================

@pytest.mark.asyncio
async def test_music_sync_floors_total_minutes(sync_service, profile_store, spotify, test_user_id):
    await _connect(profile_store, test_user_id, provider="spotify")
    spotify.fetch_plays_since.return_value = [
        RawPlay(duration_ms=150_000, played_at=NOW - 300),
        RawPlay(duration_ms=150_000, played_at=NOW - 100),
    ]

    outcome = await sync_service.sync_music(test_user_id)

    assert outcome.status == SyncStatus.SUCCESS
    assert outcome.xp_gained == 5
    progress = await profile_store.read_progress(test_user_id)
    assert progress.music_sync_cursor == NOW - 100
    assert progress.fitness_sync_cursor == 0


@pytest.mark.asyncio
async def test_music_resync_with_same_plays_grants_nothing(sync_service, profile_store, spotify, test_user_id):
    await _connect(profile_store, test_user_id, provider="spotify")
    spotify.fetch_plays_since.return_value = [RawPlay(duration_ms=600_000, played_at=NOW - 60)]

    await sync_service.sync_music(test_user_id)
    second = await sync_service.sync_music(test_user_id)

    assert second.status == SyncStatus.NO_NEW_ACTIVITY
    assert (await profile_store.read_progress(test_user_id)).total_xp == 10

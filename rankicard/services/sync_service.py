"""
ExternalSyncService - Strava / Spotify sync

Pulls new provider records since the user's watermark, turns them into XP
and applies XP and watermark in one progress write.

Fitness sync is rate limited: the cooldown starts right before the
activities request goes out, so a failed request still costs the window.
Partner calls are never retried automatically; the user retries once the
cooldown is over.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Set, Tuple

from rankicard.exceptions import (
    NetworkFailureError,
    ProviderNotConnectedError,
    RankicardError,
    StaleCredentialError,
)
from rankicard.gamification.activity_normalizer import (
    NormalizedSync,
    normalize_fitness_activities,
    normalize_listening_plays,
)
from rankicard.gamification.cooldown import CooldownTracker, format_countdown
from rankicard.models.progress import ProviderCredentials
from rankicard.resilience.metrics import record_sync_outcome
from rankicard.services.reward_service import RewardOutcome, RewardService
from rankicard.utils.datetime_helpers import Clock

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    SUCCESS = "success"
    NO_NEW_ACTIVITY = "no_new_activity"
    RATE_LIMITED = "rate_limited"
    IN_PROGRESS = "in_progress"
    STALE_CREDENTIAL = "stale_credential"
    NETWORK_FAILURE = "network_failure"
    ERROR = "error"


@dataclass
class SyncOutcome:
    """Result of one sync attempt"""
    status: SyncStatus
    provider: str
    xp_gained: int = 0
    eligible_count: int = 0
    ignored_count: int = 0
    new_watermark: Optional[int] = None
    cooldown_seconds: int = 0
    reward: Optional[RewardOutcome] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status in (SyncStatus.SUCCESS, SyncStatus.NO_NEW_ACTIVITY)


class ExternalSyncService:
    """
    Service for external activity sync.

    Responsibilities:
    - Credential lifecycle (refresh when expired, connect, disconnect)
    - Fitness sync behind the cooldown gate
    - Music sync
    - Mapping provider failures to distinct outcomes
    """

    def __init__(
        self,
        profile_store,
        reward_service: RewardService,
        strava_client,
        spotify_client,
        clock: Optional[Clock] = None
    ):
        self.profile_store = profile_store
        self.reward_service = reward_service
        self.strava_client = strava_client
        self.spotify_client = spotify_client
        self.clock = clock or reward_service.clock
        self._in_flight: Set[Tuple[str, str]] = set()
        logger.debug("ExternalSyncService initialized")

    # ============================================
    # Credentials
    # ============================================

    async def connect(self, user_id: str, credentials: ProviderCredentials) -> None:
        await self.profile_store.save_credentials(user_id, credentials)

    async def disconnect(self, user_id: str, provider: str) -> None:
        await self.profile_store.clear_credentials(user_id, provider)
        logger.info(f"User {user_id} disconnected {provider}")

    async def is_connected(self, user_id: str, provider: str) -> bool:
        credentials = await self.profile_store.get_credentials(user_id, provider)
        return credentials.connected

    async def get_access_token(self, user_id: str, client) -> str:
        """
        Valid access token for a provider, refreshing it when expired

        Raises:
            ProviderNotConnectedError: no tokens stored at all
            StaleCredentialError: expired with no usable refresh token
            NetworkFailureError: refresh endpoint unreachable
        """
        credentials = await self.profile_store.get_credentials(user_id, client.name)
        if not credentials.connected:
            raise ProviderNotConnectedError(service=client.service, user_id=user_id, operation="get_access_token")

        now_ts = int(self.clock.timestamp())
        if credentials.access_token and not credentials.is_expired(now_ts):
            return credentials.access_token

        if not credentials.refresh_token:
            raise StaleCredentialError(
                message=f"{client.service} token expired and no refresh token is stored",
                service=client.service,
                user_id=user_id,
                operation="get_access_token",
            )

        refreshed = await client.refresh(credentials.refresh_token, now_ts)
        await self.profile_store.save_credentials(user_id, refreshed)
        return refreshed.access_token

    # ============================================
    # Sync
    # ============================================

    async def sync_fitness(self, user_id: str, cooldown: CooldownTracker) -> SyncOutcome:
        """
        Sync Strava activities (rate limited by `cooldown`)
        """
        provider = self.strava_client.name
        if (user_id, provider) in self._in_flight:
            return self._finish(SyncOutcome(
                status=SyncStatus.IN_PROGRESS,
                provider=provider,
                message="Sync already in progress.",
            ))

        remaining = await cooldown.remaining_seconds()
        if remaining > 0:
            return self._finish(SyncOutcome(
                status=SyncStatus.RATE_LIMITED,
                provider=provider,
                cooldown_seconds=remaining,
                message=f"Next sync available in {format_countdown(remaining)}",
            ))

        self._in_flight.add((user_id, provider))
        try:
            try:
                access_token = await self.get_access_token(user_id, self.strava_client)
                progress = await self.reward_service.get_progress(user_id)
                watermark = progress.fitness_sync_cursor

                await cooldown.start()
                activities = await self.strava_client.fetch_activities_since(access_token, watermark)
            except RankicardError as e:
                return self._finish(self._failure(provider, e))

            summary = normalize_fitness_activities(activities, watermark)
            return self._finish(await self._apply(user_id, provider, summary))
        finally:
            self._in_flight.discard((user_id, provider))

    async def sync_music(self, user_id: str) -> SyncOutcome:
        """Sync Spotify listening history"""
        provider = self.spotify_client.name
        if (user_id, provider) in self._in_flight:
            return self._finish(SyncOutcome(
                status=SyncStatus.IN_PROGRESS,
                provider=provider,
                message="Sync already in progress.",
            ))

        self._in_flight.add((user_id, provider))
        try:
            try:
                access_token = await self.get_access_token(user_id, self.spotify_client)
                progress = await self.reward_service.get_progress(user_id)
                watermark = progress.music_sync_cursor
                plays = await self.spotify_client.fetch_plays_since(access_token, watermark)
            except RankicardError as e:
                return self._finish(self._failure(provider, e))

            summary = normalize_listening_plays(plays, watermark)
            return self._finish(await self._apply(user_id, provider, summary))
        finally:
            self._in_flight.discard((user_id, provider))

    # ============================================
    # Internals
    # ============================================

    async def _apply(self, user_id: str, provider: str, summary: NormalizedSync) -> SyncOutcome:
        if not summary.watermark_advanced:
            return SyncOutcome(
                status=SyncStatus.NO_NEW_ACTIVITY,
                provider=provider,
                message="No new activity found.",
            )

        reward = await self.reward_service.apply_external_sync(
            user_id, provider, summary.total_xp_gained, summary.new_watermark
        )
        if not reward.success:
            return SyncOutcome(
                status=SyncStatus.ERROR,
                provider=provider,
                reward=reward,
                message=reward.message or "Couldn't save your synced activity. Please try again.",
            )

        if summary.total_xp_gained > 0:
            message = f"🎉 +{summary.total_xp_gained} XP from {summary.eligible_count} new activit{'y' if summary.eligible_count == 1 else 'ies'}"
        else:
            message = "No XP earned from new activity."
        if summary.ignored_count:
            message += f" ({summary.ignored_count} manual ignored)"

        return SyncOutcome(
            status=SyncStatus.SUCCESS,
            provider=provider,
            xp_gained=summary.total_xp_gained,
            eligible_count=summary.eligible_count,
            ignored_count=summary.ignored_count,
            new_watermark=summary.new_watermark,
            reward=reward,
            message=message,
        )

    def _failure(self, provider: str, error: RankicardError) -> SyncOutcome:
        if isinstance(error, StaleCredentialError):
            status = SyncStatus.STALE_CREDENTIAL
        elif isinstance(error, NetworkFailureError):
            status = SyncStatus.NETWORK_FAILURE
        else:
            status = SyncStatus.ERROR
        return SyncOutcome(status=status, provider=provider, message=error.user_message)

    def _finish(self, outcome: SyncOutcome) -> SyncOutcome:
        record_sync_outcome(outcome.provider, outcome.status.value)
        logger.info(f"{outcome.provider} sync: {outcome.status.value} ({outcome.xp_gained} XP)")
        return outcome

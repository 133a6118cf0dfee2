"""
Service Container - Dependency Injection Container

Simple DI container for managing service instances and their dependencies.
Uses lazy loading to only instantiate services when first accessed.
Constructed once at start-up; per-user state lives in UserSession objects
opened through the container.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
import logging

from rankicard.config import FITNESS_SYNC_COOLDOWN_SECONDS
from rankicard.db.contracts import AchievementStore, InventoryStore, MissionStore, ProfileStore
from rankicard.gamification.cooldown import CooldownStorage
from rankicard.utils.datetime_helpers import Clock

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    Stores, provider clients and the clock are injected.
    """

    # Infrastructure dependencies (injected)
    profile_store: ProfileStore
    mission_store: MissionStore
    inventory_store: InventoryStore
    achievement_store: AchievementStore
    cooldown_storage: CooldownStorage
    strava_client: Optional[object] = None
    spotify_client: Optional[object] = None
    clock: Clock = field(default_factory=Clock)
    cooldown_seconds: int = FITNESS_SYNC_COOLDOWN_SECONDS

    # Services (lazy-loaded via properties)
    _reward_service: Optional[object] = field(default=None, init=False, repr=False)
    _mission_service: Optional[object] = field(default=None, init=False, repr=False)
    _sync_service: Optional[object] = field(default=None, init=False, repr=False)
    _shop_service: Optional[object] = field(default=None, init=False, repr=False)
    _achievement_service: Optional[object] = field(default=None, init=False, repr=False)
    _sessions: Dict[str, object] = field(default_factory=dict, init=False, repr=False)

    @property
    def reward_service(self):
        """Get RewardService instance (lazy-loaded)"""
        if self._reward_service is None:
            from rankicard.services.reward_service import RewardService
            self._reward_service = RewardService(self.profile_store, clock=self.clock)
            logger.debug("RewardService instantiated")
        return self._reward_service

    @property
    def mission_service(self):
        """Get MissionService instance (lazy-loaded)"""
        if self._mission_service is None:
            from rankicard.services.mission_service import MissionService
            self._mission_service = MissionService(self.mission_store, self.reward_service, clock=self.clock)
            logger.debug("MissionService instantiated")
        return self._mission_service

    @property
    def sync_service(self):
        """Get ExternalSyncService instance (lazy-loaded)"""
        if self._sync_service is None:
            from rankicard.integrations import SpotifyClient, StravaClient
            from rankicard.services.sync_service import ExternalSyncService
            self._sync_service = ExternalSyncService(
                self.profile_store,
                self.reward_service,
                strava_client=self.strava_client or StravaClient(),
                spotify_client=self.spotify_client or SpotifyClient(),
                clock=self.clock,
            )
            logger.debug("ExternalSyncService instantiated")
        return self._sync_service

    @property
    def shop_service(self):
        """Get ShopService instance (lazy-loaded)"""
        if self._shop_service is None:
            from rankicard.services.shop_service import ShopService
            self._shop_service = ShopService(self.inventory_store, self.reward_service, clock=self.clock)
            logger.debug("ShopService instantiated")
        return self._shop_service

    @property
    def achievement_service(self):
        """Get AchievementService instance (lazy-loaded)"""
        if self._achievement_service is None:
            from rankicard.services.achievement_service import AchievementService
            self._achievement_service = AchievementService(
                self.achievement_store,
                self.profile_store,
                self.reward_service,
                clock=self.clock,
            )
            logger.debug("AchievementService instantiated")
        return self._achievement_service

    async def open_session(self, user_id: str):
        """
        Login: create (or return) the user's session and run the daily refresh
        """
        session = self._sessions.get(user_id)
        if session is None:
            from rankicard.services.session import UserSession
            session = UserSession(
                user_id,
                self.reward_service,
                self.sync_service,
                self.cooldown_storage,
                self.cooldown_seconds,
            )
            self._sessions[user_id] = session
        await session.open()
        return session

    async def close_session(self, user_id: str) -> None:
        """Logout"""
        session = self._sessions.pop(user_id, None)
        if session is not None:
            await session.close()

    def get_session(self, user_id: str):
        return self._sessions.get(user_id)

"""
Store contracts used by the services

Postgres implementations live in rankicard.db.queries, in-memory ones in
rankicard.gamification.memory_store.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

from rankicard.models.achievement import Achievement
from rankicard.models.mission import MissionTemplate, UserMissionAssignment
from rankicard.models.progress import ProviderCredentials, UserProgress
from rankicard.models.shop import ShopItem, UserItem


class CompletionResult(str, Enum):
    """Result of a pending -> completed transition"""
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    NOT_FOUND = "not_found"


class ProfileStore(Protocol):
    async def read_progress(self, user_id: str) -> UserProgress:
        """Current progress (a default row is created on first read)"""
        ...

    async def write_progress(
        self,
        user_id: str,
        changes: Dict[str, Any],
        expected_version: int
    ) -> UserProgress:
        """
        Apply `changes` only if the stored version still equals
        `expected_version`; bumps the version.

        Raises:
            ConcurrencyConflictError: another writer got there first
        """
        ...

    async def get_credentials(self, user_id: str, provider: str) -> ProviderCredentials: ...

    async def save_credentials(self, user_id: str, credentials: ProviderCredentials) -> None: ...

    async def clear_credentials(self, user_id: str, provider: str) -> None: ...


class MissionStore(Protocol):
    async def list_active_templates(self) -> List[MissionTemplate]: ...

    async def get_assignments_for_day(self, user_id: str, day: date) -> List[UserMissionAssignment]: ...

    async def create_assignments(
        self,
        user_id: str,
        mission_ids: Sequence[str],
        day: date
    ) -> List[UserMissionAssignment]:
        """Insert-or-ignore on (user_id, mission_id, day); returns the day's assignments"""
        ...

    async def mark_completed(
        self,
        user_id: str,
        mission_id: str,
        day: date,
        completed_at: datetime
    ) -> CompletionResult: ...

    async def revert_completion(self, user_id: str, mission_id: str, day: date) -> None: ...


class InventoryStore(Protocol):
    async def list_shop_items(self) -> List[ShopItem]: ...

    async def get_user_items(self, user_id: str) -> List[UserItem]: ...

    async def add_user_item(
        self,
        user_id: str,
        item: ShopItem,
        expires_at: Optional[datetime]
    ) -> UserItem: ...

    async def set_equipped(self, user_id: str, user_item_id: str, equipped: bool) -> bool: ...


class AchievementStore(Protocol):
    async def list_achievements(self) -> List[Achievement]: ...

    async def get_unlocked_ids(self, user_id: str) -> set: ...

    async def unlock(self, user_id: str, achievement_id: str, unlocked_at: datetime) -> bool:
        """False when the achievement was already unlocked"""
        ...

    async def revoke(self, user_id: str, achievement_id: str) -> None: ...

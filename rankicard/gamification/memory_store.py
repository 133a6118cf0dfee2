"""
In-memory stores

Implement the same contracts as the Postgres stores, including the
conditional versioned write and the unique (user, mission, day) rule.
Used by the test suite and for local runs without a database.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from rankicard.db.contracts import CompletionResult
from rankicard.exceptions import ConcurrencyConflictError
from rankicard.models.achievement import Achievement
from rankicard.models.mission import MissionStatus, MissionTemplate, UserMissionAssignment
from rankicard.models.progress import ProviderCredentials, UserProgress
from rankicard.models.shop import ShopItem, UserItem
from rankicard.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


class InMemoryProfileStore:
    """Profile rows keyed by user id"""

    def __init__(self):
        self._progress: Dict[str, UserProgress] = {}
        self._credentials: Dict[Tuple[str, str], ProviderCredentials] = {}

    async def read_progress(self, user_id: str) -> UserProgress:
        if user_id not in self._progress:
            self._progress[user_id] = UserProgress(user_id=user_id)
            logger.info(f"Created new progress record for user {user_id}")
        return self._progress[user_id].model_copy()

    async def write_progress(
        self,
        user_id: str,
        changes: Dict[str, Any],
        expected_version: int
    ) -> UserProgress:
        current = self._progress.get(user_id) or UserProgress(user_id=user_id)
        if current.version != expected_version:
            raise ConcurrencyConflictError(
                message=f"Version mismatch for user {user_id}: "
                        f"expected {expected_version}, found {current.version}",
                expected_version=expected_version,
                user_id=user_id,
                operation="write_progress",
            )

        data = current.model_dump()
        data.update(changes)
        data["version"] = current.version + 1
        updated = UserProgress.model_validate(data)
        self._progress[user_id] = updated
        return updated.model_copy()

    async def get_credentials(self, user_id: str, provider: str) -> ProviderCredentials:
        return self._credentials.get((user_id, provider)) or ProviderCredentials(provider=provider)

    async def save_credentials(self, user_id: str, credentials: ProviderCredentials) -> None:
        self._credentials[(user_id, credentials.provider)] = credentials

    async def clear_credentials(self, user_id: str, provider: str) -> None:
        self._credentials.pop((user_id, provider), None)


class InMemoryMissionStore:
    """Mission catalog plus per-day assignments"""

    def __init__(self, templates: Optional[Sequence[MissionTemplate]] = None):
        self._templates: List[MissionTemplate] = list(templates or [])
        self._assignments: Dict[Tuple[str, str, date], UserMissionAssignment] = {}

    async def list_active_templates(self) -> List[MissionTemplate]:
        return [t for t in self._templates if t.is_active]

    async def get_assignments_for_day(self, user_id: str, day: date) -> List[UserMissionAssignment]:
        return [
            a.model_copy() for (uid, _mid, d), a in self._assignments.items()
            if uid == user_id and d == day
        ]

    async def create_assignments(
        self,
        user_id: str,
        mission_ids: Sequence[str],
        day: date
    ) -> List[UserMissionAssignment]:
        for mission_id in mission_ids:
            key = (user_id, mission_id, day)
            if key not in self._assignments:
                self._assignments[key] = UserMissionAssignment(
                    user_id=user_id,
                    mission_id=mission_id,
                    assigned_date=day,
                )
        return await self.get_assignments_for_day(user_id, day)

    async def mark_completed(
        self,
        user_id: str,
        mission_id: str,
        day: date,
        completed_at: datetime
    ) -> CompletionResult:
        assignment = self._assignments.get((user_id, mission_id, day))
        if assignment is None:
            return CompletionResult.NOT_FOUND
        if assignment.status == MissionStatus.COMPLETED:
            return CompletionResult.ALREADY_COMPLETED

        assignment.status = MissionStatus.COMPLETED
        assignment.completed_at = completed_at
        return CompletionResult.COMPLETED

    async def revert_completion(self, user_id: str, mission_id: str, day: date) -> None:
        assignment = self._assignments.get((user_id, mission_id, day))
        if assignment is not None:
            assignment.status = MissionStatus.PENDING
            assignment.completed_at = None


class InMemoryInventoryStore:
    """Shop catalog plus owned items"""

    def __init__(self, items: Optional[Sequence[ShopItem]] = None):
        self._items: List[ShopItem] = list(items or [])
        self._user_items: Dict[str, UserItem] = {}

    async def list_shop_items(self) -> List[ShopItem]:
        return sorted((i for i in self._items if i.is_active), key=lambda i: i.price)

    async def get_user_items(self, user_id: str) -> List[UserItem]:
        return [ui.model_copy() for ui in self._user_items.values() if ui.user_id == user_id]

    async def add_user_item(
        self,
        user_id: str,
        item: ShopItem,
        expires_at: Optional[datetime]
    ) -> UserItem:
        user_item = UserItem(
            id=str(uuid4()),
            user_id=user_id,
            item_id=item.id,
            expires_at=expires_at,
            purchased_at=now_utc(),
            item=item,
        )
        self._user_items[user_item.id] = user_item
        return user_item.model_copy()

    async def set_equipped(self, user_id: str, user_item_id: str, equipped: bool) -> bool:
        user_item = self._user_items.get(user_item_id)
        if user_item is None or user_item.user_id != user_id:
            return False
        user_item.equipped = equipped
        return True


class InMemoryAchievementStore:
    """Achievement catalog plus unlocks"""

    def __init__(self, achievements: Optional[Sequence[Achievement]] = None):
        self._achievements: List[Achievement] = list(achievements or [])
        self._unlocked: Dict[str, Dict[str, datetime]] = {}

    async def list_achievements(self) -> List[Achievement]:
        return sorted(self._achievements, key=lambda a: a.requirement_value)

    async def get_unlocked_ids(self, user_id: str) -> set:
        return set(self._unlocked.get(user_id, {}))

    async def unlock(self, user_id: str, achievement_id: str, unlocked_at: datetime) -> bool:
        unlocked = self._unlocked.setdefault(user_id, {})
        if achievement_id in unlocked:
            return False
        unlocked[achievement_id] = unlocked_at
        return True

    async def revoke(self, user_id: str, achievement_id: str) -> None:
        self._unlocked.get(user_id, {}).pop(achievement_id, None)


class InMemoryCooldownStorage:
    """Cooldown expiries (Unix seconds) keyed by cooldown key"""

    def __init__(self):
        self._expiries: Dict[str, float] = {}

    async def get_expiry(self, key: str) -> Optional[float]:
        return self._expiries.get(key)

    async def set_expiry(self, key: str, timestamp: float) -> None:
        self._expiries[key] = timestamp

    async def clear(self, key: str) -> None:
        self._expiries.pop(key, None)

"""
ShopService - Gold shop and inventory

Purchases spend gold first and then add the item; if adding the item
fails the gold is refunded. Themes are bought once and one is active at a
time, like titles.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from rankicard.exceptions import InsufficientGoldError, LevelRequirementError, RankicardError
from rankicard.gamification.xp_system import level_from_xp
from rankicard.models.progress import UserProgress
from rankicard.models.shop import ShopItem, UserItem
from rankicard.services.reward_service import RewardService
from rankicard.utils.datetime_helpers import Clock

logger = logging.getLogger(__name__)

EFFECT_XP_MULTIPLIER = "xp_multiplier"
EFFECT_TITLE = "title"
EFFECT_BADGE = "badge"
EFFECT_THEME = "theme"

# Only one equipped item per effect type
EXCLUSIVE_EFFECTS = frozenset({EFFECT_TITLE, EFFECT_THEME})

# Theme shown when the user has none equipped
DEFAULT_THEME = "medieval"


class PurchaseStatus(str, Enum):
    PURCHASED = "purchased"
    INSUFFICIENT_GOLD = "insufficient_gold"
    LEVEL_TOO_LOW = "level_too_low"
    ALREADY_OWNED = "already_owned"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class PurchaseResult:
    status: PurchaseStatus
    item: Optional[ShopItem] = None
    user_item: Optional[UserItem] = None
    gold_left: Optional[int] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status == PurchaseStatus.PURCHASED


def meets_level(progress: UserProgress, item: ShopItem) -> bool:
    return level_from_xp(progress.total_xp) >= item.min_level


def is_item_active(user_item: UserItem, now: datetime) -> bool:
    """Owned items without an expiry never run out"""
    return user_item.expires_at is None or user_item.expires_at > now


class ShopService:
    """
    Service for the shop.

    Responsibilities:
    - Purchase validation (gold, minimum level)
    - Gold deduction with refund on inventory failure
    - Equip toggling (one title and one theme at a time)
    - Active boosts, equipped cosmetics and the active theme
    """

    def __init__(
        self,
        inventory_store,
        reward_service: RewardService,
        clock: Optional[Clock] = None
    ):
        self.inventory_store = inventory_store
        self.reward_service = reward_service
        self.clock = clock or reward_service.clock

    async def list_items(self) -> List[ShopItem]:
        return await self.inventory_store.list_shop_items()

    async def purchase(self, user_id: str, item_id: str) -> PurchaseResult:
        """
        Buy one item

        Returns:
            PurchaseResult; nothing changes unless status is PURCHASED
        """
        try:
            item = next((i for i in await self.inventory_store.list_shop_items() if i.id == item_id), None)
            if item is None:
                return PurchaseResult(status=PurchaseStatus.NOT_FOUND, message="Item not found.")

            progress = await self.reward_service.get_progress(user_id)
            if item.effect_type == EFFECT_THEME and await self._owns(user_id, item.id):
                return PurchaseResult(
                    status=PurchaseStatus.ALREADY_OWNED,
                    item=item,
                    gold_left=progress.gold,
                    message="You already own this theme.",
                )
        except RankicardError as e:
            return PurchaseResult(status=PurchaseStatus.FAILED, message=e.user_message)

        if not meets_level(progress, item):
            error = LevelRequirementError(
                level=level_from_xp(progress.total_xp),
                min_level=item.min_level,
                user_id=user_id,
                operation="purchase",
            )
            return PurchaseResult(status=PurchaseStatus.LEVEL_TOO_LOW, item=item, message=error.user_message)

        if item.price > 0:
            spent = await self.reward_service.spend_gold(user_id, item.price)
            if not spent.success:
                status = (
                    PurchaseStatus.INSUFFICIENT_GOLD
                    if isinstance(spent.error, InsufficientGoldError)
                    else PurchaseStatus.FAILED
                )
                return PurchaseResult(status=status, item=item, gold_left=progress.gold, message=spent.message)
            gold_left = spent.progress.gold
        else:
            gold_left = progress.gold

        expires_at = None
        if item.effect_duration:
            expires_at = self.clock.now() + timedelta(minutes=item.effect_duration)

        try:
            user_item = await self.inventory_store.add_user_item(user_id, item, expires_at)
        except Exception as e:
            logger.error(f"Failed to add {item.code} to inventory of user {user_id}: {e}", exc_info=True)
            if item.price > 0:
                refund = await self.reward_service.add_gold(user_id, item.price)
                if refund.success:
                    gold_left = refund.progress.gold
                else:
                    logger.error(f"Refund of {item.price} gold to user {user_id} failed: {refund.status.value}")
            return PurchaseResult(
                status=PurchaseStatus.FAILED,
                item=item,
                gold_left=gold_left,
                message="Purchase failed, your gold was refunded.",
            )

        logger.info(f"User {user_id} bought {item.code} for {item.price} gold")
        return PurchaseResult(
            status=PurchaseStatus.PURCHASED,
            item=item,
            user_item=user_item,
            gold_left=gold_left,
            message=f"{item.icon} {item.name} purchased!".strip(),
        )

    async def get_inventory(self, user_id: str) -> List[UserItem]:
        """Owned items that haven't expired"""
        now = self.clock.now()
        items = await self.inventory_store.get_user_items(user_id)
        return [ui for ui in items if is_item_active(ui, now)]

    async def toggle_equip(self, user_id: str, user_item_id: str) -> Optional[bool]:
        """
        Flip an item's equipped flag

        Equipping a title or theme unequips any other of the same kind.

        Returns:
            New equipped state, or None if the user doesn't own the item
        """
        inventory = await self.get_inventory(user_id)
        target = next((ui for ui in inventory if ui.id == user_item_id), None)
        if target is None:
            return None

        equip = not target.equipped
        effect = target.item.effect_type if target.item else None
        if equip and effect in EXCLUSIVE_EFFECTS:
            for other in inventory:
                if other.id != target.id and other.equipped and other.item and other.item.effect_type == effect:
                    await self.inventory_store.set_equipped(user_id, other.id, False)

        await self.inventory_store.set_equipped(user_id, user_item_id, equip)
        return equip

    async def active_xp_multiplier(self, user_id: str) -> float:
        """Highest active XP boost (1.0 when none)"""
        best = 1.0
        for user_item in await self.get_inventory(user_id):
            item = user_item.item
            if item is None or item.effect_type != EFFECT_XP_MULTIPLIER:
                continue
            try:
                best = max(best, float(item.effect_value))
            except (TypeError, ValueError):
                logger.warning(f"Item {item.code} has a non-numeric boost value {item.effect_value!r}")
        return best

    async def equipped_title(self, user_id: str) -> Optional[str]:
        for user_item in await self.get_inventory(user_id):
            if user_item.equipped and user_item.item and user_item.item.effect_type == EFFECT_TITLE:
                return user_item.item.effect_value or user_item.item.name
        return None

    async def equipped_badges(self, user_id: str) -> List[str]:
        return [
            ui.item.icon
            for ui in await self.get_inventory(user_id)
            if ui.equipped and ui.item and ui.item.effect_type == EFFECT_BADGE
        ]

    async def active_theme(self, user_id: str) -> str:
        """Code of the equipped theme, or the default one"""
        for user_item in await self.get_inventory(user_id):
            if user_item.equipped and user_item.item and user_item.item.effect_type == EFFECT_THEME:
                return user_item.item.effect_value or user_item.item.code
        return DEFAULT_THEME

    async def _owns(self, user_id: str, item_id: str) -> bool:
        return any(ui.item_id == item_id for ui in await self.inventory_store.get_user_items(user_id))

"""Shop, inventory and achievement queries"""
import logging
from datetime import datetime
from typing import List, Optional

from rankicard.db.connection import Database, translate_db_errors
from rankicard.models.achievement import Achievement
from rankicard.models.shop import ShopItem, UserItem

logger = logging.getLogger(__name__)

_SHOP_ITEM_COLUMNS = (
    "id, code, name, description, icon, category, price, min_level, "
    "effect_type, effect_value, effect_duration, is_active"
)


class PostgresInventoryStore:
    """Inventory store backed by shop_items / user_items"""

    def __init__(self, db: Database):
        self.db = db

    @translate_db_errors
    async def list_shop_items(self) -> List[ShopItem]:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"SELECT {_SHOP_ITEM_COLUMNS} FROM shop_items WHERE is_active = TRUE ORDER BY price ASC"
                )
                rows = await cur.fetchall()
        return [ShopItem.model_validate(dict(row)) for row in rows]

    @translate_db_errors
    async def get_user_items(self, user_id: str) -> List[UserItem]:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT ui.id::text AS user_item_id, ui.user_id, ui.item_id, ui.quantity,
                           ui.equipped, ui.expires_at, ui.purchased_at,
                           {', '.join('si.' + c.strip() for c in _SHOP_ITEM_COLUMNS.split(','))}
                    FROM user_items ui
                    JOIN shop_items si ON si.id = ui.item_id
                    WHERE ui.user_id = %s
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()

        items = []
        for row in rows:
            row = dict(row)
            items.append(UserItem(
                id=row["user_item_id"],
                user_id=row["user_id"],
                item_id=row["item_id"],
                quantity=row["quantity"],
                equipped=row["equipped"],
                expires_at=row["expires_at"],
                purchased_at=row["purchased_at"],
                item=ShopItem.model_validate(row),
            ))
        return items

    @translate_db_errors
    async def add_user_item(
        self,
        user_id: str,
        item: ShopItem,
        expires_at: Optional[datetime]
    ) -> UserItem:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO user_items (user_id, item_id, quantity, equipped, expires_at)
                    VALUES (%s, %s, 1, FALSE, %s)
                    RETURNING id::text AS id, user_id, item_id, quantity, equipped, expires_at, purchased_at
                    """,
                    (user_id, item.id, expires_at)
                )
                row = await cur.fetchone()
                await conn.commit()
        return UserItem.model_validate({**dict(row), "item": item})

    @translate_db_errors
    async def set_equipped(self, user_id: str, user_item_id: str, equipped: bool) -> bool:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE user_items SET equipped = %s
                    WHERE id = %s::uuid AND user_id = %s
                    """,
                    (equipped, user_item_id, user_id)
                )
                updated = cur.rowcount
                await conn.commit()
        return updated > 0


class PostgresAchievementStore:
    """Achievement store backed by achievements / user_achievements"""

    def __init__(self, db: Database):
        self.db = db

    @translate_db_errors
    async def list_achievements(self) -> List[Achievement]:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT id, code, name, description, icon, category,
                           requirement_type, requirement_value, gold_reward
                    FROM achievements
                    ORDER BY requirement_value ASC
                    """
                )
                rows = await cur.fetchall()
        return [Achievement.model_validate(dict(row)) for row in rows]

    @translate_db_errors
    async def get_unlocked_ids(self, user_id: str) -> set:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "SELECT achievement_id FROM user_achievements WHERE user_id = %s",
                    (user_id,)
                )
                rows = await cur.fetchall()
        return {row["achievement_id"] for row in rows}

    @translate_db_errors
    async def unlock(self, user_id: str, achievement_id: str, unlocked_at: datetime) -> bool:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO user_achievements (user_id, achievement_id, unlocked_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (user_id, achievement_id) DO NOTHING
                    """,
                    (user_id, achievement_id, unlocked_at)
                )
                inserted = cur.rowcount
                await conn.commit()
        return inserted > 0

    @translate_db_errors
    async def revoke(self, user_id: str, achievement_id: str) -> None:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "DELETE FROM user_achievements WHERE user_id = %s AND achievement_id = %s",
                    (user_id, achievement_id)
                )
                await conn.commit()
        logger.warning(f"Revoked achievement {achievement_id} for user {user_id}")

"""Shop and inventory models"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ShopItem(BaseModel):
    """Purchasable cosmetic or boost"""
    id: str
    code: str
    name: str
    description: str = ""
    icon: str = ""
    category: str = "cosmetic"
    price: int = Field(ge=0)
    min_level: int = Field(default=1, ge=1)
    effect_type: Optional[str] = None  # xp_multiplier, badge, title, theme
    effect_value: Optional[str] = None
    effect_duration: Optional[int] = None  # minutes
    is_active: bool = True


class UserItem(BaseModel):
    """Item owned by a user"""
    id: str
    user_id: str
    item_id: str
    quantity: int = 1
    equipped: bool = False
    expires_at: Optional[datetime] = None
    purchased_at: datetime
    item: Optional[ShopItem] = None

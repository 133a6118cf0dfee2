"""Global test fixtures and utilities for rankicard tests"""
import random
from datetime import date, datetime, time, timezone

import pytest

from rankicard.gamification.memory_store import (
    InMemoryAchievementStore,
    InMemoryCooldownStorage,
    InMemoryInventoryStore,
    InMemoryMissionStore,
    InMemoryProfileStore,
)
from rankicard.models.achievement import Achievement, RequirementType
from rankicard.models.mission import MissionTemplate, MissionType
from rankicard.models.shop import ShopItem
from rankicard.services.reward_service import RewardService
from rankicard.utils.datetime_helpers import Clock


# ============================================================================
# Clock
# ============================================================================

class FixedClock(Clock):
    """Clock frozen at a settable instant (UTC)"""

    def __init__(self, current: datetime):
        super().__init__("UTC")
        self.current = current

    def now(self) -> datetime:
        return self.current

    def set_day(self, day: date) -> None:
        self.current = datetime.combine(day, time(12, 0), tzinfo=timezone.utc)

    def advance(self, seconds: float) -> None:
        self.current = datetime.fromtimestamp(self.current.timestamp() + seconds, tz=timezone.utc)


# 2024-01-17 is a Wednesday, 2024-01-20 a Saturday
WEEKDAY = date(2024, 1, 17)
SATURDAY = date(2024, 1, 20)


@pytest.fixture
def clock():
    """Clock fixed at noon UTC on a Wednesday"""
    return FixedClock(datetime(2024, 1, 17, 12, 0, tzinfo=timezone.utc))


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-123"


# ============================================================================
# Store Fixtures
# ============================================================================

def make_mission(mission_id: str, rank: str, gold: int = 10, mission_type=MissionType.MANUAL) -> MissionTemplate:
    return MissionTemplate(
        id=mission_id,
        title=f"Mission {mission_id}",
        description=f"Rank {rank} mission",
        rank=rank,
        gold_reward=gold,
        mission_type=mission_type,
    )


@pytest.fixture
def mission_catalog():
    """Three missions per rank"""
    return [
        make_mission(f"{rank.lower()}{n}", rank)
        for rank in ("F", "E", "D", "C", "B", "A", "S")
        for n in range(1, 4)
    ]


@pytest.fixture
def shop_catalog():
    return [
        ShopItem(id="boost-2x", code="xp_boost_2x", name="Double XP", icon="⚡", category="boost",
                 price=100, min_level=1, effect_type="xp_multiplier", effect_value="2.0",
                 effect_duration=60),
        ShopItem(id="boost-1.5x", code="xp_boost_15", name="XP Boost", icon="✨", category="boost",
                 price=50, min_level=1, effect_type="xp_multiplier", effect_value="1.5",
                 effect_duration=120),
        ShopItem(id="title-hunter", code="title_hunter", name="Hunter", icon="🏹", category="title",
                 price=200, min_level=10, effect_type="title", effect_value="The Hunter"),
        ShopItem(id="title-scholar", code="title_scholar", name="Scholar", icon="📜", category="title",
                 price=20, min_level=1, effect_type="title", effect_value="The Scholar"),
        ShopItem(id="badge-fire", code="badge_fire", name="Fire Badge", icon="🔥", category="badge",
                 price=30, min_level=1, effect_type="badge", effect_value="fire"),
        ShopItem(id="theme-forest", code="theme_forest", name="Forest", icon="🌲", category="theme",
                 price=150, min_level=1, effect_type="theme", effect_value="forest"),
        ShopItem(id="theme-night", code="theme_night", name="Night", icon="🌙", category="theme",
                 price=250, min_level=1, effect_type="theme", effect_value="night"),
    ]


@pytest.fixture
def achievement_catalog():
    return [
        Achievement(id="a-xp", code="first_steps", name="First Steps", icon="👣",
                    requirement_type=RequirementType.TOTAL_XP, requirement_value=100, gold_reward=10),
        Achievement(id="a-level", code="level_5", name="Level 5", icon="⭐",
                    requirement_type=RequirementType.LEVEL, requirement_value=5, gold_reward=25),
        Achievement(id="a-streak", code="streak_3", name="On Fire", icon="🔥",
                    requirement_type=RequirementType.STREAK, requirement_value=3, gold_reward=15),
        Achievement(id="a-strava", code="strava_linked", name="Runner", icon="🏃",
                    requirement_type=RequirementType.STRAVA_CONNECTED, requirement_value=1, gold_reward=5),
        Achievement(id="a-study", code="scholar", name="Scholar", icon="📚",
                    requirement_type=RequirementType.STUDY_SESSIONS, requirement_value=2, gold_reward=20),
    ]


@pytest.fixture
def profile_store():
    return InMemoryProfileStore()


@pytest.fixture
def mission_store(mission_catalog):
    return InMemoryMissionStore(mission_catalog)


@pytest.fixture
def inventory_store(shop_catalog):
    return InMemoryInventoryStore(shop_catalog)


@pytest.fixture
def achievement_store(achievement_catalog):
    return InMemoryAchievementStore(achievement_catalog)


@pytest.fixture
def cooldown_storage():
    return InMemoryCooldownStorage()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def reward_service(profile_store, clock):
    return RewardService(profile_store, clock=clock)

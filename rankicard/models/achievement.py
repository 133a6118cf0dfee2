"""Achievement models for gamification"""
from enum import Enum
from pydantic import BaseModel, Field


class RequirementType(str, Enum):
    """Profile metric an achievement is unlocked by"""
    TOTAL_XP = "total_xp"
    LEVEL = "level"
    STREAK = "streak"
    GOLD = "gold"
    STRAVA_CONNECTED = "strava_connected"
    STUDY_SESSIONS = "study_sessions"


class Achievement(BaseModel):
    """Achievement definition"""
    id: str
    code: str
    name: str
    description: str = ""
    icon: str = ""
    category: str = "milestones"
    requirement_type: RequirementType
    requirement_value: int = 0
    gold_reward: int = Field(default=0, ge=0)

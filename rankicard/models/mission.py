"""Daily mission models"""
from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class MissionType(str, Enum):
    """How a mission is verified"""
    MANUAL = "manual"
    STRAVA = "strava"
    SPOTIFY = "spotify"
    STUDY = "study"


class MissionStatus(str, Enum):
    """Assignment lifecycle"""
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


MISSION_TYPE_ICONS = {
    MissionType.STRAVA: "🏃",
    MissionType.SPOTIFY: "🎵",
    MissionType.STUDY: "📚",
    MissionType.MANUAL: "✅",
}


class MissionTemplate(BaseModel):
    """Catalog entry (read-only at runtime)"""
    id: str
    title: str
    description: Optional[str] = None
    rank: str
    gold_reward: int = Field(default=0, ge=0)
    mission_type: MissionType = MissionType.MANUAL
    is_active: bool = True

    @property
    def icon(self) -> str:
        return MISSION_TYPE_ICONS.get(self.mission_type, "✅")


class UserMissionAssignment(BaseModel):
    """One mission handed to a user for one calendar day"""
    user_id: str
    mission_id: str
    assigned_date: date
    status: MissionStatus = MissionStatus.PENDING
    completed_at: Optional[datetime] = None

    def effective_status(self, today: date) -> MissionStatus:
        """Pending assignments from earlier days read as expired"""
        if self.status == MissionStatus.PENDING and self.assigned_date < today:
            return MissionStatus.EXPIRED
        return self.status


class MissionReward(BaseModel):
    """Dynamic XP price of a mission for a user on a given day"""
    xp: int
    base_xp: int
    rank_multiplier: float
    weekend_multiplier: float
    multiplier: float
    is_weekend: bool
    bonuses: List[str] = []


class DailyMission(BaseModel):
    """Assignment joined with its template and current reward"""
    template: MissionTemplate
    assignment: UserMissionAssignment
    status: MissionStatus
    reward: MissionReward

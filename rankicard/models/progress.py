"""User progression models"""
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class UserProgress(BaseModel):
    """Snapshot of the profile fields the progression engine owns"""
    user_id: str
    total_xp: int = Field(default=0, ge=0)
    current_level: int = Field(default=1, ge=1)
    today_study_xp: int = Field(default=0, ge=0)
    last_study_date: Optional[date] = None
    streak_count: int = Field(default=0, ge=0)
    streak_last_date: Optional[date] = None
    gold: int = Field(default=0, ge=0)
    study_sessions: int = Field(default=0, ge=0)
    fitness_sync_cursor: int = Field(default=0, ge=0)  # Unix seconds
    music_sync_cursor: int = Field(default=0, ge=0)    # Unix seconds
    version: int = 0


class ProviderCredentials(BaseModel):
    """OAuth tokens for an external provider, as stored on the profile"""
    provider: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: int = 0  # Unix seconds

    @property
    def connected(self) -> bool:
        return bool(self.refresh_token or self.access_token)

    def is_expired(self, now_ts: int) -> bool:
        return now_ts >= self.expires_at

"""Raw records fetched from external providers"""
from pydantic import BaseModel, Field


class RawActivity(BaseModel):
    """Fitness activity as reported by the fitness provider"""
    kind: str
    distance_meters: float = Field(default=0.0, ge=0)
    start_time: int  # Unix seconds
    manual: bool = False


class RawPlay(BaseModel):
    """One playback entry from the music provider"""
    duration_ms: int = Field(ge=0)
    played_at: int  # Unix seconds

"""
External Activity Normalizer

Turns raw provider records into XP, applying the anti-abuse rules:

- Only records strictly newer than the sync watermark are considered
- Manually entered fitness activities earn nothing (they are counted as ignored)
- XP is always floored, never rounded
- The watermark advances over every new record, earning or not, so a
  record is never looked at twice

Reward sources are a small tagged variant; `compute_xp` dispatches on the
variant type so callers stay source-agnostic.
"""

import logging
from dataclasses import dataclass
from functools import singledispatch
from typing import Iterable

from rankicard.gamification.constants import (
    CYCLING_ACTIVITY_TYPES,
    ENDURANCE_ACTIVITY_TYPES,
    MS_PER_LISTENING_XP,
    XP_PER_METER_BIKE,
    XP_PER_METER_RUN,
    XP_PER_MINUTE_STUDY,
)
from rankicard.models.activity import RawActivity, RawPlay

logger = logging.getLogger(__name__)


# ============================================
# Reward sources
# ============================================

@dataclass(frozen=True)
class FitnessSource:
    kind: str
    distance_meters: float


@dataclass(frozen=True)
class ListeningSource:
    duration_ms: int


@dataclass(frozen=True)
class StudySource:
    minutes: int


@dataclass(frozen=True)
class MissionSource:
    mission_id: str
    xp: int  # priced by the mission engine at completion time


@singledispatch
def compute_xp(source) -> int:
    """XP earned by a reward source"""
    raise TypeError(f"Unsupported reward source: {type(source).__name__}")


@compute_xp.register
def _(source: FitnessSource) -> int:
    if source.kind in ENDURANCE_ACTIVITY_TYPES:
        rate = XP_PER_METER_RUN
    elif source.kind in CYCLING_ACTIVITY_TYPES:
        rate = XP_PER_METER_BIKE
    else:
        return 0
    return int(source.distance_meters * rate)


@compute_xp.register
def _(source: ListeningSource) -> int:
    return source.duration_ms // MS_PER_LISTENING_XP


@compute_xp.register
def _(source: StudySource) -> int:
    return source.minutes * XP_PER_MINUTE_STUDY


@compute_xp.register
def _(source: MissionSource) -> int:
    return max(0, source.xp)


# ============================================
# Normalization
# ============================================

@dataclass(frozen=True)
class NormalizedSync:
    """XP summary for one batch of provider records"""
    total_xp_gained: int
    eligible_count: int
    ignored_count: int
    new_watermark: int
    records_seen: int

    @property
    def watermark_advanced(self) -> bool:
        return self.records_seen > 0


def normalize_fitness_activities(
    activities: Iterable[RawActivity],
    watermark: int
) -> NormalizedSync:
    """
    Convert fitness activities newer than `watermark` into XP

    Args:
        activities: Raw activities from the fitness provider
        watermark: Unix timestamp of the newest record already processed

    Returns:
        NormalizedSync with the new watermark (never below `watermark`)
    """
    total_xp = 0
    eligible = 0
    ignored = 0
    seen = 0
    latest = watermark

    for activity in activities:
        if activity.start_time <= watermark:
            continue

        seen += 1
        latest = max(latest, activity.start_time)

        if activity.manual:
            ignored += 1
            logger.debug(f"Ignoring manual {activity.kind} activity at {activity.start_time}")
            continue

        xp = compute_xp(FitnessSource(kind=activity.kind, distance_meters=activity.distance_meters))
        if xp > 0:
            total_xp += xp
            eligible += 1

    return NormalizedSync(
        total_xp_gained=total_xp,
        eligible_count=eligible,
        ignored_count=ignored,
        new_watermark=latest,
        records_seen=seen,
    )


def normalize_listening_plays(
    plays: Iterable[RawPlay],
    watermark: int
) -> NormalizedSync:
    """
    Convert plays newer than `watermark` into XP (1 XP per full minute)

    Durations are summed before flooring, so partial minutes across
    tracks still add up; the final remainder is dropped.
    """
    total_ms = 0
    eligible = 0
    latest = watermark

    for play in plays:
        if play.played_at <= watermark:
            continue
        eligible += 1
        total_ms += play.duration_ms
        latest = max(latest, play.played_at)

    return NormalizedSync(
        total_xp_gained=compute_xp(ListeningSource(duration_ms=total_ms)),
        eligible_count=eligible,
        ignored_count=0,
        new_watermark=latest,
        records_seen=eligible,
    )

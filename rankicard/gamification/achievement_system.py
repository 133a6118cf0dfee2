"""
Achievement System

Achievements are catalog entries unlocked by a single profile metric:
- total_xp, level, streak, gold: metric >= requirement_value
- study_sessions: completed study sessions >= requirement_value
- strava_connected: the user has linked Strava

Each achievement unlocks once; its gold reward is paid on unlock.
"""

import logging
from typing import Iterable, List, Set

from rankicard.gamification.xp_system import level_from_xp
from rankicard.models.achievement import Achievement, RequirementType
from rankicard.models.progress import UserProgress

logger = logging.getLogger(__name__)


def requirement_met(achievement: Achievement, progress: UserProgress, strava_connected: bool = False) -> bool:
    """Check one achievement against a progress snapshot"""
    required = achievement.requirement_value
    kind = achievement.requirement_type

    if kind == RequirementType.TOTAL_XP:
        return progress.total_xp >= required
    if kind == RequirementType.LEVEL:
        return level_from_xp(progress.total_xp) >= required
    if kind == RequirementType.STREAK:
        return progress.streak_count >= required
    if kind == RequirementType.GOLD:
        return progress.gold >= required
    if kind == RequirementType.STUDY_SESSIONS:
        return progress.study_sessions >= required
    if kind == RequirementType.STRAVA_CONNECTED:
        return strava_connected

    logger.warning(f"Unknown requirement type {kind} on achievement {achievement.code}")
    return False


def find_unlockable(
    achievements: Iterable[Achievement],
    unlocked_ids: Set[str],
    progress: UserProgress,
    strava_connected: bool = False
) -> List[Achievement]:
    """Achievements the user satisfies but hasn't unlocked yet"""
    return [
        a for a in achievements
        if a.id not in unlocked_ids and requirement_met(a, progress, strava_connected)
    ]

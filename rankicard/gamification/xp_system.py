"""
XP and Leveling System

Pure progression formulas: cumulative XP <-> level, level -> rank/title.

Leveling Curve:
- Reaching level L requires 50 * L^2 cumulative XP (level 0 = 0 XP)
- A fresh profile (0 XP) is level 1

Rank Table (one table drives ranks, titles and colors):
- Level 1+  : F  Novice
- Level 10+ : E  Apprentice
- Level 20+ : D  Confirmed
- Level 30+ : C  Veteran
- Level 40+ : B  Elite
- Level 50+ : A  Master
- Level 65+ : S  Legendary

Every function here is total for non-negative integers and never raises.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Tuple

from rankicard.gamification.constants import XP_CURVE_FACTOR


@dataclass(frozen=True)
class RankTier:
    """One row of the rank table"""
    min_level: int
    rank: str
    title: str
    color: str


RANK_TABLE: Tuple[RankTier, ...] = (
    RankTier(min_level=1, rank="F", title="Novice", color="#4a4a4a"),
    RankTier(min_level=10, rank="E", title="Apprentice", color="#cd7f32"),
    RankTier(min_level=20, rank="D", title="Confirmed", color="#a8a8a8"),
    RankTier(min_level=30, rank="C", title="Veteran", color="#ffd700"),
    RankTier(min_level=40, rank="B", title="Elite", color="#4169e1"),
    RankTier(min_level=50, rank="A", title="Master", color="#9932cc"),
    RankTier(min_level=65, rank="S", title="Legendary", color="#ff4500"),
)

# Ordinal scale, weakest first
RANKS: Tuple[str, ...] = tuple(tier.rank for tier in RANK_TABLE)
RANK_COLORS: Dict[str, str] = {tier.rank: tier.color for tier in RANK_TABLE}


def xp_threshold(level: int) -> int:
    """Cumulative XP required to reach `level`"""
    level = max(0, level)
    return XP_CURVE_FACTOR * level * level


def xp_to_next_level(level: int) -> int:
    """XP needed to go from `level` to `level + 1`"""
    return xp_threshold(level) - xp_threshold(level - 1)


def level_from_xp(total_xp: int) -> int:
    """
    Largest level >= 1 whose entry threshold (xp_threshold(level - 1)) is covered

    Integer square root keeps boundaries exact: 49 XP -> 1, 50 XP -> 2.
    """
    if total_xp <= 0:
        return 1
    return math.isqrt(total_xp // XP_CURVE_FACTOR) + 1


def xp_progress(total_xp: int, current_level: int) -> Dict[str, float]:
    """
    Progress inside the current level

    Returns:
        {
            'xp_into_level': int,
            'xp_needed_for_level': int,
            'percent_complete': float (0-100),
            'xp_for_next_level': int  # cumulative threshold of the next level
        }
    """
    current_level = max(1, current_level)
    level_start = xp_threshold(current_level - 1)
    level_end = xp_threshold(current_level)

    xp_into_level = total_xp - level_start
    xp_needed = level_end - level_start
    percent = min(100.0, max(0.0, (xp_into_level / xp_needed) * 100))

    return {
        "xp_into_level": xp_into_level,
        "xp_needed_for_level": xp_needed,
        "percent_complete": percent,
        "xp_for_next_level": level_end,
    }


def rank_tier_for_level(level: int) -> RankTier:
    """Highest rank tier whose minimum level does not exceed `level`"""
    selected = RANK_TABLE[0]
    for tier in RANK_TABLE:
        if level >= tier.min_level:
            selected = tier
        else:
            break
    return selected


def rank_from_level(level: int) -> str:
    return rank_tier_for_level(level).rank


def title_from_level(level: int) -> str:
    return rank_tier_for_level(level).title


def rank_index(rank: str) -> int:
    """Ordinal position of `rank`; unknown ranks count as the lowest (F)"""
    try:
        return RANKS.index(rank)
    except ValueError:
        return 0


def normalize_rank(rank: str) -> str:
    """Map a stored rank string onto the scale, falling back to F"""
    return rank if rank in RANKS else RANKS[0]


def calculate_level_from_xp(total_xp: int) -> Dict[str, any]:
    """
    Calculate level, rank and progress from total XP

    Returns:
        {
            'current_level': int,
            'rank': str,
            'title': str,
            'xp_in_current_level': int,
            'xp_to_next_level': int,
            'total_xp_for_next_level': int,
            'percent_complete': float
        }
    """
    level = level_from_xp(total_xp)
    tier = rank_tier_for_level(level)
    progress = xp_progress(max(0, total_xp), level)

    return {
        "current_level": level,
        "rank": tier.rank,
        "title": tier.title,
        "xp_in_current_level": progress["xp_into_level"],
        "xp_to_next_level": progress["xp_needed_for_level"] - progress["xp_into_level"],
        "total_xp_for_next_level": progress["xp_for_next_level"],
        "percent_complete": progress["percent_complete"],
    }


def ranks_between(low: int, high: int) -> List[str]:
    """Ranks with ordinal index in [low, high], clamped to the scale"""
    low = max(0, low)
    high = min(len(RANKS) - 1, high)
    return list(RANKS[low:high + 1])

"""
Daily Mission Selection & Pricing

Selection rules (per user, per calendar day):
- Eligible missions sit between 2 ranks below and 1 rank above the user
- Up to 2 missions come from the user's own rank
- The rest of the 5 slots are filled from the other eligible ranks
- The final list is shuffled so rank grouping doesn't show

Pricing rules (recomputed whenever a mission is shown or completed):
- Base XP is 2% of the XP the user needs for their next level (min 1)
- Rank distance multiplier: -2 or lower 0.50x, -1 0.75x, same 1.00x, above 1.25x
- Weekend (Saturday/Sunday) multiplier: 1.50x
- Gold is the fixed catalog value
"""

import logging
import math
import random
from datetime import date
from typing import List, Optional, Sequence

from rankicard.gamification.constants import (
    DAILY_MISSION_COUNT,
    MISSION_BASE_XP_RATIO,
    RANK_MULTIPLIER_ABOVE,
    RANK_MULTIPLIER_ONE_BELOW,
    RANK_MULTIPLIER_SAME,
    RANK_MULTIPLIER_TWO_BELOW,
    RANK_WINDOW_ABOVE,
    RANK_WINDOW_BELOW,
    SAME_RANK_MISSION_TARGET,
    WEEKEND_MULTIPLIER,
)
from rankicard.gamification.xp_system import (
    rank_from_level,
    rank_index,
    ranks_between,
    normalize_rank,
    xp_to_next_level,
)
from rankicard.models.mission import MissionReward, MissionTemplate

logger = logging.getLogger(__name__)


# ============================================
# Selection
# ============================================

def valid_ranks_for_user(user_rank: str) -> List[str]:
    """Ranks a user may be offered, weakest first"""
    index = rank_index(normalize_rank(user_rank))
    return ranks_between(index - RANK_WINDOW_BELOW, index + RANK_WINDOW_ABOVE)


def select_missions_for_user(
    catalog: Sequence[MissionTemplate],
    user_rank: str,
    count: int = DAILY_MISSION_COUNT,
    rng: Optional[random.Random] = None
) -> List[MissionTemplate]:
    """
    Pick today's missions for a user

    Args:
        catalog: Mission templates (inactive ones are skipped)
        user_rank: User's current rank symbol
        count: Number of missions to hand out
        rng: Random source (injectable for deterministic tests)

    Returns:
        Up to `count` distinct templates in random order
    """
    rng = rng or random.Random()
    user_rank = normalize_rank(user_rank)
    valid_ranks = set(valid_ranks_for_user(user_rank))

    eligible = [m for m in catalog if m.is_active and m.rank in valid_ranks]
    same_rank = [m for m in eligible if m.rank == user_rank]
    other_rank = [m for m in eligible if m.rank != user_rank]

    rng.shuffle(same_rank)
    rng.shuffle(other_rank)

    from_same = same_rank[:min(SAME_RANK_MISSION_TARGET, len(same_rank), count)]
    from_other = other_rank[:max(0, count - len(from_same))]

    selected = from_same + from_other
    rng.shuffle(selected)

    logger.debug(
        f"Selected {len(selected)} missions for rank {user_rank}: "
        f"{len(from_same)} same-rank, {len(from_other)} other-rank"
    )
    return selected


# ============================================
# Pricing
# ============================================

def is_weekend(day: date) -> bool:
    """Saturday or Sunday"""
    return day.weekday() >= 5


def rank_multiplier(mission_rank: str, user_rank: str) -> float:
    """XP multiplier from the signed distance between mission and user rank"""
    diff = rank_index(mission_rank) - rank_index(user_rank)

    if diff <= -2:
        return RANK_MULTIPLIER_TWO_BELOW
    if diff == -1:
        return RANK_MULTIPLIER_ONE_BELOW
    if diff == 0:
        return RANK_MULTIPLIER_SAME
    return RANK_MULTIPLIER_ABOVE


def bonus_tags(rank_mult: float, weekend: bool) -> List[str]:
    """Display tags for the multipliers applied to a mission"""
    tags = []
    if rank_mult < 1:
        tags.append(f"-{round((1 - rank_mult) * 100)}% Rank")
    elif rank_mult > 1:
        tags.append(f"+{round((rank_mult - 1) * 100)}% Rank")
    if weekend:
        tags.append(f"+{round((WEEKEND_MULTIPLIER - 1) * 100)}% Weekend")
    return tags


def mission_base_xp(user_level: int) -> int:
    return max(1, math.floor(xp_to_next_level(user_level) * MISSION_BASE_XP_RATIO))


def calculate_dynamic_reward(
    user_level: int,
    mission_rank: str,
    day: date,
    user_rank: Optional[str] = None
) -> MissionReward:
    """
    Price a mission for a user on a given day

    Args:
        user_level: User's current level
        mission_rank: Rank of the mission template
        day: Local calendar day the mission is shown/completed on
        user_rank: User's rank (derived from level when omitted)

    Returns:
        MissionReward with final XP, the multipliers and display tags
    """
    user_rank = normalize_rank(user_rank or rank_from_level(user_level))
    base_xp = mission_base_xp(user_level)

    rank_mult = rank_multiplier(mission_rank, user_rank)
    weekend = is_weekend(day)
    weekend_mult = WEEKEND_MULTIPLIER if weekend else 1.0
    total_mult = rank_mult * weekend_mult

    return MissionReward(
        xp=max(1, math.floor(base_xp * total_mult)),
        base_xp=base_xp,
        rank_multiplier=rank_mult,
        weekend_multiplier=weekend_mult,
        multiplier=total_mult,
        is_weekend=weekend,
        bonuses=bonus_tags(rank_mult, weekend),
    )

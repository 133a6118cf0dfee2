"""
Daily Streak System

A streak counts consecutive calendar days on which the user opened the app.
It is evaluated once per profile load:

- Last active yesterday: streak + 1
- Last active today: no change
- Gap (or first visit): streak restarts at 1

Active streaks give an additive XP bonus fraction:
- 30+ days: +25%
- 14+ days: +20%
- 7+ days:  +15%
- 3+ days:  +10%
- 1+ days:  +5%
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Tuple

# (minimum streak days, bonus fraction, label), longest first
STREAK_TIERS: Tuple[Tuple[int, float, str], ...] = (
    (30, 0.25, "🔥 Legendary"),
    (14, 0.20, "🔥 Epic"),
    (7, 0.15, "🔥 Week"),
    (3, 0.10, "🔥 Trio"),
    (1, 0.05, "🔥"),
)


@dataclass(frozen=True)
class StreakTransition:
    """Result of evaluating the streak for a given day"""
    streak_count: int
    streak_last_date: Optional[date]
    changed: bool
    reset: bool
    previous_count: int


def streak_bonus_multiplier(streak_days: int) -> float:
    """Additive XP bonus fraction for a streak (0.15 means +15%)"""
    for min_days, bonus, _label in STREAK_TIERS:
        if streak_days >= min_days:
            return bonus
    return 0.0


def streak_label(streak_days: int) -> str:
    for min_days, _bonus, label in STREAK_TIERS:
        if streak_days >= min_days:
            return label
    return "🔥"


def evaluate_streak(
    streak_count: int,
    streak_last_date: Optional[date],
    today: date
) -> StreakTransition:
    """
    Compute the streak state for `today`

    Args:
        streak_count: Stored streak length
        streak_last_date: Last day the streak was stamped (None if never)
        today: Current local calendar date

    Returns:
        StreakTransition; `changed` is False only when the streak was
        already stamped today.
    """
    if streak_last_date == today:
        return StreakTransition(
            streak_count=streak_count,
            streak_last_date=streak_last_date,
            changed=False,
            reset=False,
            previous_count=streak_count,
        )

    if streak_last_date is not None and streak_last_date == today - timedelta(days=1):
        return StreakTransition(
            streak_count=streak_count + 1,
            streak_last_date=today,
            changed=True,
            reset=False,
            previous_count=streak_count,
        )

    # First visit or a gap of 2+ days
    return StreakTransition(
        streak_count=1,
        streak_last_date=today,
        changed=True,
        reset=streak_last_date is not None,
        previous_count=streak_count,
    )


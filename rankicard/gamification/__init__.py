"""
Progression rules for rankicard

Pure game logic, no I/O:
- XP curve, levels and ranks
- Daily streaks
- External activity normalization
- Daily mission selection and pricing
- Cooldown gate for rate-limited syncs
"""

from rankicard.gamification.xp_system import calculate_level_from_xp, level_from_xp, rank_from_level
from rankicard.gamification.streak_system import evaluate_streak, streak_label
from rankicard.gamification.activity_normalizer import compute_xp, normalize_fitness_activities, normalize_listening_plays
from rankicard.gamification.missions import calculate_dynamic_reward, select_missions_for_user

__all__ = [
    "calculate_level_from_xp",
    "level_from_xp",
    "rank_from_level",
    "evaluate_streak",
    "streak_label",
    "compute_xp",
    "normalize_fitness_activities",
    "normalize_listening_plays",
    "calculate_dynamic_reward",
    "select_missions_for_user",
]

"""
RewardService - Reward Application

The only writer of UserProgress. Every operation is a read-compute-write
cycle that:

- runs under a per-user lock (one grant at a time per user in-process)
- writes with a conditional update on the row version, so a concurrent
  writer elsewhere makes the write fail instead of losing an increment
- retries a lost conditional write once before reporting a conflict

Game-rule rejections (study cap, insufficient gold, ...) leave the profile
untouched and come back as REJECTED outcomes, never as exceptions.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from rankicard.exceptions import (
    ConcurrencyConflictError,
    InsufficientGoldError,
    RankicardError,
    StudyCapExceededError,
    ValidationError,
)
from rankicard.gamification.activity_normalizer import (
    FitnessSource,
    ListeningSource,
    MissionSource,
    StudySource,
    compute_xp,
)
from rankicard.gamification.constants import STUDY_DAILY_CAP
from rankicard.gamification.streak_system import StreakTransition, evaluate_streak
from rankicard.gamification.xp_system import level_from_xp, rank_from_level
from rankicard.models.progress import UserProgress
from rankicard.resilience.metrics import record_reward_rejection, record_xp_awarded
from rankicard.utils.datetime_helpers import Clock
from rankicard.utils.locks import KeyedLocks

logger = logging.getLogger(__name__)

# Provider -> progress column holding its sync watermark
SYNC_CURSOR_FIELDS = {
    "strava": "fitness_sync_cursor",
    "spotify": "music_sync_cursor",
}

SOURCE_NAMES = {
    FitnessSource: "fitness",
    ListeningSource: "listening",
    StudySource: "study",
    MissionSource: "mission",
}


class RewardStatus(str, Enum):
    GRANTED = "granted"
    REJECTED = "rejected"
    CONFLICT = "conflict"
    ERROR = "error"


@dataclass
class RewardOutcome:
    """Result of a reward operation"""
    status: RewardStatus
    progress: Optional[UserProgress] = None
    xp_awarded: int = 0
    gold_delta: int = 0
    old_total_xp: int = 0
    new_total_xp: int = 0
    old_level: int = 1
    new_level: int = 1
    leveled_up: bool = False
    old_rank: str = "F"
    new_rank: str = "F"
    rank_changed: bool = False
    message: str = ""
    error: Optional[RankicardError] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == RewardStatus.GRANTED


@dataclass
class DailyRefresh:
    """What the once-per-day profile evaluation changed"""
    status: RewardStatus
    progress: Optional[UserProgress]
    streak: Optional[StreakTransition]
    study_reset: bool = False
    error: Optional[RankicardError] = None


class RewardService:
    """
    Applies XP and gold to a user's persisted progress.

    Responsibilities:
    - XP grants with level recomputation and level-up detection
    - Study XP with the all-or-nothing daily cap
    - Gold income and spending (balance never negative)
    - External sync application (XP + watermark in one write)
    - Daily study reset and streak evaluation on profile load
    """

    def __init__(
        self,
        profile_store,
        clock: Optional[Clock] = None,
        max_conflict_retries: int = 1,
        study_daily_cap: int = STUDY_DAILY_CAP
    ):
        """
        Initialize RewardService.

        Args:
            profile_store: ProfileStore implementation
            clock: Source of the local calendar date
            max_conflict_retries: Automatic retries after a lost conditional write
            study_daily_cap: Max study XP per local calendar day
        """
        self.profile_store = profile_store
        self.clock = clock or Clock()
        self.max_conflict_retries = max_conflict_retries
        self.study_daily_cap = study_daily_cap
        self._locks = KeyedLocks()
        logger.debug("RewardService initialized")

    # ============================================
    # Public operations
    # ============================================

    async def get_progress(self, user_id: str) -> UserProgress:
        """Read-only snapshot"""
        return await self.profile_store.read_progress(user_id)

    async def add_xp(self, user_id: str, amount: int, source: str = "manual") -> RewardOutcome:
        """
        Add XP and recompute level

        Returns:
            RewardOutcome with new_total_xp, new_level and leveled_up
        """
        def compute(progress: UserProgress) -> Dict[str, Any]:
            _require_positive(amount, "xp", user_id)
            return _xp_changes(progress, amount)

        outcome = await self._apply(user_id, "add_xp", compute)
        if outcome.success:
            outcome.xp_awarded = amount
            record_xp_awarded(source, amount)
            self._log_grant(user_id, source, outcome)
        return outcome

    async def add_study_xp(self, user_id: str, amount: int) -> RewardOutcome:
        """
        Add study XP under the daily cap

        The daily counter resets first when the last study day is behind
        today. A grant that would cross the cap is rejected whole.
        """
        today = self.clock.today()

        def compute(progress: UserProgress) -> Dict[str, Any]:
            _require_positive(amount, "study_xp", user_id)
            studied_today = _studied_today(progress, today)
            if studied_today + amount > self.study_daily_cap:
                raise StudyCapExceededError(
                    today_xp=studied_today,
                    amount=amount,
                    cap=self.study_daily_cap,
                    user_id=user_id,
                    operation="add_study_xp",
                )
            changes = _xp_changes(progress, amount)
            changes["today_study_xp"] = studied_today + amount
            changes["study_sessions"] = progress.study_sessions + 1
            changes["last_study_date"] = today
            return changes

        outcome = await self._apply(user_id, "add_study_xp", compute)
        if outcome.success:
            outcome.xp_awarded = amount
            record_xp_awarded("study", amount)
            self._log_grant(user_id, "study", outcome)
        return outcome

    async def add_gold(self, user_id: str, amount: int) -> RewardOutcome:
        def compute(progress: UserProgress) -> Dict[str, Any]:
            _require_positive(amount, "gold", user_id)
            return {"gold": progress.gold + amount}

        outcome = await self._apply(user_id, "add_gold", compute)
        if outcome.success:
            outcome.gold_delta = amount
            outcome.message = f"+{amount} gold"
            logger.info(f"Added {amount} gold to user {user_id}. Balance: {outcome.progress.gold}")
        return outcome

    async def spend_gold(self, user_id: str, amount: int) -> RewardOutcome:
        """Subtract gold after validating the balance"""
        def compute(progress: UserProgress) -> Dict[str, Any]:
            _require_positive(amount, "gold", user_id)
            if amount > progress.gold:
                raise InsufficientGoldError(
                    balance=progress.gold,
                    required=amount,
                    user_id=user_id,
                    operation="spend_gold",
                )
            return {"gold": progress.gold - amount}

        outcome = await self._apply(user_id, "spend_gold", compute)
        if outcome.success:
            outcome.gold_delta = -amount
            outcome.message = f"-{amount} gold"
            logger.info(f"User {user_id} spent {amount} gold. Balance: {outcome.progress.gold}")
        return outcome

    async def grant_mission_reward(
        self,
        user_id: str,
        mission_id: str,
        xp: int,
        gold: int
    ) -> RewardOutcome:
        """XP and gold for a completed mission, in a single write"""
        xp = compute_xp(MissionSource(mission_id=mission_id, xp=xp))

        def compute(progress: UserProgress) -> Dict[str, Any]:
            if xp < 0 or gold < 0:
                raise ValidationError(
                    message="Mission rewards can't be negative",
                    field="reward",
                    value={"xp": xp, "gold": gold},
                    user_id=user_id,
                )
            changes = _xp_changes(progress, xp)
            changes["gold"] = progress.gold + gold
            return changes

        outcome = await self._apply(user_id, "grant_mission_reward", compute)
        if outcome.success:
            outcome.xp_awarded = xp
            outcome.gold_delta = gold
            outcome.message = f"🎉 +{xp} XP and +{gold} gold!"
            record_xp_awarded("mission", xp)
            logger.info(f"Mission {mission_id} rewarded user {user_id}: {xp} XP, {gold} gold")
        return outcome

    async def apply_external_sync(
        self,
        user_id: str,
        provider: str,
        xp: int,
        new_watermark: int
    ) -> RewardOutcome:
        """
        Grant synced XP and move the provider watermark forward together

        The watermark never moves backwards, and it moves even when no XP
        was earned so the same records are not fetched again.
        """
        cursor_field = SYNC_CURSOR_FIELDS[provider]

        def compute(progress: UserProgress) -> Dict[str, Any]:
            if xp < 0:
                raise ValidationError(message="Synced XP can't be negative", field="xp", value=xp)
            changes = _xp_changes(progress, xp) if xp > 0 else {}
            current_cursor = getattr(progress, cursor_field)
            if new_watermark > current_cursor:
                changes[cursor_field] = new_watermark
            return changes

        outcome = await self._apply(user_id, f"sync_{provider}", compute)
        if outcome.success and xp > 0:
            outcome.xp_awarded = xp
            source = "fitness" if cursor_field == "fitness_sync_cursor" else "listening"
            record_xp_awarded(source, xp)
            self._log_grant(user_id, provider, outcome)
        return outcome

    async def award(self, user_id: str, source) -> RewardOutcome:
        """
        Grant XP for any reward source

        Study sessions go through the daily cap; everything else is a
        plain XP grant.
        """
        amount = compute_xp(source)
        if isinstance(source, StudySource):
            return await self.add_study_xp(user_id, amount)
        return await self.add_xp(user_id, amount, source=SOURCE_NAMES.get(type(source), "manual"))

    async def evaluate_streak(self, user_id: str) -> DailyRefresh:
        """Stamp today's streak (no-op if already stamped today)"""
        return await self._daily_refresh(user_id, reset_study=False)

    async def load_profile(self, user_id: str) -> DailyRefresh:
        """
        Profile load: daily study reset + streak evaluation in one write
        """
        return await self._daily_refresh(user_id, reset_study=True)

    # ============================================
    # Internals
    # ============================================

    async def _daily_refresh(self, user_id: str, reset_study: bool) -> DailyRefresh:
        today = self.clock.today()
        state: Dict[str, Any] = {}

        def compute(progress: UserProgress) -> Dict[str, Any]:
            changes: Dict[str, Any] = {}
            if reset_study and progress.last_study_date != today:
                changes["today_study_xp"] = 0
                changes["last_study_date"] = today
                state["study_reset"] = True

            transition = evaluate_streak(progress.streak_count, progress.streak_last_date, today)
            state["streak"] = transition
            if transition.changed:
                changes["streak_count"] = transition.streak_count
                changes["streak_last_date"] = transition.streak_last_date
            return changes

        outcome = await self._apply(user_id, "daily_refresh", compute)
        transition = state.get("streak")
        if outcome.success and transition and transition.changed:
            if transition.reset:
                logger.info(
                    f"User {user_id} streak broken. Was {transition.previous_count}, "
                    f"restarting at 1"
                )
            else:
                logger.info(
                    f"Updated streak for user {user_id}: "
                    f"{transition.previous_count} → {transition.streak_count} days"
                )

        return DailyRefresh(
            status=outcome.status,
            progress=outcome.progress,
            streak=transition,
            study_reset=state.get("study_reset", False),
            error=outcome.error,
        )

    async def _apply(
        self,
        user_id: str,
        operation: str,
        compute: Callable[[UserProgress], Dict[str, Any]]
    ) -> RewardOutcome:
        """
        Serialized read-compute-conditional-write with one retry on conflict
        """
        async with self._locks.hold(user_id):
            attempts = self.max_conflict_retries + 1
            for attempt in range(attempts):
                try:
                    before = await self.profile_store.read_progress(user_id)
                except RankicardError as e:
                    return RewardOutcome(status=RewardStatus.ERROR, message=e.user_message, error=e)

                try:
                    changes = compute(before)
                except ValidationError as e:
                    record_reward_rejection(e.field or operation)
                    return _outcome(RewardStatus.REJECTED, before, before, message=e.user_message, error=e)

                if not changes:
                    return _outcome(RewardStatus.GRANTED, before, before)

                try:
                    after = await self.profile_store.write_progress(user_id, changes, before.version)
                except ConcurrencyConflictError as e:
                    if attempt + 1 < attempts:
                        logger.warning(
                            f"{operation} for user {user_id} lost a concurrent write, retrying "
                            f"({attempt + 1}/{self.max_conflict_retries})"
                        )
                        continue
                    record_reward_rejection("conflict")
                    return _outcome(RewardStatus.CONFLICT, before, before, message=e.user_message, error=e)
                except RankicardError as e:
                    return _outcome(RewardStatus.ERROR, before, before, message=e.user_message, error=e)

                return _outcome(RewardStatus.GRANTED, before, after)

        # Unreachable: the loop always returns
        raise RuntimeError(f"{operation} exhausted retries without an outcome")

    def _log_grant(self, user_id: str, source: str, outcome: RewardOutcome) -> None:
        logger.info(
            f"Awarded {outcome.xp_awarded} XP to user {user_id} for {source}. "
            f"Total: {outcome.new_total_xp} XP, Level: {outcome.new_level}, Rank: {outcome.new_rank}"
        )
        if outcome.leveled_up:
            logger.info(f"User {user_id} leveled up from {outcome.old_level} to {outcome.new_level}!")
            outcome.message = f"+{outcome.xp_awarded} XP · Level up! Now level {outcome.new_level}"
        elif not outcome.message:
            outcome.message = f"+{outcome.xp_awarded} XP"


def _require_positive(amount: int, field_name: str, user_id: str) -> None:
    if not isinstance(amount, int) or amount <= 0:
        raise ValidationError(
            message="Amount must be a positive integer",
            field=field_name,
            value=amount,
            user_id=user_id,
        )


def _studied_today(progress: UserProgress, today) -> int:
    if progress.last_study_date is None or progress.last_study_date < today:
        return 0
    return progress.today_study_xp


def _xp_changes(progress: UserProgress, amount: int) -> Dict[str, Any]:
    new_total = progress.total_xp + amount
    return {"total_xp": new_total, "current_level": level_from_xp(new_total)}


def _outcome(
    status: RewardStatus,
    before: UserProgress,
    after: UserProgress,
    message: str = "",
    error: Optional[RankicardError] = None
) -> RewardOutcome:
    old_level = level_from_xp(before.total_xp)
    new_level = level_from_xp(after.total_xp)
    old_rank = rank_from_level(old_level)
    new_rank = rank_from_level(new_level)
    return RewardOutcome(
        status=status,
        progress=after,
        old_total_xp=before.total_xp,
        new_total_xp=after.total_xp,
        old_level=old_level,
        new_level=new_level,
        leveled_up=new_level > old_level,
        old_rank=old_rank,
        new_rank=new_rank,
        rank_changed=new_rank != old_rank,
        message=message,
        error=error,
    )

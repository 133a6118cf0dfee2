"""
Per-user session state

A UserSession is opened at login and closed at logout. It owns the state
that only makes sense while the user is around: the fitness sync
cooldown handle and the running study timer.
"""

import logging
import math
import time
from typing import Callable, Optional

from rankicard.exceptions import ValidationError
from rankicard.gamification.activity_normalizer import StudySource, compute_xp
from rankicard.gamification.constants import FITNESS_SYNC_COOLDOWN_KEY, STUDY_SESSION_PRESETS
from rankicard.gamification.cooldown import CooldownTracker, format_countdown
from rankicard.services.reward_service import DailyRefresh, RewardOutcome, RewardService, RewardStatus
from rankicard.services.sync_service import ExternalSyncService, SyncOutcome

logger = logging.getLogger(__name__)


class StudyTimer:
    """Countdown for one focused study session"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self.minutes: Optional[int] = None
        self.started_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self.started_at is not None

    @property
    def planned_xp(self) -> int:
        return compute_xp(StudySource(minutes=self.minutes)) if self.minutes else 0

    def start(self, minutes: int) -> float:
        """
        Start a preset session

        Returns:
            End timestamp (Unix seconds)

        Raises:
            ValidationError: unknown length, or a session is already running
        """
        if minutes not in STUDY_SESSION_PRESETS:
            raise ValidationError(
                message=f"Study sessions last {' or '.join(str(p) for p in STUDY_SESSION_PRESETS)} minutes",
                field="minutes",
                value=minutes,
            )
        if self.running:
            raise ValidationError(
                message="A study session is already running",
                field="session",
                user_message="Finish or give up your current session first.",
            )

        self.minutes = minutes
        self.started_at = self._clock()
        return self.started_at + minutes * 60

    def remaining_seconds(self) -> int:
        if not self.running:
            return 0
        end = self.started_at + self.minutes * 60
        return max(0, math.ceil(end - self._clock()))

    def progress_percent(self) -> float:
        if not self.running:
            return 0.0
        total = self.minutes * 60
        elapsed = total - self.remaining_seconds()
        return round(min(100.0, max(0.0, elapsed / total * 100)), 1)

    def is_finished(self) -> bool:
        return self.running and self.remaining_seconds() == 0

    def countdown(self) -> str:
        return format_countdown(self.remaining_seconds())

    def reset(self) -> None:
        self.minutes = None
        self.started_at = None


class UserSession:
    """
    Session-scoped state and actions for one logged-in user
    """

    def __init__(
        self,
        user_id: str,
        reward_service: RewardService,
        sync_service: ExternalSyncService,
        cooldown_storage,
        cooldown_seconds: int,
        clock: Optional[Callable[[], float]] = None
    ):
        self.user_id = user_id
        self.reward_service = reward_service
        self.sync_service = sync_service
        clock = clock or reward_service.clock.timestamp
        self.fitness_cooldown = CooldownTracker(
            storage=cooldown_storage,
            key=f"{FITNESS_SYNC_COOLDOWN_KEY}:{user_id}",
            window_seconds=cooldown_seconds,
            clock=clock,
        )
        self.study_timer = StudyTimer(clock=clock)
        self.closed = False

    async def open(self) -> DailyRefresh:
        """Login: daily study reset and streak evaluation"""
        refresh = await self.reward_service.load_profile(self.user_id)
        logger.info(f"Session opened for user {self.user_id}")
        return refresh

    async def close(self) -> None:
        """Logout: drop local timers. The persisted cooldown stays in force."""
        if self.study_timer.running:
            logger.info(f"User {self.user_id} logged out during a study session; no XP granted")
        self.study_timer.reset()
        self.closed = True
        logger.info(f"Session closed for user {self.user_id}")

    # ============================================
    # Sync
    # ============================================

    async def sync_fitness(self) -> SyncOutcome:
        return await self.sync_service.sync_fitness(self.user_id, self.fitness_cooldown)

    async def sync_music(self) -> SyncOutcome:
        return await self.sync_service.sync_music(self.user_id)

    async def fitness_cooldown_remaining(self) -> int:
        return await self.fitness_cooldown.remaining_seconds()

    # ============================================
    # Study
    # ============================================

    def start_study(self, minutes: int) -> float:
        end = self.study_timer.start(minutes)
        logger.info(f"User {self.user_id} started a {minutes} min study session")
        return end

    def give_up_study(self) -> int:
        """Abandon the running session; grants nothing"""
        if self.study_timer.running:
            logger.info(f"User {self.user_id} gave up a {self.study_timer.minutes} min study session")
        self.study_timer.reset()
        return 0

    async def complete_study(self) -> RewardOutcome:
        """
        Grant XP for a finished session

        A session still counting down is rejected and keeps running. A
        daily-cap rejection ends the session without XP. A conflict or
        storage error keeps the finished session so it can be claimed again.
        """
        if not self.study_timer.running:
            return RewardOutcome(status=RewardStatus.REJECTED, message="No study session running.")
        if not self.study_timer.is_finished():
            return RewardOutcome(
                status=RewardStatus.REJECTED,
                message=f"Keep going! {self.study_timer.countdown()} left.",
            )

        outcome = await self.reward_service.award(self.user_id, StudySource(minutes=self.study_timer.minutes))
        if outcome.status in (RewardStatus.GRANTED, RewardStatus.REJECTED):
            self.study_timer.reset()
        else:
            logger.warning(f"Study XP for user {self.user_id} not saved ({outcome.status.value}); session kept")
        return outcome

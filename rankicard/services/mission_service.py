"""
MissionService - Daily Missions

Hands each user a fresh set of missions per local calendar day and pays
them out on completion. Mission XP is priced when the list is shown and
priced again at completion, from the user's level at that moment.
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from rankicard.db.contracts import CompletionResult
from rankicard.exceptions import RankicardError
from rankicard.gamification.missions import calculate_dynamic_reward, select_missions_for_user
from rankicard.gamification.xp_system import level_from_xp, rank_from_level
from rankicard.models.mission import DailyMission, MissionReward, MissionTemplate
from rankicard.services.reward_service import RewardOutcome, RewardService
from rankicard.utils.datetime_helpers import Clock
from rankicard.utils.locks import KeyedLocks

logger = logging.getLogger(__name__)


class CompletionStatus(str, Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class MissionCompletion:
    status: CompletionStatus
    mission_id: str
    reward: Optional[MissionReward] = None
    gold: int = 0
    outcome: Optional[RewardOutcome] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status == CompletionStatus.COMPLETED


class MissionService:
    """
    Service for daily missions.

    Responsibilities:
    - Get-or-create today's assignments (single-flight per user)
    - Dynamic pricing for display
    - Completion with reward granting, undone if the grant fails
    """

    def __init__(
        self,
        mission_store,
        reward_service: RewardService,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None
    ):
        self.mission_store = mission_store
        self.reward_service = reward_service
        self.clock = clock or reward_service.clock
        self.rng = rng or random.Random()
        self._locks = KeyedLocks()
        logger.debug("MissionService initialized")

    async def get_daily_missions(self, user_id: str) -> List[DailyMission]:
        """
        Today's missions for a user, generating them on first request

        Returns:
            DailyMission list priced for the user's current level
        """
        today = self.clock.today()
        progress = await self.reward_service.get_progress(user_id)
        level = level_from_xp(progress.total_xp)
        user_rank = rank_from_level(level)

        catalog = await self.mission_store.list_active_templates()

        async with self._locks.hold(user_id):
            assignments = await self.mission_store.get_assignments_for_day(user_id, today)
            if not assignments:
                selected = select_missions_for_user(catalog, user_rank, rng=self.rng)
                assignments = await self.mission_store.create_assignments(
                    user_id, [m.id for m in selected], today
                )
                logger.info(f"Generated {len(assignments)} daily missions for user {user_id} (rank {user_rank})")

        templates = {t.id: t for t in catalog}
        missions = []
        for assignment in assignments:
            template = templates.get(assignment.mission_id)
            if template is None:
                logger.warning(f"Mission {assignment.mission_id} assigned to {user_id} is no longer in the catalog")
                continue
            missions.append(DailyMission(
                template=template,
                assignment=assignment,
                status=assignment.effective_status(today),
                reward=calculate_dynamic_reward(level, template.rank, today, user_rank),
            ))
        return missions

    async def complete_mission(self, user_id: str, mission_id: str) -> MissionCompletion:
        """
        Complete one of today's missions and grant its reward

        The reward is priced from the user's level before the assignment is
        touched. A second completion is a no-op. If anything fails after the
        assignment is marked completed it goes back to pending so the user
        can retry.
        """
        today = self.clock.today()
        try:
            template = await self._find_template(mission_id)
            if template is None:
                return MissionCompletion(
                    status=CompletionStatus.NOT_FOUND,
                    mission_id=mission_id,
                    message="Mission not found.",
                )

            progress = await self.reward_service.get_progress(user_id)
            reward = calculate_dynamic_reward(level_from_xp(progress.total_xp), template.rank, today)

            result = await self.mission_store.mark_completed(user_id, mission_id, today, self.clock.now())
        except RankicardError as e:
            logger.error(f"Completing mission {mission_id} for user {user_id} failed before any change: {e}")
            return MissionCompletion(
                status=CompletionStatus.FAILED,
                mission_id=mission_id,
                message=e.user_message,
            )

        if result == CompletionResult.NOT_FOUND:
            return MissionCompletion(
                status=CompletionStatus.NOT_FOUND,
                mission_id=mission_id,
                message="This mission isn't in today's list.",
            )
        if result == CompletionResult.ALREADY_COMPLETED:
            logger.info(f"Mission {mission_id} already completed by user {user_id} today")
            return MissionCompletion(
                status=CompletionStatus.ALREADY_COMPLETED,
                mission_id=mission_id,
                message="Mission already completed!",
            )

        try:
            outcome = await self.reward_service.grant_mission_reward(
                user_id, mission_id, xp=reward.xp, gold=template.gold_reward
            )
        except Exception:
            await self._revert(user_id, mission_id, today)
            raise

        if not outcome.success:
            await self._revert(user_id, mission_id, today)
            logger.warning(f"Reward for mission {mission_id} failed for user {user_id}: {outcome.status.value}")
            return MissionCompletion(
                status=CompletionStatus.FAILED,
                mission_id=mission_id,
                reward=reward,
                outcome=outcome,
                message=outcome.message or "Couldn't grant the reward. Please try again.",
            )

        return MissionCompletion(
            status=CompletionStatus.COMPLETED,
            mission_id=mission_id,
            reward=reward,
            gold=template.gold_reward,
            outcome=outcome,
            message=outcome.message,
        )

    async def _revert(self, user_id: str, mission_id: str, day) -> None:
        try:
            await self.mission_store.revert_completion(user_id, mission_id, day)
        except RankicardError as e:
            logger.error(f"Could not revert mission {mission_id} for user {user_id}; it stays completed: {e}")

    async def _find_template(self, mission_id: str) -> Optional[MissionTemplate]:
        for template in await self.mission_store.list_active_templates():
            if template.id == mission_id:
                return template
        return None

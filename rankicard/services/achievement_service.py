"""
AchievementService - Achievement unlocking

Checks the catalog against the user's progress and unlocks every newly
satisfied achievement, paying its gold reward.
"""

import logging
from typing import List, Optional

from rankicard.gamification.achievement_system import find_unlockable
from rankicard.models.achievement import Achievement
from rankicard.services.reward_service import RewardService
from rankicard.utils.datetime_helpers import Clock

logger = logging.getLogger(__name__)


class AchievementService:
    def __init__(
        self,
        achievement_store,
        profile_store,
        reward_service: RewardService,
        clock: Optional[Clock] = None
    ):
        self.achievement_store = achievement_store
        self.profile_store = profile_store
        self.reward_service = reward_service
        self.clock = clock or reward_service.clock

    async def check_and_award(self, user_id: str) -> List[Achievement]:
        """
        Unlock all satisfied achievements

        Returns:
            Achievements unlocked by this call (empty when nothing new)
        """
        progress = await self.reward_service.get_progress(user_id)
        strava = await self.profile_store.get_credentials(user_id, "strava")
        achievements = await self.achievement_store.list_achievements()
        unlocked_ids = await self.achievement_store.get_unlocked_ids(user_id)

        newly_unlocked = []
        for achievement in find_unlockable(achievements, unlocked_ids, progress, strava.connected):
            # A concurrent check may have unlocked it first
            if not await self.achievement_store.unlock(user_id, achievement.id, self.clock.now()):
                continue

            if achievement.gold_reward > 0:
                outcome = await self.reward_service.add_gold(user_id, achievement.gold_reward)
                if not outcome.success:
                    logger.error(
                        f"Failed to pay {achievement.gold_reward} gold for achievement "
                        f"{achievement.code} to user {user_id}: {outcome.status.value}; unlock undone"
                    )
                    await self.achievement_store.revoke(user_id, achievement.id)
                    continue

            newly_unlocked.append(achievement)
            logger.info(f"User {user_id} unlocked achievement: {achievement.name}")

        return newly_unlocked

    async def get_unlocked(self, user_id: str) -> List[Achievement]:
        achievements = await self.achievement_store.list_achievements()
        unlocked_ids = await self.achievement_store.get_unlocked_ids(user_id)
        return [a for a in achievements if a.id in unlocked_ids]

"""Mission catalog and daily assignment queries"""
import logging
from datetime import date, datetime
from typing import List, Sequence

from rankicard.db.connection import Database, translate_db_errors
from rankicard.db.contracts import CompletionResult
from rankicard.models.mission import MissionTemplate, UserMissionAssignment

logger = logging.getLogger(__name__)


class PostgresMissionStore:
    """Mission store backed by the missions / user_missions tables"""

    def __init__(self, db: Database):
        self.db = db

    @translate_db_errors
    async def list_active_templates(self) -> List[MissionTemplate]:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT id, title, description, rank, gold_reward, mission_type, is_active
                    FROM missions
                    WHERE is_active = TRUE
                    """
                )
                rows = await cur.fetchall()
        return [MissionTemplate.model_validate(dict(row)) for row in rows]

    @translate_db_errors
    async def get_assignments_for_day(self, user_id: str, day: date) -> List[UserMissionAssignment]:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT user_id, mission_id, assigned_date, status, completed_at
                    FROM user_missions
                    WHERE user_id = %s AND assigned_date = %s
                    """,
                    (user_id, day)
                )
                rows = await cur.fetchall()
        return [UserMissionAssignment.model_validate(dict(row)) for row in rows]

    @translate_db_errors
    async def create_assignments(
        self,
        user_id: str,
        mission_ids: Sequence[str],
        day: date
    ) -> List[UserMissionAssignment]:
        """
        Insert today's assignments

        Duplicate (user, mission, day) rows are ignored, so two concurrent
        generations for the same day converge on the first one's rows.
        """
        if mission_ids:
            async with self.db.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.executemany(
                        """
                        INSERT INTO user_missions (user_id, mission_id, assigned_date, status)
                        VALUES (%s, %s, %s, 'pending')
                        ON CONFLICT (user_id, mission_id, assigned_date) DO NOTHING
                        """,
                        [(user_id, mission_id, day) for mission_id in mission_ids]
                    )
                    await conn.commit()
            logger.info(f"Created {len(mission_ids)} mission assignments for user {user_id} on {day}")

        return await self.get_assignments_for_day(user_id, day)

    @translate_db_errors
    async def mark_completed(
        self,
        user_id: str,
        mission_id: str,
        day: date,
        completed_at: datetime
    ) -> CompletionResult:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE user_missions
                    SET status = 'completed', completed_at = %s
                    WHERE user_id = %s AND mission_id = %s AND assigned_date = %s
                      AND status = 'pending'
                    RETURNING mission_id
                    """,
                    (completed_at, user_id, mission_id, day)
                )
                updated = await cur.fetchone()
                if updated:
                    await conn.commit()
                    return CompletionResult.COMPLETED

                await cur.execute(
                    """
                    SELECT status FROM user_missions
                    WHERE user_id = %s AND mission_id = %s AND assigned_date = %s
                    """,
                    (user_id, mission_id, day)
                )
                existing = await cur.fetchone()

        if existing is None:
            return CompletionResult.NOT_FOUND
        return CompletionResult.ALREADY_COMPLETED

    @translate_db_errors
    async def revert_completion(self, user_id: str, mission_id: str, day: date) -> None:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE user_missions
                    SET status = 'pending', completed_at = NULL
                    WHERE user_id = %s AND mission_id = %s AND assigned_date = %s
                    """,
                    (user_id, mission_id, day)
                )
                await conn.commit()
        logger.warning(f"Reverted completion of mission {mission_id} for user {user_id}")

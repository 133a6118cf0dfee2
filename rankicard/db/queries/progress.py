"""Progress and provider credential queries"""
import logging
from typing import Any, Dict

from rankicard.db.connection import Database, translate_db_errors
from rankicard.exceptions import ConcurrencyConflictError
from rankicard.models.progress import ProviderCredentials, UserProgress

logger = logging.getLogger(__name__)

PROGRESS_COLUMNS = (
    "user_id", "total_xp", "current_level", "today_study_xp", "last_study_date",
    "streak_count", "streak_last_date", "gold", "study_sessions", "fitness_sync_cursor",
    "music_sync_cursor", "version",
)

# Columns a service may change; user_id and version are managed here
WRITABLE_COLUMNS = frozenset(PROGRESS_COLUMNS) - {"user_id", "version"}

_SELECT_PROGRESS = f"SELECT {', '.join(PROGRESS_COLUMNS)} FROM user_progress WHERE user_id = %s"


class PostgresProfileStore:
    """
    Profile store backed by the user_progress table

    Writes are conditional on the row version, so two writers that read the
    same snapshot can't both succeed.
    """

    def __init__(self, db: Database):
        self.db = db

    @translate_db_errors
    async def read_progress(self, user_id: str) -> UserProgress:
        """
        Get user progress (creates if doesn't exist)
        """
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO user_progress (user_id)
                    VALUES (%s)
                    ON CONFLICT (user_id) DO NOTHING
                    """,
                    (user_id,)
                )
                await cur.execute(_SELECT_PROGRESS, (user_id,))
                row = await cur.fetchone()
                await conn.commit()

        return UserProgress.model_validate(dict(row))

    @translate_db_errors
    async def write_progress(
        self,
        user_id: str,
        changes: Dict[str, Any],
        expected_version: int
    ) -> UserProgress:
        """
        Conditionally update progress columns

        Args:
            user_id: User ID
            changes: Column -> new value (only WRITABLE_COLUMNS)
            expected_version: Version the caller's snapshot was read at

        Raises:
            ConcurrencyConflictError: the row moved past expected_version
        """
        unknown = set(changes) - WRITABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown progress columns: {sorted(unknown)}")

        columns = sorted(changes)
        assignments = ", ".join(f"{column} = %s" for column in columns)
        params = [changes[column] for column in columns]

        query = f"""
            UPDATE user_progress
            SET {assignments}{', ' if assignments else ''}
                version = version + 1,
                updated_at = CURRENT_TIMESTAMP
            WHERE user_id = %s AND version = %s
            RETURNING {', '.join(PROGRESS_COLUMNS)}
        """

        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, (*params, user_id, expected_version))
                row = await cur.fetchone()
                await conn.commit()

        if row is None:
            raise ConcurrencyConflictError(
                message=f"Progress for user {user_id} changed since version {expected_version}",
                expected_version=expected_version,
                user_id=user_id,
                operation="write_progress",
            )

        return UserProgress.model_validate(dict(row))

    @translate_db_errors
    async def get_credentials(self, user_id: str, provider: str) -> ProviderCredentials:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT provider, access_token, refresh_token, expires_at
                    FROM provider_credentials
                    WHERE user_id = %s AND provider = %s
                    """,
                    (user_id, provider)
                )
                row = await cur.fetchone()

        if not row:
            return ProviderCredentials(provider=provider)
        return ProviderCredentials.model_validate(dict(row))

    @translate_db_errors
    async def save_credentials(self, user_id: str, credentials: ProviderCredentials) -> None:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO provider_credentials (user_id, provider, access_token, refresh_token, expires_at)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, provider) DO UPDATE
                    SET access_token = EXCLUDED.access_token,
                        refresh_token = EXCLUDED.refresh_token,
                        expires_at = EXCLUDED.expires_at
                    """,
                    (
                        user_id,
                        credentials.provider,
                        credentials.access_token,
                        credentials.refresh_token,
                        credentials.expires_at,
                    )
                )
                await conn.commit()
        logger.info(f"Saved {credentials.provider} credentials for user {user_id}")

    @translate_db_errors
    async def clear_credentials(self, user_id: str, provider: str) -> None:
        async with self.db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "DELETE FROM provider_credentials WHERE user_id = %s AND provider = %s",
                    (user_id, provider)
                )
                await conn.commit()
        logger.info(f"Cleared {provider} credentials for user {user_id}")

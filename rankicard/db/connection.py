"""Database connection management"""
import logging
from contextlib import asynccontextmanager
from functools import wraps
from importlib import resources
from typing import Any, AsyncGenerator, Callable, Optional
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from rankicard.config import DATABASE_URL, DB_POOL_MAX_SIZE, DB_POOL_MIN_SIZE
from rankicard.exceptions import wrap_external_exception

logger = logging.getLogger(__name__)


class Database:
    """
    Pool of psycopg async connections for the progression stores

    Rows come back as dicts so stores can feed them straight into the
    pydantic models.
    """

    def __init__(
        self,
        connection_string: str = DATABASE_URL,
        min_size: int = DB_POOL_MIN_SIZE,
        max_size: int = DB_POOL_MAX_SIZE
    ):
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[AsyncConnectionPool] = None

    async def init_pool(self) -> None:
        logger.info(f"Opening database pool ({self.min_size}-{self.max_size} connections)")
        self._pool = AsyncConnectionPool(
            self.connection_string,
            min_size=self.min_size,
            max_size=self.max_size,
            open=False
        )
        await self._pool.open()

    async def close_pool(self) -> None:
        if self._pool:
            logger.info("Closing database pool")
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow a dict-row connection; callers commit their own writes"""
        if not self._pool:
            raise RuntimeError("Database pool not initialized")

        async with self._pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn

    async def apply_schema(self) -> None:
        """Create the progression tables if they don't exist (schema.sql ships with the package)"""
        schema = resources.files("rankicard.db").joinpath("schema.sql").read_text(encoding="utf-8")
        async with self.connection() as conn:
            await conn.execute(schema)
            await conn.commit()
        logger.info("Database schema applied")


def translate_db_errors(func: Callable) -> Callable:
    """
    Re-raise psycopg errors from a store method as DatabaseError subclasses

    The method name becomes the operation; a leading string argument is
    taken as the user id.
    """
    @wraps(func)
    async def wrapper(self, *args: Any, **kwargs: Any) -> Any:
        try:
            return await func(self, *args, **kwargs)
        except psycopg.Error as e:
            user_id = kwargs.get("user_id")
            if user_id is None and args and isinstance(args[0], str):
                user_id = args[0]
            raise wrap_external_exception(e, operation=func.__name__, user_id=user_id) from e
    return wrapper

"""
Redis-backed cooldown persistence.

Stores each cooldown as an absolute expiry (Unix seconds) under its key,
with a Redis TTL slightly longer than the window so stale keys clean
themselves up. Provides:
- Connection pooling
- An in-process copy of every expiry, so a Redis outage or a disabled
  cache still enforces the window for the life of the process
- Operation statistics
"""

import logging
import math
import time
from typing import Any, Dict, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

# Extra TTL kept past the expiry so a reader still sees the key reach 0
TTL_GRACE_SECONDS = 60


class RedisCooldownStorage:
    """
    Async Redis storage for cooldown expiries.

    Writes go to Redis and to a local map. Reads return the later of the
    two, so a failed write or a failed read never opens the gate early.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        enabled: bool = True,
        key_prefix: str = "rankicard:cooldown:",
        client: Optional[Any] = None
    ):
        """
        Initialize Redis cooldown storage.

        Args:
            redis_url: Redis connection URL
            enabled: Whether Redis is used at all (allows runtime disable)
            key_prefix: Namespace for cooldown keys
            client: Pre-built redis client (tests inject a mock)
        """
        self.redis_url = redis_url
        self.enabled = enabled
        self.key_prefix = key_prefix
        self._client: Optional[Any] = client
        self._local: Dict[str, float] = {}
        self._stats = {
            "reads": 0,
            "writes": 0,
            "clears": 0,
            "errors": 0,
        }

    @property
    def persistent(self) -> bool:
        return self.enabled and self._client is not None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if not self.enabled or self._client is not None:
            return

        try:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=10,
            )
            await self._client.ping()
            logger.info(f"✅ Redis connected: {self.redis_url}")
        except Exception as e:
            logger.error(f"❌ Redis connection failed: {e}")
            logger.warning("Cooldowns kept in process memory only - they reset on restart")
            self.enabled = False
            self._client = None

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            try:
                await self._client.aclose()
                logger.info("Redis connection closed")
            except Exception as e:
                logger.error(f"Error closing Redis connection: {e}")

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get_expiry(self, key: str) -> Optional[float]:
        """Latest known expiry for `key`, or None"""
        local = self._local.get(key)
        if not self.persistent:
            return local

        try:
            value = await self._client.get(self._key(key))
            self._stats["reads"] += 1
            stored = float(value) if value is not None else None
        except ValueError as e:
            logger.error(f"Corrupt cooldown value for key '{key}': {e}")
            self._stats["errors"] += 1
            stored = None
        except Exception as e:
            logger.warning(f"Redis GET error for key '{key}', using local cooldown: {e}")
            self._stats["errors"] += 1
            return local

        if stored is None:
            return local
        if local is None:
            return stored
        return max(stored, local)

    async def set_expiry(self, key: str, timestamp: float) -> None:
        """Store `timestamp` as the expiry for `key`"""
        self._local[key] = timestamp
        if not self.persistent:
            return

        ttl = max(1, math.ceil(timestamp - time.time())) + TTL_GRACE_SECONDS
        try:
            await self._client.set(self._key(key), repr(timestamp), ex=ttl)
            self._stats["writes"] += 1
            logger.debug(f"Cooldown SET: {key} until {timestamp} (TTL: {ttl}s)")
        except Exception as e:
            logger.warning(f"Redis SET error for key '{key}', cooldown kept locally: {e}")
            self._stats["errors"] += 1

    async def clear(self, key: str) -> None:
        self._local.pop(key, None)
        if not self.persistent:
            return

        try:
            await self._client.delete(self._key(key))
            self._stats["clears"] += 1
            logger.debug(f"Cooldown CLEAR: {key}")
        except Exception as e:
            logger.error(f"Redis DELETE error for key '{key}': {e}")
            self._stats["errors"] += 1

    def get_stats(self) -> dict:
        return dict(self._stats)

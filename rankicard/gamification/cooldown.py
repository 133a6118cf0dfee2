"""
Cooldown / Rate-Limit Tracker

Gates a rate-limited action behind a single absolute expiry timestamp kept
in persistent storage, so the gate survives restarts.

The cooldown starts as soon as the gated call is issued, before its result
is known: the partner API counts the request even when it fails.
"""

import logging
import math
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class CooldownStorage(Protocol):
    """Persistence for cooldown expiries (Unix seconds)"""

    async def get_expiry(self, key: str) -> Optional[float]: ...

    async def set_expiry(self, key: str, timestamp: float) -> None: ...

    async def clear(self, key: str) -> None: ...


class CooldownTracker:
    """Fixed-window gate for one action of one user"""

    def __init__(
        self,
        storage: CooldownStorage,
        key: str,
        window_seconds: int,
        clock: Callable[[], float] = time.time
    ):
        self.storage = storage
        self.key = key
        self.window_seconds = window_seconds
        self._clock = clock

    async def start(self) -> float:
        """Start the window now; returns the expiry timestamp"""
        expiry = self._clock() + self.window_seconds
        await self.storage.set_expiry(self.key, expiry)
        logger.info(f"Cooldown {self.key} started for {self.window_seconds}s")
        return expiry

    async def remaining_seconds(self) -> int:
        """
        Whole seconds left, rounded up

        Once the window has elapsed this returns 0 and clears the stored
        expiry.
        """
        expiry = await self.storage.get_expiry(self.key)
        if expiry is None:
            return 0

        remaining = max(0, math.ceil(expiry - self._clock()))
        if remaining == 0:
            await self.storage.clear(self.key)
            logger.debug(f"Cooldown {self.key} elapsed")
        return remaining

    async def is_active(self) -> bool:
        return await self.remaining_seconds() > 0

    async def cancel(self) -> None:
        """Drop the countdown without any other side effect"""
        await self.storage.clear(self.key)
        logger.info(f"Cooldown {self.key} cancelled")


def format_countdown(seconds: int) -> str:
    """MM:SS for timers and cooldowns"""
    seconds = max(0, seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"

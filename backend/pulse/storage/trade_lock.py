"""Per (user, exchange, pair) trade locks in Redis.

A lock is a plain key created with SET NX EX, so at most one holder
exists at a time and an abandoned lock disappears after its TTL.

Data structure:
- tradelock:{user_id}:{exchange}:{pair} -> acquisition timestamp
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from pulse.errors import FetchFailure, LockContention
from pulse.storage import cache

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = 60


def lock_key(user_id: str, exchange: str, pair: str) -> str:
    """Get the cache key for a trade lock."""
    return f"{cache.KEY_PREFIX_TRADE_LOCK}{user_id}:{exchange}:{pair}"


class TradeLockManager:
    """Acquire and release trade locks.

    Release deletes the key unconditionally. A holder whose work outlives
    the TTL can therefore delete a lock that a later caller acquired.
    """

    def __init__(self, ttl: int = DEFAULT_LOCK_TTL):
        self.ttl = ttl

    async def acquire(
        self,
        user_id: str,
        exchange: str,
        pair: str,
        ttl: int | None = None,
    ) -> bool:
        """Try to take the lock without waiting.

        Returns:
            True if this call created the lock, False if it is held

        Raises:
            FetchFailure: Cache is unavailable
        """
        key = lock_key(user_id, exchange, pair)
        acquired = await cache.set_nx(key, str(time.time()).encode(), ttl or self.ttl)
        if acquired is None:
            raise FetchFailure(f"Trade lock store unavailable for {key}")

        if acquired:
            logger.debug(f"Acquired trade lock {key}")
        else:
            logger.debug(f"Trade lock {key} is held")
        return acquired

    async def release(self, user_id: str, exchange: str, pair: str) -> None:
        """Delete the lock key."""
        key = lock_key(user_id, exchange, pair)
        if not await cache.delete(key):
            logger.warning(f"Failed to release trade lock {key}")
        else:
            logger.debug(f"Released trade lock {key}")

    @asynccontextmanager
    async def hold(
        self,
        user_id: str,
        exchange: str,
        pair: str,
        ttl: int | None = None,
    ) -> AsyncGenerator[None, None]:
        """Hold the lock for the duration of the block.

        Raises:
            LockContention: Lock is held by someone else
            FetchFailure: Cache is unavailable
        """
        if not await self.acquire(user_id, exchange, pair, ttl):
            raise LockContention(user_id, exchange, pair)
        try:
            yield
        finally:
            await self.release(user_id, exchange, pair)

"""Redis cache layer for hot data.

Provides caching for:
- Live signals and the per-pair signal index
- Latest market data per exchange/pair
- Trade locks

Uses orjson for fast serialization/deserialization.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from pulse.config import get_settings

logger = logging.getLogger(__name__)

# Global connection pool
_pool: ConnectionPool | None = None
_client: redis.Redis | None = None


# =============================================================================
# Key prefixes for different data types
# =============================================================================

KEY_PREFIX_SIGNAL = "signal:"        # Signal data: signal:{id}
KEY_PREFIX_SIGNALS = "signals:"      # Live signal per pair: signals:{exchange}:{pair}
KEY_PREFIX_MARKET = "market:"        # Market data: market:{exchange}:{pair}
KEY_PREFIX_TRADE_LOCK = "tradelock:" # Trade lock: tradelock:{user}:{exchange}:{pair}


# =============================================================================
# Connection management
# =============================================================================

async def init_cache() -> None:
    """Initialize Redis connection pool."""
    global _pool, _client

    if _client is not None:
        return

    settings = get_settings()
    _pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=20,
        socket_timeout=settings.cache_timeout,
        socket_connect_timeout=settings.cache_timeout,
        decode_responses=False,  # We handle encoding ourselves with orjson
    )
    _client = redis.Redis(connection_pool=_pool)

    # Test connection
    try:
        await _client.ping()
        logger.info(f"Redis connected: {settings.redis_url}")
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning(f"Redis connection failed: {e}. Cache will be disabled.")
        await _pool.disconnect()
        _client = None
        _pool = None


async def close_cache() -> None:
    """Close Redis connection pool."""
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None

    if _pool is not None:
        await _pool.disconnect()
        _pool = None

    logger.info("Redis connection closed")


def is_cache_available() -> bool:
    """Check if cache is available."""
    return _client is not None


# =============================================================================
# Basic operations
# =============================================================================

async def get(key: str) -> bytes | None:
    """Get a value from cache.

    Args:
        key: Cache key

    Returns:
        Raw bytes or None if not found/cache unavailable
    """
    if _client is None:
        return None

    try:
        return await _client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis GET error: {e}")
        return None


async def set(
    key: str,
    value: bytes,
    ttl: int | None = None,
) -> bool:
    """Set a value in cache.

    Args:
        key: Cache key
        value: Raw bytes to store
        ttl: Time-to-live in seconds (None for no expiry)

    Returns:
        True if successful, False otherwise
    """
    if _client is None:
        return False

    try:
        if ttl:
            await _client.setex(key, ttl, value)
        else:
            await _client.set(key, value)
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis SET error: {e}")
        return False


async def set_nx(key: str, value: bytes, ttl: int) -> bool | None:
    """Create a key only if it does not exist (SET NX EX).

    Args:
        key: Cache key
        value: Raw bytes to store
        ttl: Time-to-live in seconds

    Returns:
        True if created, False if the key already exists,
        None if the cache is unavailable or the command failed
    """
    if _client is None:
        return None

    try:
        return bool(await _client.set(key, value, nx=True, ex=ttl))
    except redis.RedisError as e:
        logger.warning(f"Redis SET NX error: {e}")
        return None


async def delete(key: str) -> bool:
    """Delete a key from cache.

    Args:
        key: Cache key

    Returns:
        True if deleted, False otherwise
    """
    if _client is None:
        return False

    try:
        await _client.delete(key)
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis DELETE error: {e}")
        return False


# =============================================================================
# JSON operations (using orjson)
# =============================================================================

async def get_json(key: str) -> Any | None:
    """Get a JSON value from cache.

    Args:
        key: Cache key

    Returns:
        Deserialized object or None
    """
    data = await get(key)
    if data is None:
        return None

    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as e:
        logger.warning(f"JSON decode error for key {key}: {e}")
        return None


async def set_json(
    key: str,
    value: Any,
    ttl: int | None = None,
) -> bool:
    """Set a JSON value in cache.

    Args:
        key: Cache key
        value: Object to serialize and store
        ttl: Time-to-live in seconds

    Returns:
        True if successful, False otherwise
    """
    try:
        data = orjson.dumps(value)
        return await set(key, data, ttl)
    except (TypeError, orjson.JSONEncodeError) as e:
        logger.warning(f"JSON encode error for key {key}: {e}")
        return False


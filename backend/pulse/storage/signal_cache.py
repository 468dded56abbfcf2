"""Signal cache for fast access to live signals.

Stores live signals in Redis for:
- Fast duplicate checks by the market scanner
- Fast lookups by the trade executor
- Shared state between processes

Data structure:
- signal:{id} -> JSON serialized SignalRecord
- signals:{exchange}:{pair} -> ID of the live signal for that pair

Both keys expire together with the signal, so the cache never outlives
the signal's validity window.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import orjson
from pydantic import ValidationError

from pulse.storage import cache
from pulse_core.models import SignalRecord

logger = logging.getLogger(__name__)


def _signal_key(signal_id: str) -> str:
    """Get the cache key for a signal."""
    return f"{cache.KEY_PREFIX_SIGNAL}{signal_id}"


def _pair_key(exchange: str, pair: str) -> str:
    """Get the cache key for a pair's live signal index."""
    return f"{cache.KEY_PREFIX_SIGNALS}{exchange}:{pair}"


def _serialize_signal(signal: SignalRecord) -> bytes:
    """Serialize a SignalRecord to JSON bytes."""
    return orjson.dumps(signal.model_dump(mode="json"))


def _deserialize_signal(data: bytes) -> SignalRecord | None:
    """Deserialize JSON bytes to a SignalRecord."""
    try:
        return SignalRecord.model_validate(orjson.loads(data))
    except (orjson.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Failed to deserialize signal: {e}")
        return None


def _remaining_ttl(signal: SignalRecord) -> int:
    remaining = (signal.expires_at - datetime.now(timezone.utc)).total_seconds()
    return max(1, int(remaining))


async def cache_signal(signal: SignalRecord, ttl: int | None = None) -> bool:
    """Cache a live signal and point its pair index at it.

    Args:
        signal: The signal to cache
        ttl: Seconds to keep it (defaults to the time left until expiry)

    Returns:
        True if cached successfully
    """
    if not cache.is_cache_available():
        return False

    ttl = ttl or _remaining_ttl(signal)
    data = _serialize_signal(signal)

    if not await cache.set(_signal_key(signal.id), data, ttl=ttl):
        return False
    if not await cache.set(
        _pair_key(signal.exchange, signal.pair), signal.id.encode(), ttl=ttl
    ):
        return False

    logger.debug(f"Cached signal {signal.id} for {signal.exchange} {signal.pair}")
    return True


async def get_signal(signal_id: str) -> SignalRecord | None:
    """Get a cached signal by ID.

    Returns:
        SignalRecord or None if not found
    """
    if not cache.is_cache_available():
        return None

    data = await cache.get(_signal_key(signal_id))
    if data is None:
        return None

    return _deserialize_signal(data)


async def get_live_signal(
    exchange: str, pair: str, now: datetime | None = None
) -> SignalRecord | None:
    """Get the live signal for a pair, if the cache knows one.

    Returns:
        SignalRecord that is active and unexpired at ``now``, else None
    """
    if not cache.is_cache_available():
        return None

    signal_id = await cache.get(_pair_key(exchange, pair))
    if signal_id is None:
        return None

    signal = await get_signal(signal_id.decode())
    if signal is None:
        return None

    now = now or datetime.now(timezone.utc)
    return signal if signal.is_live(now) else None


async def remove_signal(signal: SignalRecord) -> bool:
    """Remove a signal and, if it still points at it, its pair index.

    Returns:
        True if removed successfully
    """
    if not cache.is_cache_available():
        return False

    removed = await cache.delete(_signal_key(signal.id))

    pair_key = _pair_key(signal.exchange, signal.pair)
    current = await cache.get(pair_key)
    if current is not None and current.decode() == signal.id:
        removed = await cache.delete(pair_key) and removed

    logger.debug(f"Removed signal {signal.id} from cache")
    return removed

"""Market data cache.

Stores the latest OHLCV series and derived metrics per exchange/pair
with a short TTL. The market-data loop writes here, the signal loop reads.

Data structure:
- market:{exchange}:{pair} -> JSON {series, metrics}
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from pulse.storage import cache
from pulse_core.models import MarketMetrics, PriceSeries

logger = logging.getLogger(__name__)

# Market data goes stale quickly; the refresh loop runs every ~2 seconds
MARKET_DATA_TTL = 2


def _market_key(exchange: str, pair: str) -> str:
    """Get the cache key for a pair's market data."""
    return f"{cache.KEY_PREFIX_MARKET}{exchange}:{pair}"


async def cache_market_data(series: PriceSeries, ttl: int = MARKET_DATA_TTL) -> bool:
    """Cache a price series together with its metrics.

    Returns:
        True if cached successfully
    """
    metrics = series.metrics()
    payload = {
        "series": series.model_dump(mode="json"),
        "metrics": metrics.model_dump() if metrics else None,
    }
    return await cache.set_json(_market_key(series.exchange, series.pair), payload, ttl=ttl)


async def _get_payload(exchange: str, pair: str) -> dict | None:
    data = await cache.get_json(_market_key(exchange, pair))
    if not isinstance(data, dict):
        return None
    return data


async def get_market_data(exchange: str, pair: str) -> PriceSeries | None:
    """Get the cached price series for a pair.

    Returns:
        PriceSeries or None on miss
    """
    data = await _get_payload(exchange, pair)
    if data is None or data.get("series") is None:
        return None

    try:
        return PriceSeries.model_validate(data["series"])
    except ValidationError as e:
        logger.warning(f"Invalid market data for {exchange} {pair}: {e}")
        return None


async def get_market_metrics(exchange: str, pair: str) -> MarketMetrics | None:
    """Get the cached metrics for a pair."""
    data = await _get_payload(exchange, pair)
    if data is None or data.get("metrics") is None:
        return None

    try:
        return MarketMetrics.model_validate(data["metrics"])
    except ValidationError as e:
        logger.warning(f"Invalid market metrics for {exchange} {pair}: {e}")
        return None

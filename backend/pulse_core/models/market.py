"""Market data models."""

from __future__ import annotations

import time
from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field


class MarketMetrics(BaseModel):
    """Summary metrics derived from a price series."""

    model_config = ConfigDict(frozen=True)

    price_change: float  # % change vs previous close
    volume_ratio: float
    volatility: float  # mean absolute relative change between closes
    avg_volume: float
    current_volume: float


class PriceSeries(BaseModel):
    """OHLCV history for one (exchange, pair), oldest first.

    Immutable: a scan builds its own instance from a fresh fetch and
    never shares it with another pair.
    """

    model_config = ConfigDict(frozen=True)

    exchange: str
    pair: str
    timeframe: str = "1m"
    closes: tuple[float, ...]
    volumes: tuple[float, ...] = ()
    highs: tuple[float, ...] = ()
    lows: tuple[float, ...] = ()
    fetched_at: float = Field(default_factory=time.time)

    @classmethod
    def from_ohlcv(
        cls,
        exchange: str,
        pair: str,
        candles: Sequence[Sequence[float]],
        timeframe: str = "1m",
    ) -> "PriceSeries":
        """Build a series from ccxt-style rows: [ts, open, high, low, close, volume].

        Rows that are short or missing a close are dropped. A missing
        high/low falls back to the close.
        """
        candles = [c for c in candles if len(c) >= 6 and c[4] is not None]
        return cls(
            exchange=exchange,
            pair=pair,
            timeframe=timeframe,
            closes=tuple(float(c[4]) for c in candles),
            volumes=tuple(float(c[5] or 0) for c in candles),
            highs=tuple(float(c[4] if c[2] is None else c[2]) for c in candles),
            lows=tuple(float(c[4] if c[3] is None else c[3]) for c in candles),
        )

    @property
    def current_price(self) -> float | None:
        """Latest close, or None for an empty series."""
        return self.closes[-1] if self.closes else None

    @property
    def current_volume(self) -> float:
        """Latest bar volume (0 when volumes are missing)."""
        return self.volumes[-1] if self.volumes else 0.0

    def metrics(self) -> MarketMetrics | None:
        """Compute change, volume ratio and volatility for the latest bar."""
        if not self.closes:
            return None

        current = self.closes[-1]
        previous = self.closes[-2] if len(self.closes) >= 2 else current
        price_change = (current - previous) / previous * 100 if previous else 0.0

        avg_volume = sum(self.volumes) / len(self.volumes) if self.volumes else 0.0
        volume_ratio = self.current_volume / avg_volume if avg_volume else 0.0

        changes = [
            abs((self.closes[i] - self.closes[i - 1]) / self.closes[i - 1])
            for i in range(1, len(self.closes))
            if self.closes[i - 1]
        ]
        volatility = sum(changes) / len(changes) if changes else 0.0

        return MarketMetrics(
            price_change=price_change,
            volume_ratio=volume_ratio,
            volatility=volatility,
            avg_volume=avg_volume,
            current_volume=self.current_volume,
        )

    def __len__(self) -> int:
        return len(self.closes)

"""Technical indicators (pure math, no I/O)."""

from pulse_core.indicators.indicators import (
    HIGH_VOLUME_RATIO,
    LOW_VOLUME_RATIO,
    rsi,
    ema,
    macd,
    volume_profile,
    trend,
    IndicatorCalculator,
)

__all__ = [
    "HIGH_VOLUME_RATIO",
    "LOW_VOLUME_RATIO",
    "rsi",
    "ema",
    "macd",
    "volume_profile",
    "trend",
    "IndicatorCalculator",
]

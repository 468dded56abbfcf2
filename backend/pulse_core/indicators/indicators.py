"""Technical indicators for signal generation.

Every function returns the value for the latest bar only, or None when
the series is too short ("insufficient data"). Nothing here raises for
short input and nothing keeps state between calls.
"""

from typing import Sequence

import numpy as np

from pulse_core.models import (
    IndicatorSet,
    MacdResult,
    PriceSeries,
    StrategyConfig,
    Trend,
    VolumeProfile,
)

HIGH_VOLUME_RATIO = 1.5
LOW_VOLUME_RATIO = 0.5


def rsi(prices: Sequence[float], period: int = 14) -> float | None:
    """
    Calculate the Relative Strength Index over a single window.

    Average gain and loss are simple averages over the first ``period``
    price changes (no Wilder smoothing across the series).

    Args:
        prices: Close prices, oldest first
        period: RSI period

    Returns:
        RSI in [0, 100], or None if fewer than period + 1 prices
    """
    if period <= 0 or len(prices) < period + 1:
        return None

    deltas = np.diff(np.asarray(prices[: period + 1], dtype=np.float64))
    avg_gain = deltas[deltas > 0].sum() / period
    avg_loss = -deltas[deltas < 0].sum() / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return float(100.0 - 100.0 / (1.0 + rs))


def ema(prices: Sequence[float], period: int) -> float | None:
    """
    Calculate the Exponential Moving Average of the latest bar.

    Seeded with the SMA of the first ``period`` values, then smoothed with
    multiplier 2 / (period + 1) over the remainder.

    Args:
        prices: Price values, oldest first
        period: EMA period

    Returns:
        EMA value, or None if fewer than ``period`` values
    """
    if period <= 0 or len(prices) < period:
        return None

    arr = np.asarray(prices, dtype=np.float64)
    multiplier = 2.0 / (period + 1)

    value = float(np.mean(arr[:period]))
    for price in arr[period:]:
        value = (float(price) - value) * multiplier + value

    return value


def macd(
    prices: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal_period: int = 9,
) -> MacdResult | None:
    """
    Calculate MACD for the latest bar.

    The signal line is the EMA of a one-element series holding only the
    latest MACD value. With signal_period > 1 that EMA has insufficient
    data, so the signal line reads 0.0 and the histogram equals the MACD
    line.

    Returns:
        MacdResult, or None if fewer than slow + signal_period prices
    """
    if len(prices) < slow + signal_period:
        return None

    fast_ema = ema(prices, fast)
    slow_ema = ema(prices, slow)
    if fast_ema is None or slow_ema is None:
        return None

    macd_line = fast_ema - slow_ema
    signal_line = ema([macd_line], signal_period)
    if signal_line is None:
        signal_line = 0.0

    return MacdResult(
        macd=macd_line,
        signal=signal_line,
        histogram=macd_line - signal_line,
    )


def volume_profile(
    volumes: Sequence[float], current_volume: float
) -> VolumeProfile | None:
    """
    Compare the current volume to the series average.

    Returns:
        VolumeProfile, or None for an empty series or zero average volume
    """
    if len(volumes) == 0:
        return None

    average = float(np.mean(np.asarray(volumes, dtype=np.float64)))
    if average == 0:
        return None

    ratio = current_volume / average
    return VolumeProfile(
        average=average,
        current=current_volume,
        ratio=ratio,
        is_high=ratio > HIGH_VOLUME_RATIO,
        is_low=ratio < LOW_VOLUME_RATIO,
    )


def trend(ema_fast: float | None, ema_slow: float | None) -> Trend | None:
    """Classify trend from fast vs slow EMA. None if either is missing."""
    if ema_fast is None or ema_slow is None:
        return None
    if ema_fast > ema_slow:
        return Trend.UP
    if ema_fast < ema_slow:
        return Trend.DOWN
    return Trend.NEUTRAL


# =============================================================================
# IndicatorCalculator class
# =============================================================================

class IndicatorCalculator:
    """Calculator for all technical indicators needed by the strategy."""

    def __init__(self, config: StrategyConfig | None = None):
        self.config = config or StrategyConfig()

    def calculate(self, series: PriceSeries) -> IndicatorSet:
        """
        Calculate all indicators for the latest bar of a series.

        Args:
            series: Price history for one pair

        Returns:
            IndicatorSet with None for any indicator lacking data
        """
        cfg = self.config
        closes = series.closes

        ema_fast = ema(closes, cfg.ema_fast_period)
        ema_slow = ema(closes, cfg.ema_slow_period)

        return IndicatorSet(
            rsi=rsi(closes, cfg.rsi_period),
            macd=macd(closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal),
            ema_fast=ema_fast,
            ema_slow=ema_slow,
            volume=volume_profile(series.volumes, series.current_volume),
            trend=trend(ema_fast, ema_slow),
        )

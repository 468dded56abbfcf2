"""Tests for technical indicators."""

import pytest

from pulse_core.indicators import (
    rsi,
    ema,
    macd,
    volume_profile,
    trend,
    IndicatorCalculator,
)
from pulse_core.models import PriceSeries, Trend


class TestRSI:
    """Tests for RSI calculation."""

    def test_rsi_insufficient_data(self):
        """Needs period + 1 prices."""
        assert rsi(list(range(14)), 14) is None

    def test_rsi_only_gains(self):
        """No losses gives 100."""
        assert rsi([float(i) for i in range(1, 16)], 14) == 100.0

    def test_rsi_only_losses(self):
        """Strictly falling prices give 0."""
        result = rsi([float(p) for p in range(100, 84, -1)], 14)
        assert result is not None
        assert 0 <= result < 30

    def test_rsi_mostly_falling(self):
        """One small gain among losses stays well under 30."""
        prices = [100, 99, 98, 97, 98, 96, 95, 94, 93, 92, 91, 90, 89, 88, 87]
        result = rsi(prices, 14)

        # gains = 1, losses = 14 -> rs = 1/14
        assert result == pytest.approx(100 - 100 / (1 + 1 / 14))
        assert 0 < result < 30

    def test_rsi_balanced(self):
        """Equal average gain and loss gives 50."""
        assert rsi([1.0, 2.0, 1.0], 2) == pytest.approx(50.0)

    def test_rsi_uses_first_window(self):
        """Only the first period deltas are averaged."""
        prices = [float(i) for i in range(1, 16)] + [0.0] * 10
        assert rsi(prices, 14) == 100.0


class TestEMA:
    """Tests for EMA calculation."""

    def test_ema_basic(self):
        """Seeded with SMA then smoothed with 2/(period+1)."""
        values = [float(i) for i in range(1, 11)]  # 1-10
        # seed = 3, multiplier = 1/3 -> 4, 5, 6, 7, 8
        assert ema(values, 5) == pytest.approx(8.0)

    def test_ema_exact_period_is_sma(self):
        assert ema([2.0, 4.0, 6.0], 3) == pytest.approx(4.0)

    def test_ema_constant_series(self):
        assert ema([50.0] * 30, 9) == pytest.approx(50.0)

    def test_ema_insufficient_data(self):
        assert ema([100.0, 101.0, 102.0], 10) is None
        assert ema([], 1) is None


class TestMACD:
    """Tests for MACD calculation."""

    def test_macd_insufficient_data(self):
        """Needs slow + signal_period prices."""
        assert macd([float(i) for i in range(34)]) is None

    def test_macd_signal_line_reads_zero(self):
        """Signal EMA over a single value is insufficient, so it reads 0."""
        result = macd([float(i) for i in range(100, 135)])

        assert result is not None
        assert result.signal == 0.0
        assert result.histogram == result.macd

    def test_macd_rising_series_positive(self):
        result = macd([float(i) for i in range(100, 160)])
        assert result.macd > 0
        assert result.histogram > 0

    def test_macd_falling_series_negative(self):
        result = macd([float(i) for i in range(160, 100, -1)])
        assert result.macd < 0
        assert result.histogram < 0

    def test_macd_signal_period_one(self):
        """With signal period 1 the signal line equals the MACD line."""
        result = macd([float(i) for i in range(100, 130)], signal_period=1)
        assert result.signal == pytest.approx(result.macd)
        assert result.histogram == pytest.approx(0.0)


class TestVolumeProfile:
    """Tests for volume profile."""

    def test_high_volume(self):
        result = volume_profile([1.0, 1.0, 1.0, 5.0], 5.0)
        assert result.average == pytest.approx(2.0)
        assert result.ratio == pytest.approx(2.5)
        assert result.is_high is True
        assert result.is_low is False

    def test_low_volume(self):
        result = volume_profile([2.0, 2.0, 2.0, 0.5], 0.5)
        assert result.ratio < 0.5
        assert result.is_low is True
        assert result.is_high is False

    def test_normal_volume(self):
        result = volume_profile([1.0] * 10, 1.0)
        assert result.ratio == pytest.approx(1.0)
        assert not result.is_high
        assert not result.is_low

    def test_empty_or_zero(self):
        assert volume_profile([], 1.0) is None
        assert volume_profile([0.0, 0.0], 0.0) is None


class TestTrend:
    """Tests for trend classification."""

    def test_trend(self):
        assert trend(10.0, 9.0) == Trend.UP
        assert trend(9.0, 10.0) == Trend.DOWN
        assert trend(10.0, 10.0) == Trend.NEUTRAL

    def test_trend_missing_ema(self):
        assert trend(None, 10.0) is None
        assert trend(10.0, None) is None


class TestIndicatorCalculator:
    """Tests for IndicatorCalculator class."""

    def _series(self, closes, volumes=None):
        return PriceSeries(
            exchange="binance",
            pair="BTC/USDT",
            closes=tuple(closes),
            volumes=tuple(volumes or [1.0] * len(closes)),
        )

    def test_calculate_full_series(self):
        """Rising series with flat volume."""
        indicators = IndicatorCalculator().calculate(
            self._series([float(p) for p in range(100, 160)])
        )

        assert indicators.rsi == 100.0
        assert indicators.macd.histogram > 0
        assert indicators.ema_fast > indicators.ema_slow
        assert indicators.trend == Trend.UP
        assert indicators.volume_ratio == pytest.approx(1.0)
        assert indicators.is_high_volume is False

    def test_calculate_short_series(self):
        """Indicators lacking data come back as None."""
        indicators = IndicatorCalculator().calculate(
            self._series([float(p) for p in range(100, 120)])
        )

        assert indicators.rsi is not None
        assert indicators.ema_fast is not None
        assert indicators.ema_slow is None
        assert indicators.macd is None
        assert indicators.trend is None

"""Strategy configuration models."""

from __future__ import annotations

from decimal import Decimal
from pydantic import BaseModel


class StrategyConfig(BaseModel):
    """Signal strategy parameters."""

    # Indicator periods
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    ema_fast_period: int = 9
    ema_slow_period: int = 21

    # Vote thresholds
    rsi_buy_below: float = 40.0
    rsi_sell_above: float = 60.0
    min_votes: int = 3

    # Minimum history before a signal may be generated
    min_data_points: int = 50

    # Stops as % offsets from entry
    stop_loss_percent: Decimal = Decimal("2")
    take_profit_percent: Decimal = Decimal("5")

    min_confidence: int = 75
    signal_ttl: int = 300  # seconds

    @classmethod
    def from_settings(cls, settings) -> "StrategyConfig":
        """Build from application settings (pulse.config.Settings)."""
        return cls(
            stop_loss_percent=Decimal(str(settings.stop_loss_percent)),
            take_profit_percent=Decimal(str(settings.take_profit_percent)),
            min_confidence=settings.min_confidence,
            signal_ttl=settings.signal_ttl,
        )

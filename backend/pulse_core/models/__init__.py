"""Data models."""

from pulse_core.models.config import StrategyConfig
from pulse_core.models.market import MarketMetrics, PriceSeries
from pulse_core.models.signal import (
    Direction,
    IndicatorSet,
    MacdResult,
    SignalRecord,
    Trend,
    VolumeProfile,
)
from pulse_core.models.trade import (
    ExchangeCredentials,
    TrackedPair,
    TradeRecord,
    TradeStateConflict,
    TradeStatus,
)

__all__ = [
    "StrategyConfig",
    "MarketMetrics",
    "PriceSeries",
    "Direction",
    "IndicatorSet",
    "MacdResult",
    "SignalRecord",
    "Trend",
    "VolumeProfile",
    "ExchangeCredentials",
    "TrackedPair",
    "TradeRecord",
    "TradeStateConflict",
    "TradeStatus",
]

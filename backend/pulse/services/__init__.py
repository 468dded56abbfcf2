"""Business services."""

from pulse.services.market_scanner import MarketScanner
from pulse.services.notifier import NotificationReport, SignalNotifier
from pulse.services.trade_executor import TradeExecutor, TradeRequest

__all__ = [
    "MarketScanner",
    "NotificationReport",
    "SignalNotifier",
    "TradeExecutor",
    "TradeRequest",
]

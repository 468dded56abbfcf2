"""Data storage layer."""

from pulse.storage.database import Database, get_database, init_database
from pulse.storage.signal_repo import SignalRepository
from pulse.storage.trade_repo import TradeRepository
from pulse.storage.pair_repo import TrackedPairRepository
from pulse.storage.account_repo import DeviceTokenRepository, ExchangeCredentialRepository
from pulse.storage.notification_repo import NotificationRepository
from pulse.storage.trade_lock import TradeLockManager
from pulse.storage import cache
from pulse.storage import signal_cache
from pulse.storage import market_cache

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "SignalRepository",
    "TradeRepository",
    "TrackedPairRepository",
    "ExchangeCredentialRepository",
    "DeviceTokenRepository",
    "NotificationRepository",
    "TradeLockManager",
    "cache",
    "signal_cache",
    "market_cache",
]

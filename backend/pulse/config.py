"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql://localhost/pulse"
    store_timeout: float = 10.0  # seconds, per statement

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    cache_timeout: float = 2.0  # seconds, socket timeout

    # Exchanges
    supported_exchanges: list[str] = ["binance", "bybit", "okx"]
    exchange_timeout: float = 10.0
    order_timeout: float = 15.0

    # Market data
    ohlcv_timeframe: str = "1m"
    ohlcv_limit: int = 100
    market_data_ttl: int = 2
    top_pairs_fallback: int = 10  # 0 disables the fallback

    # Loop intervals (seconds)
    market_data_interval: float = 2.0
    scan_interval: float = 5.0
    expiry_sweep_interval: float = 60.0
    max_pairs_per_tick: int = 50
    max_concurrent_fetches: int = 8
    shutdown_grace: float = 10.0

    # Strategy parameters
    signal_ttl: int = 300
    min_confidence: int = 75
    stop_loss_percent: float = 2.0
    take_profit_percent: float = 5.0

    # Trade execution
    trade_lock_ttl: int = 60
    balance_fraction: float = 0.1

    # Push notifications
    push_gateway_url: str = "https://fcm.googleapis.com/fcm/send"
    push_server_key: str = ""
    push_timeout: float = 10.0
    notify_retries: int = 3

    # Logging
    log_level: str = "INFO"
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

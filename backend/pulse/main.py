"""Main application entry point."""

import asyncio
import logging
import signal

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine.Engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("ccxt").setLevel(logging.WARNING)

from pulse.clients import ExchangeRegistry, PushClient
from pulse.config import get_settings
from pulse.services import MarketScanner, SignalNotifier, TradeExecutor
from pulse.storage import (
    DeviceTokenRepository,
    ExchangeCredentialRepository,
    NotificationRepository,
    SignalRepository,
    TrackedPairRepository,
    TradeLockManager,
    TradeRepository,
    cache,
    get_database,
    init_database,
    signal_cache,
)
from pulse_core.models import StrategyConfig
from pulse_core.signal_generator import SignalGenerator

# Startup timeouts in seconds
DATABASE_STARTUP_TIMEOUT = 30
CACHE_STARTUP_TIMEOUT = 10

logger = logging.getLogger(__name__)

# Global services
exchange_registry: ExchangeRegistry | None = None
push_client: PushClient | None = None
market_scanner: MarketScanner | None = None
trade_executor: TradeExecutor | None = None


async def shutdown(db_initialized: bool = True, cache_initialized: bool = True) -> None:
    """Stop services in reverse start order. Each step is best-effort."""
    global exchange_registry, push_client, market_scanner, trade_executor

    if market_scanner:
        try:
            await market_scanner.stop()
        except Exception as e:
            logger.warning(f"Error stopping market scanner: {e}")
        market_scanner = None

    if trade_executor:
        try:
            await trade_executor.close()
        except Exception as e:
            logger.warning(f"Error closing trade executor: {e}")
        trade_executor = None

    if exchange_registry:
        try:
            await exchange_registry.close()
        except Exception as e:
            logger.warning(f"Error closing exchange clients: {e}")
        exchange_registry = None

    if push_client:
        try:
            await push_client.close()
        except Exception as e:
            logger.warning(f"Error closing push client: {e}")
        push_client = None

    if cache_initialized:
        try:
            await cache.close_cache()
        except Exception as e:
            logger.warning(f"Error closing cache: {e}")

    if db_initialized:
        try:
            await get_database().close()
            logger.info("Database connections closed")
        except Exception as e:
            logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


async def startup() -> None:
    """Initialize storage and wire up services."""
    global exchange_registry, push_client, market_scanner, trade_executor

    settings = get_settings()

    # Track initialization state for proper cleanup on failure
    db_initialized = False
    cache_initialized = False

    try:
        # Initialize database with timeout
        try:
            await asyncio.wait_for(init_database(), timeout=DATABASE_STARTUP_TIMEOUT)
            db_initialized = True
            logger.info("Database initialized")
        except asyncio.TimeoutError:
            raise RuntimeError(
                f"Database initialization timed out after {DATABASE_STARTUP_TIMEOUT}s"
            )

        # Initialize Redis cache with timeout
        try:
            await asyncio.wait_for(cache.init_cache(), timeout=CACHE_STARTUP_TIMEOUT)
            cache_initialized = True
            if cache.is_cache_available():
                logger.info("Redis cache initialized")
            else:
                logger.warning("Redis cache unavailable - running without caching")
        except asyncio.TimeoutError:
            logger.warning("Redis cache initialization timed out - running without caching")
            cache_initialized = True  # close_cache() is a no-op without a client

        signal_repo = SignalRepository()
        pair_repo = TrackedPairRepository()

        exchange_registry = ExchangeRegistry(settings.supported_exchanges)
        push_client = PushClient()
        notifier = SignalNotifier(
            push_client,
            pair_repo,
            DeviceTokenRepository(),
            NotificationRepository(),
            retries=settings.notify_retries,
        )

        generator = SignalGenerator(
            config=StrategyConfig.from_settings(settings),
            save_signal=signal_repo.save,
            cache_signal=signal_cache.cache_signal,
            notify_signal=notifier.notify_signal,
        )

        trade_executor = TradeExecutor(
            exchange_registry,
            TradeLockManager(ttl=settings.trade_lock_ttl),
            signal_repo,
            TradeRepository(),
            ExchangeCredentialRepository(),
            settings=settings,
        )

        market_scanner = MarketScanner(
            exchange_registry, generator, signal_repo, pair_repo, settings=settings
        )
        await market_scanner.start()

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        await shutdown(db_initialized=db_initialized, cache_initialized=cache_initialized)
        raise  # Re-raise to prevent running in a broken state


async def run() -> None:
    """Run the scanner process until SIGINT/SIGTERM."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info("Starting signal pipeline...")
    await startup()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await shutdown()


def main():
    """Run the application."""
    asyncio.run(run())


if __name__ == "__main__":
    main()

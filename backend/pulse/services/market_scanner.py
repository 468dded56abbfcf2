"""Market scanner: keeps market data fresh, generates and expires signals.

Runs three independent loops:
- market data: fetch OHLCV for tracked pairs into the market cache
- signal scan: run the generator for pairs without a live signal
- expiry sweep: deactivate signals past their window

A failure for one pair is logged and skipped; it never stops a loop.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

from pulse.clients.exchange import ExchangeRegistry
from pulse.config import Settings, get_settings
from pulse.errors import PulseError
from pulse.storage import market_cache, signal_cache
from pulse.storage.pair_repo import TrackedPairRepository
from pulse.storage.signal_repo import SignalRepository
from pulse_core.models import PriceSeries, SignalRecord
from pulse_core.signal_generator import SignalGenerator

logger = logging.getLogger(__name__)

# How long a fetched top-pairs fallback list is reused
FALLBACK_REFRESH_SECONDS = 300


class MarketScanner:
    """Supervises the market data, signal and expiry loops."""

    def __init__(
        self,
        registry: ExchangeRegistry,
        generator: SignalGenerator,
        signal_repo: SignalRepository,
        pair_repo: TrackedPairRepository,
        settings: Settings | None = None,
    ):
        self.registry = registry
        self.generator = generator
        self.signal_repo = signal_repo
        self.pair_repo = pair_repo
        self.settings = settings or get_settings()

        self._fetch_semaphore = asyncio.Semaphore(self.settings.max_concurrent_fetches)
        self._scan_semaphore = asyncio.Semaphore(self.settings.max_concurrent_fetches)

        self._running = False
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

        self._fallback_pairs: list[tuple[str, str]] = []
        self._fallback_fetched_at = 0.0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the three loops."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._tasks = [
            asyncio.create_task(
                self._run_loop("market-data", self.settings.market_data_interval, self.refresh_market_data)
            ),
            asyncio.create_task(
                self._run_loop("signal-scan", self.settings.scan_interval, self.scan_markets)
            ),
            asyncio.create_task(
                self._run_loop("expiry-sweep", self.settings.expiry_sweep_interval, self.expire_signals)
            ),
        ]
        logger.info(
            f"Market scanner started (data every {self.settings.market_data_interval}s, "
            f"scan every {self.settings.scan_interval}s, "
            f"expiry every {self.settings.expiry_sweep_interval}s)"
        )

    async def stop(self) -> None:
        """Stop the loops, letting in-flight ticks finish within the grace period."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        tasks, self._tasks = self._tasks, []
        if not tasks:
            return

        _, pending = await asyncio.wait(tasks, timeout=self.settings.shutdown_grace)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} scanner loops after grace period")
            await asyncio.gather(*pending, return_exceptions=True)

        logger.info("Market scanner stopped")

    async def _run_loop(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[object]],
    ) -> None:
        """Run ``tick`` every ``interval`` seconds until stopped."""
        loop = asyncio.get_running_loop()
        while self._running:
            started = loop.time()
            try:
                await tick()
            except Exception as e:
                logger.error(f"{name} tick failed: {e}")

            delay = max(0.0, interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    # =========================================================================
    # Market data
    # =========================================================================

    async def _fetch_series(self, exchange: str, pair: str) -> PriceSeries:
        """Fetch a fresh series under the fetch semaphore.

        Raises:
            FetchFailure: Exchange error or timeout
            UnknownExchange: Exchange not configured
        """
        client = self.registry.get(exchange)
        async with self._fetch_semaphore:
            candles = await client.fetch_ohlcv(
                pair, self.settings.ohlcv_timeframe, self.settings.ohlcv_limit
            )
        return PriceSeries.from_ohlcv(
            exchange, pair, candles, timeframe=self.settings.ohlcv_timeframe
        )

    async def _fallback_top_pairs(self) -> list[tuple[str, str]]:
        """Top pairs by volume per exchange, used while nobody tracks anything."""
        limit = self.settings.top_pairs_fallback
        if limit <= 0:
            return []

        if (
            self._fallback_pairs
            and time.monotonic() - self._fallback_fetched_at < FALLBACK_REFRESH_SECONDS
        ):
            return self._fallback_pairs

        pairs: list[tuple[str, str]] = []
        for name in self.registry.names:
            try:
                top = await self.registry.get(name).fetch_top_pairs(limit)
            except PulseError as e:
                logger.warning(f"Top pairs unavailable for {name}: {e}")
                continue
            pairs.extend((name, pair) for pair in top)

        if pairs:
            self._fallback_pairs = pairs
            self._fallback_fetched_at = time.monotonic()
        return pairs

    async def _refresh_pair(self, exchange: str, pair: str) -> bool:
        try:
            series = await self._fetch_series(exchange, pair)
            return await market_cache.cache_market_data(series, ttl=self.settings.market_data_ttl)
        except PulseError as e:
            logger.warning(f"Market data refresh failed for {exchange} {pair}: {e}")
        except Exception as e:
            logger.error(f"Market data refresh error for {exchange} {pair}: {e}")
        return False

    async def refresh_market_data(self) -> int:
        """
        Refresh cached OHLCV for every tracked pair.

        Returns:
            Number of pairs written to the cache
        """
        pairs = await self.pair_repo.list_active_pairs(self.settings.max_pairs_per_tick)
        if not pairs:
            pairs = await self._fallback_top_pairs()
        if not pairs:
            return 0

        results = await asyncio.gather(*(self._refresh_pair(ex, pair) for ex, pair in pairs))
        refreshed = sum(1 for ok in results if ok)
        logger.debug(f"Refreshed market data for {refreshed}/{len(pairs)} pairs")
        return refreshed

    # =========================================================================
    # Signal scan
    # =========================================================================

    async def has_live_signal(self, exchange: str, pair: str) -> bool:
        """Check the signal cache, then the store, for a live signal."""
        now = datetime.now(timezone.utc)
        if await signal_cache.get_live_signal(exchange, pair, now) is not None:
            return True
        return await self.signal_repo.get_live_for_pair(exchange, pair, now) is not None

    async def _get_series(self, exchange: str, pair: str) -> PriceSeries:
        series = await market_cache.get_market_data(exchange, pair)
        if series is not None:
            return series

        series = await self._fetch_series(exchange, pair)
        await market_cache.cache_market_data(series, ttl=self.settings.market_data_ttl)
        return series

    async def _scan_pair(self, exchange: str, pair: str) -> SignalRecord | None:
        async with self._scan_semaphore:
            try:
                series = await self._get_series(exchange, pair)
                if await self.has_live_signal(exchange, pair):
                    return None
                return await self.generator.generate(exchange, pair, series)
            except PulseError as e:
                logger.warning(f"Scan skipped {exchange} {pair}: {e}")
            except Exception as e:
                logger.error(f"Scan failed for {exchange} {pair}: {e}")
            return None

    async def scan_markets(self) -> list[SignalRecord]:
        """
        Run the generator for every tracked pair that has no live signal.

        Returns:
            Signals generated in this pass
        """
        pairs = await self.pair_repo.list_active_pairs(self.settings.max_pairs_per_tick)
        if not pairs:
            return []

        results = await asyncio.gather(*(self._scan_pair(ex, pair) for ex, pair in pairs))
        signals = [s for s in results if s is not None]
        if signals:
            logger.info(f"Generated {len(signals)} signals from {len(pairs)} pairs")
        return signals

    # =========================================================================
    # Expiry
    # =========================================================================

    async def expire_signals(self) -> int:
        """
        Deactivate expired signals and drop them from the cache.

        Returns:
            Number of signals expired
        """
        expired = await self.signal_repo.expire_stale(datetime.now(timezone.utc))
        for signal in expired:
            await signal_cache.remove_signal(signal)

        if expired:
            logger.info(f"Expired {len(expired)} signals")
        return len(expired)

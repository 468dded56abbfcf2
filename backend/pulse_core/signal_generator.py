"""Signal generator for the multi-indicator vote strategy.

This module is pure business logic with no I/O dependencies.
Persistence, caching and notification are injected via callbacks, so the
same generator runs inside the market scanner and in tests.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable

from pulse_core.indicators import IndicatorCalculator
from pulse_core.models import (
    Direction,
    IndicatorSet,
    PriceSeries,
    SignalRecord,
    StrategyConfig,
    Trend,
)
from pulse_core.scoring import confidence_score

logger = logging.getLogger(__name__)

# Type aliases for callbacks
SignalCallback = Callable[[SignalRecord], Awaitable[None]]
SaveSignalCallback = Callable[[SignalRecord], Awaitable[None]]
CacheSignalCallback = Callable[[SignalRecord], Awaitable[Any]]
NotifySignalCallback = Callable[[SignalRecord], Awaitable[Any]]
Clock = Callable[[], datetime]

PRICE_QUANTUM = Decimal("0.00000001")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def count_votes(
    indicators: IndicatorSet, config: StrategyConfig | None = None
) -> tuple[int, int]:
    """
    Count BUY and SELL votes from an indicator set.

    High volume confirms both sides, so it adds one vote to each.
    Missing indicators vote for neither side.

    Returns:
        Tuple of (buy_votes, sell_votes)
    """
    cfg = config or StrategyConfig()
    buy = 0
    sell = 0

    if indicators.rsi is not None:
        if indicators.rsi < cfg.rsi_buy_below:
            buy += 1
        if indicators.rsi > cfg.rsi_sell_above:
            sell += 1

    if indicators.macd is not None:
        if indicators.macd.histogram > 0:
            buy += 1
        if indicators.macd.histogram < 0:
            sell += 1

    if indicators.has_emas:
        if indicators.ema_fast > indicators.ema_slow:
            buy += 1
        if indicators.ema_fast < indicators.ema_slow:
            sell += 1

    if indicators.is_high_volume:
        buy += 1
        sell += 1

    if indicators.trend == Trend.UP:
        buy += 1
    elif indicators.trend == Trend.DOWN:
        sell += 1

    return buy, sell


def resolve_direction(
    buy_votes: int, sell_votes: int, min_votes: int = 3
) -> Direction | None:
    """Pick a direction from vote counts.

    A side needs at least ``min_votes``. When both sides qualify the
    strictly larger count wins and a tie goes to BUY.
    """
    buy_ok = buy_votes >= min_votes
    sell_ok = sell_votes >= min_votes

    if buy_ok and (not sell_ok or buy_votes >= sell_votes):
        return Direction.BUY
    if sell_ok:
        return Direction.SELL
    return None


class SignalGenerator:
    """
    Generate trading signals from indicator votes.

    Strategy Logic:
    - Five indicators vote BUY or SELL (RSI, MACD histogram, EMA ordering,
      high volume, trend)
    - A side with >= min_votes becomes the direction
    - Confidence score must reach min_confidence

    Stops:
    - BUY: SL = entry * (1 - sl%), TP = entry * (1 + tp%)
    - SELL: mirrored

    All I/O operations are injected via callbacks:
    - save_signal: Persist a new signal (required for the signal to count)
    - cache_signal: Publish to the signal cache (best-effort)
    - notify_signal: Notify subscribers (best-effort)

    The generator does not know whether a live signal already exists for
    the pair; callers check that before calling generate().
    """

    def __init__(
        self,
        config: StrategyConfig | None = None,
        save_signal: SaveSignalCallback | None = None,
        cache_signal: CacheSignalCallback | None = None,
        notify_signal: NotifySignalCallback | None = None,
        clock: Clock | None = None,
    ):
        self.config = config or StrategyConfig()
        self.indicator_calc = IndicatorCalculator(self.config)

        # Injected callbacks (None = no-op)
        self._save_signal = save_signal
        self._cache_signal = cache_signal
        self._notify_signal = notify_signal
        self._clock = clock or _utc_now

        self._callbacks: list[SignalCallback] = []

    def on_signal(self, callback: SignalCallback) -> None:
        """Register callback for new signals.

        Note: Duplicate callbacks are ignored.
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def off_signal(self, callback: SignalCallback) -> None:
        """Unregister callback for new signals."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def calculate_stops(
        self, direction: Direction, entry_price: Decimal
    ) -> tuple[Decimal, Decimal]:
        """
        Calculate stop loss and take profit prices.

        Returns:
            Tuple of (stop_loss, take_profit), quantized to 8 decimals
        """
        sl_ratio = self.config.stop_loss_percent / Decimal("100")
        tp_ratio = self.config.take_profit_percent / Decimal("100")

        if direction == Direction.BUY:
            stop_loss = entry_price * (Decimal("1") - sl_ratio)
            take_profit = entry_price * (Decimal("1") + tp_ratio)
        else:  # SELL
            stop_loss = entry_price * (Decimal("1") + sl_ratio)
            take_profit = entry_price * (Decimal("1") - tp_ratio)

        return stop_loss.quantize(PRICE_QUANTUM), take_profit.quantize(PRICE_QUANTUM)

    def detect_signal(
        self,
        exchange: str,
        pair: str,
        series: PriceSeries,
        now: datetime | None = None,
    ) -> SignalRecord | None:
        """
        Detect if the latest bar of a series produces a signal.

        Args:
            exchange: Exchange name
            pair: Trading pair, e.g. "BTC/USDT"
            series: Price history for the pair
            now: Creation time (defaults to the injected clock)

        Returns:
            SignalRecord if signal detected, None otherwise
        """
        if len(series) < self.config.min_data_points:
            return None

        indicators = self.indicator_calc.calculate(series)
        buy_votes, sell_votes = count_votes(indicators, self.config)
        direction = resolve_direction(buy_votes, sell_votes, self.config.min_votes)
        if direction is None:
            return None

        confidence = confidence_score(indicators, direction)
        if confidence < self.config.min_confidence:
            logger.debug(
                f"{exchange} {pair}: {direction.value} confidence {confidence} "
                f"below {self.config.min_confidence}"
            )
            return None

        entry_price = Decimal(str(series.current_price))
        stop_loss, take_profit = self.calculate_stops(direction, entry_price)

        created_at = now or self._clock()
        signal = SignalRecord(
            exchange=exchange,
            pair=pair,
            direction=direction,
            entry_price=entry_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            confidence=confidence,
            indicators=indicators,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=self.config.signal_ttl),
        )
        logger.info(
            f"{direction.value} signal: {exchange} {pair} @ {entry_price} "
            f"SL={stop_loss} TP={take_profit} confidence={confidence} "
            f"votes={buy_votes}/{sell_votes}"
        )
        return signal

    async def generate(
        self,
        exchange: str,
        pair: str,
        series: PriceSeries,
    ) -> SignalRecord | None:
        """
        Detect, persist, cache and announce a signal for one pair.

        Returns:
            The persisted signal, or None if no signal was generated or
            the save failed
        """
        signal = self.detect_signal(exchange, pair, series)
        if signal is None:
            return None

        # Persist signal via callback
        if self._save_signal:
            try:
                await self._save_signal(signal)
            except Exception as e:
                logger.error(
                    f"Failed to save signal {signal.id}: {e}. "
                    "Signal will NOT be published."
                )
                return None

        if self._cache_signal:
            try:
                await self._cache_signal(signal)
            except Exception as e:
                logger.warning(f"Failed to cache signal {signal.id}: {e}")

        if self._notify_signal:
            try:
                await self._notify_signal(signal)
            except Exception as e:
                logger.error(f"Failed to notify signal {signal.id}: {e}")

        for callback in self._callbacks:
            try:
                await callback(signal)
            except Exception as e:
                logger.error(f"Signal callback error: {e}")

        return signal

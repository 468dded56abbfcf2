"""Trade execution against live signals.

Each execution holds the (user, exchange, pair) trade lock for its whole
duration, so a user cannot place two orders for the same pair at once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from pulse.clients.exchange import ExchangeClient, ExchangeRegistry
from pulse.config import Settings, get_settings
from pulse.errors import (
    CredentialsMissing,
    OrderPlacementFailure,
    PulseError,
    SignalUnavailable,
    TradeNotFound,
    TradeRecordFailure,
)
from pulse.storage import signal_cache
from pulse.storage.account_repo import ExchangeCredentialRepository
from pulse.storage.signal_repo import SignalRepository
from pulse.storage.trade_lock import TradeLockManager
from pulse.storage.trade_repo import TradeRepository
from pulse_core.models import (
    Direction,
    SignalRecord,
    TradeRecord,
    TradeStateConflict,
)

logger = logging.getLogger(__name__)

QUANTITY_QUANTUM = Decimal("0.00000001")


@dataclass
class TradeRequest:
    """A user's request to trade a signal."""

    user_id: str
    signal_id: str
    exchange: str
    pair: str
    direction: Direction
    quantity: Decimal | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TradeExecutor:
    """
    Execute market orders for signals.

    Flow per request:
    1. Take the trade lock (LockContention if held)
    2. Load a live signal for the same exchange/pair
    3. Load validated credentials
    4. Size the order (request quantity or a fraction of free quote balance)
    5. Place a market order
    6. Record the trade and deactivate the signal
    7. Release the lock
    """

    def __init__(
        self,
        registry: ExchangeRegistry,
        locks: TradeLockManager,
        signal_repo: SignalRepository,
        trade_repo: TradeRepository,
        credential_repo: ExchangeCredentialRepository,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.registry = registry
        self.locks = locks
        self.signal_repo = signal_repo
        self.trade_repo = trade_repo
        self.credential_repo = credential_repo
        self.settings = settings or get_settings()
        self._clock = clock or _utc_now

        # Locks currently held by in-flight executions
        self._held: set[tuple[str, str, str]] = set()

    async def execute(self, request: TradeRequest) -> TradeRecord:
        """
        Execute a trade for a signal.

        Raises:
            LockContention: Another execution holds the lock
            SignalUnavailable: Signal missing, not live, or for another pair or direction
            CredentialsMissing: No validated credentials for the exchange
            OrderPlacementFailure: Exchange rejected or timed out; nothing recorded
            TradeRecordFailure: Order placed but the trade could not be stored
        """
        key = (request.user_id, request.exchange, request.pair)
        async with self.locks.hold(*key, ttl=self.settings.trade_lock_ttl):
            self._held.add(key)
            try:
                return await self._execute_locked(request)
            finally:
                self._held.discard(key)

    async def _load_signal(self, signal_id: str) -> SignalRecord | None:
        signal = await signal_cache.get_signal(signal_id)
        if signal is not None:
            return signal
        return await self.signal_repo.get_by_id(signal_id)

    async def _resolve_quantity(
        self,
        client: ExchangeClient,
        request: TradeRequest,
        signal: SignalRecord,
    ) -> Decimal:
        if request.quantity is not None:
            quantity = request.quantity
        else:
            quote = request.pair.split("/")[1] if "/" in request.pair else request.pair
            try:
                balances = await client.fetch_balance()
            except PulseError as e:
                raise OrderPlacementFailure(f"Balance unavailable: {e}") from e

            free = balances.get(quote, Decimal("0"))
            fraction = Decimal(str(self.settings.balance_fraction))
            quantity = (free * fraction / signal.entry_price).quantize(QUANTITY_QUANTUM)

        if quantity <= 0:
            raise OrderPlacementFailure(f"Order quantity must be positive, got {quantity}")
        return quantity

    async def _execute_locked(self, request: TradeRequest) -> TradeRecord:
        signal = await self._load_signal(request.signal_id)
        now = self._clock()
        if signal is None or not signal.is_live(now):
            raise SignalUnavailable(f"Signal {request.signal_id} expired or invalid")
        if signal.exchange != request.exchange or signal.pair != request.pair:
            raise SignalUnavailable(
                f"Signal {request.signal_id} is for {signal.exchange} {signal.pair}, "
                f"not {request.exchange} {request.pair}"
            )
        if signal.direction != request.direction:
            raise SignalUnavailable(
                f"Signal {request.signal_id} is {signal.direction.value}, "
                f"not {request.direction.value}"
            )

        credentials = await self.credential_repo.get_validated(request.user_id, request.exchange)
        if credentials is None:
            raise CredentialsMissing(
                f"No validated {request.exchange} keys for user {request.user_id}"
            )

        client = self.registry.create_private_client(request.exchange, credentials)
        try:
            quantity = await self._resolve_quantity(client, request, signal)
            order = await client.create_market_order(
                request.pair, request.direction.order_side, quantity
            )
        finally:
            await client.close()

        trade = TradeRecord(
            user_id=request.user_id,
            exchange=request.exchange,
            pair=request.pair,
            signal_id=signal.id,
            direction=request.direction,
            entry_price=order.average_price or signal.entry_price,
            quantity=quantity,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            exchange_order_id=order.order_id,
            executed_at=self._clock(),
        )
        try:
            await self.trade_repo.save(trade)
        except Exception as e:
            logger.error(
                f"Order {order.order_id} for user {request.user_id} on "
                f"{request.exchange} {request.pair} placed but trade not saved: {e}"
            )
            # The signal is consumed either way
            await self._retire_signal(signal, trade.id)
            raise TradeRecordFailure(order.order_id, str(e)) from e

        await self._retire_signal(signal, trade.id)

        logger.info(
            f"Executed {trade.direction.value} {trade.quantity} {trade.pair} on "
            f"{trade.exchange} for user {trade.user_id} "
            f"(order {trade.exchange_order_id}, trade {trade.id})"
        )
        return trade

    async def _retire_signal(self, signal: SignalRecord, trade_id: str) -> None:
        """Deactivate a traded signal in the store and drop it from the cache."""
        await signal_cache.remove_signal(signal)
        try:
            if not await self.signal_repo.deactivate(signal.id):
                logger.warning(f"Signal {signal.id} was already inactive after trade {trade_id}")
        except Exception as e:
            logger.error(f"Failed to deactivate signal {signal.id} after trade {trade_id}: {e}")

    async def close_trade(
        self, user_id: str, trade_id: str, close_price: Decimal
    ) -> TradeRecord:
        """
        Close an open trade and record its P&L.

        Raises:
            TradeNotFound: No such trade for this user
            TradeStateConflict: Trade is already closed
        """
        trade = await self.trade_repo.get_by_id(trade_id)
        if trade is None or trade.user_id != user_id:
            raise TradeNotFound(f"Trade {trade_id} not found")

        trade.close(close_price, self._clock())
        if not await self.trade_repo.mark_closed(trade):
            raise TradeStateConflict(f"Trade {trade_id} was closed concurrently")

        logger.info(
            f"Closed trade {trade.id} {trade.pair} at {close_price}: "
            f"pnl={trade.pnl} ({trade.pnl_percent:.2f}%)"
        )
        return trade

    async def close(self) -> None:
        """Release any locks still held by in-flight executions."""
        held, self._held = self._held, set()
        for user_id, exchange, pair in held:
            await self.locks.release(user_id, exchange, pair)
        if held:
            logger.info(f"Released {len(held)} trade locks on shutdown")

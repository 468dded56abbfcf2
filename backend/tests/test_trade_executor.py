"""Tests for trade execution."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from pulse.clients.exchange import OrderResult
from pulse.config import Settings
from pulse.errors import (
    CredentialsMissing,
    LockContention,
    OrderPlacementFailure,
    SignalUnavailable,
    TradeNotFound,
    TradeRecordFailure,
)
from pulse.services.trade_executor import TradeExecutor, TradeRequest
from pulse.storage import signal_cache
from pulse.storage.trade_lock import TradeLockManager
from pulse_core.models import (
    Direction,
    ExchangeCredentials,
    SignalRecord,
    TradeRecord,
    TradeStateConflict,
    TradeStatus,
)

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
LOCK_KEY = "tradelock:u1:binance:BTC/USDT"


@pytest.fixture
def signal():
    return SignalRecord(
        exchange="binance",
        pair="BTC/USDT",
        direction=Direction.BUY,
        entry_price=Decimal("100"),
        stop_loss=Decimal("98"),
        take_profit=Decimal("105"),
        confidence=80,
        created_at=NOW - timedelta(seconds=10),
        expires_at=NOW + timedelta(seconds=290),
    )


@pytest.fixture
def client():
    client = MagicMock()
    client.fetch_balance = AsyncMock(return_value={"USDT": Decimal("1000"), "BTC": Decimal("1")})
    client.create_market_order = AsyncMock(
        return_value=OrderResult(
            order_id="ord-1",
            pair="BTC/USDT",
            side="buy",
            quantity=Decimal("0.5"),
            average_price=Decimal("100.5"),
            status="closed",
        )
    )
    client.close = AsyncMock()
    return client


@pytest.fixture
def registry(client):
    registry = MagicMock()
    registry.create_private_client.return_value = client
    return registry


@pytest.fixture
def signal_repo(signal):
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=signal)
    repo.deactivate = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def trade_repo():
    repo = MagicMock()
    repo.save = AsyncMock()
    repo.get_by_id = AsyncMock(return_value=None)
    repo.mark_closed = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def credential_repo():
    repo = MagicMock()
    repo.get_validated = AsyncMock(
        return_value=ExchangeCredentials(
            user_id="u1", exchange="binance", api_key="k", api_secret="s", is_validated=True
        )
    )
    return repo


@pytest.fixture
def locks(fake_cache):
    return TradeLockManager(ttl=60)


@pytest.fixture
def executor(registry, locks, signal_repo, trade_repo, credential_repo):
    return TradeExecutor(
        registry,
        locks,
        signal_repo,
        trade_repo,
        credential_repo,
        settings=Settings(balance_fraction=0.1, trade_lock_ttl=60),
        clock=lambda: NOW,
    )


def _request(signal, **overrides) -> TradeRequest:
    fields = dict(
        user_id="u1",
        signal_id=signal.id,
        exchange="binance",
        pair="BTC/USDT",
        direction=Direction.BUY,
    )
    fields.update(overrides)
    return TradeRequest(**fields)


class TestExecute:
    """Tests for TradeExecutor.execute."""

    @pytest.mark.asyncio
    async def test_execute_with_quantity(
        self, executor, signal, client, trade_repo, signal_repo, fake_cache
    ):
        trade = await executor.execute(_request(signal, quantity=Decimal("0.5")))

        assert trade.status == TradeStatus.OPEN
        assert trade.quantity == Decimal("0.5")
        assert trade.entry_price == Decimal("100.5")
        assert trade.stop_loss == signal.stop_loss
        assert trade.take_profit == signal.take_profit
        assert trade.signal_id == signal.id
        assert trade.exchange_order_id == "ord-1"
        assert trade.executed_at == NOW

        client.create_market_order.assert_awaited_once_with("BTC/USDT", "buy", Decimal("0.5"))
        client.fetch_balance.assert_not_awaited()
        client.close.assert_awaited_once()
        trade_repo.save.assert_awaited_once_with(trade)
        signal_repo.deactivate.assert_awaited_once_with(signal.id)
        assert LOCK_KEY not in fake_cache.data

    @pytest.mark.asyncio
    async def test_quantity_from_balance(self, executor, signal, client):
        trade = await executor.execute(_request(signal))

        # 10% of 1000 USDT at entry 100
        assert trade.quantity == Decimal("1")
        client.create_market_order.assert_awaited_once_with("BTC/USDT", "buy", Decimal("1"))

    @pytest.mark.asyncio
    async def test_zero_balance_fails(self, executor, signal, client, trade_repo, fake_cache):
        client.fetch_balance.return_value = {}

        with pytest.raises(OrderPlacementFailure):
            await executor.execute(_request(signal))

        client.create_market_order.assert_not_awaited()
        trade_repo.save.assert_not_awaited()
        assert LOCK_KEY not in fake_cache.data

    @pytest.mark.asyncio
    async def test_sell_direction(self, executor, signal, signal_repo, client):
        signal_repo.get_by_id.return_value = signal.model_copy(
            update={
                "direction": Direction.SELL,
                "stop_loss": Decimal("102"),
                "take_profit": Decimal("95"),
            }
        )

        await executor.execute(_request(signal, direction=Direction.SELL, quantity=Decimal("1")))

        client.create_market_order.assert_awaited_once_with("BTC/USDT", "sell", Decimal("1"))

    @pytest.mark.asyncio
    async def test_direction_must_match_signal(self, executor, signal, client, fake_cache):
        with pytest.raises(SignalUnavailable):
            await executor.execute(_request(signal, direction=Direction.SELL, quantity=Decimal("1")))

        client.create_market_order.assert_not_awaited()
        assert LOCK_KEY not in fake_cache.data

    @pytest.mark.asyncio
    async def test_store_failure_after_fill(
        self, executor, signal, client, trade_repo, signal_repo, fake_cache
    ):
        trade_repo.save.side_effect = ConnectionError("db down")
        await signal_cache.cache_signal(signal, ttl=300)

        with pytest.raises(TradeRecordFailure) as exc_info:
            await executor.execute(_request(signal, quantity=Decimal("1")))

        assert exc_info.value.order_id == "ord-1"
        # Signal is consumed so a retry cannot place a second order
        signal_repo.deactivate.assert_awaited_once_with(signal.id)
        assert await signal_cache.get_signal(signal.id) is None
        assert LOCK_KEY not in fake_cache.data

        signal_repo.get_by_id.return_value = signal.model_copy(update={"active": False})
        with pytest.raises(SignalUnavailable):
            await executor.execute(_request(signal, quantity=Decimal("1")))
        client.create_market_order.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deactivate_failure_keeps_trade(
        self, executor, signal, trade_repo, signal_repo, fake_cache
    ):
        signal_repo.deactivate.side_effect = ConnectionError("db down")

        trade = await executor.execute(_request(signal, quantity=Decimal("1")))

        trade_repo.save.assert_awaited_once_with(trade)
        assert LOCK_KEY not in fake_cache.data

    @pytest.mark.asyncio
    async def test_cached_signal_preferred(self, executor, signal, signal_repo, fake_cache):
        await signal_cache.cache_signal(signal, ttl=300)

        await executor.execute(_request(signal, quantity=Decimal("1")))

        signal_repo.get_by_id.assert_not_awaited()
        # Signal is dropped from the cache once traded
        assert await signal_cache.get_signal(signal.id) is None

    @pytest.mark.asyncio
    async def test_lock_contention(self, executor, signal, locks, signal_repo):
        await locks.acquire("u1", "binance", "BTC/USDT")

        with pytest.raises(LockContention):
            await executor.execute(_request(signal))

        signal_repo.get_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_signal(self, executor, signal, signal_repo, fake_cache):
        signal_repo.get_by_id.return_value = signal.model_copy(
            update={"expires_at": NOW - timedelta(seconds=1), "created_at": NOW - timedelta(minutes=5)}
        )

        with pytest.raises(SignalUnavailable):
            await executor.execute(_request(signal))

        assert LOCK_KEY not in fake_cache.data

    @pytest.mark.asyncio
    async def test_inactive_signal(self, executor, signal, signal_repo):
        signal_repo.get_by_id.return_value = signal.model_copy(update={"active": False})

        with pytest.raises(SignalUnavailable):
            await executor.execute(_request(signal))

    @pytest.mark.asyncio
    async def test_missing_signal(self, executor, signal, signal_repo):
        signal_repo.get_by_id.return_value = None

        with pytest.raises(SignalUnavailable):
            await executor.execute(_request(signal))

    @pytest.mark.asyncio
    async def test_signal_for_other_pair(self, executor, signal, client, fake_cache):
        with pytest.raises(SignalUnavailable):
            await executor.execute(_request(signal, pair="ETH/USDT"))

        client.create_market_order.assert_not_awaited()
        assert "tradelock:u1:binance:ETH/USDT" not in fake_cache.data

    @pytest.mark.asyncio
    async def test_credentials_missing(self, executor, signal, credential_repo, registry, fake_cache):
        credential_repo.get_validated.return_value = None

        with pytest.raises(CredentialsMissing):
            await executor.execute(_request(signal))

        registry.create_private_client.assert_not_called()
        assert LOCK_KEY not in fake_cache.data

    @pytest.mark.asyncio
    async def test_order_failure_records_nothing(
        self, executor, signal, client, trade_repo, signal_repo, fake_cache
    ):
        client.create_market_order.side_effect = OrderPlacementFailure("insufficient funds")

        with pytest.raises(OrderPlacementFailure):
            await executor.execute(_request(signal, quantity=Decimal("1")))

        trade_repo.save.assert_not_awaited()
        signal_repo.deactivate.assert_not_awaited()
        client.close.assert_awaited_once()
        assert LOCK_KEY not in fake_cache.data


class TestCloseTrade:
    """Tests for TradeExecutor.close_trade."""

    @pytest.fixture
    def open_trade(self):
        return TradeRecord(
            user_id="u1",
            exchange="binance",
            pair="BTC/USDT",
            signal_id="s1",
            direction=Direction.BUY,
            entry_price=Decimal("100"),
            quantity=Decimal("2"),
            stop_loss=Decimal("98"),
            take_profit=Decimal("105"),
            executed_at=NOW - timedelta(hours=1),
        )

    @pytest.mark.asyncio
    async def test_close_trade(self, executor, trade_repo, open_trade):
        trade_repo.get_by_id.return_value = open_trade

        trade = await executor.close_trade("u1", open_trade.id, Decimal("105"))

        assert trade.status == TradeStatus.CLOSED
        assert trade.pnl == Decimal("10")
        assert trade.pnl_percent == Decimal("5")
        assert trade.closed_at == NOW
        trade_repo.mark_closed.assert_awaited_once_with(trade)

    @pytest.mark.asyncio
    async def test_close_unknown_trade(self, executor):
        with pytest.raises(TradeNotFound):
            await executor.close_trade("u1", "missing", Decimal("105"))

    @pytest.mark.asyncio
    async def test_close_other_users_trade(self, executor, trade_repo, open_trade):
        trade_repo.get_by_id.return_value = open_trade

        with pytest.raises(TradeNotFound):
            await executor.close_trade("u2", open_trade.id, Decimal("105"))

    @pytest.mark.asyncio
    async def test_close_already_closed(self, executor, trade_repo, open_trade):
        open_trade.close(Decimal("101"), NOW - timedelta(minutes=1))
        trade_repo.get_by_id.return_value = open_trade

        with pytest.raises(TradeStateConflict):
            await executor.close_trade("u1", open_trade.id, Decimal("105"))

        trade_repo.mark_closed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_race_lost(self, executor, trade_repo, open_trade):
        trade_repo.get_by_id.return_value = open_trade
        trade_repo.mark_closed.return_value = False

        with pytest.raises(TradeStateConflict):
            await executor.close_trade("u1", open_trade.id, Decimal("105"))


class TestShutdown:
    """Tests for TradeExecutor.close."""

    @pytest.mark.asyncio
    async def test_close_releases_held_locks(self, executor, locks, fake_cache):
        await locks.acquire("u1", "binance", "BTC/USDT")
        executor._held.add(("u1", "binance", "BTC/USDT"))

        await executor.close()

        assert LOCK_KEY not in fake_cache.data

"""Tests for trade locks."""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from pulse.errors import FetchFailure, LockContention
from pulse.storage import trade_lock
from pulse.storage.trade_lock import TradeLockManager, lock_key


class TestTradeLockManager:
    """Tests for TradeLockManager."""

    @pytest.fixture
    def locks(self):
        return TradeLockManager(ttl=60)

    def test_lock_key(self):
        assert lock_key("u1", "binance", "BTC/USDT") == "tradelock:u1:binance:BTC/USDT"

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, fake_cache, locks):
        assert await locks.acquire("u1", "binance", "BTC/USDT") is True
        assert fake_cache.ttls["tradelock:u1:binance:BTC/USDT"] == 60

        assert await locks.acquire("u1", "binance", "BTC/USDT") is False

        await locks.release("u1", "binance", "BTC/USDT")
        assert await locks.acquire("u1", "binance", "BTC/USDT") is True

    @pytest.mark.asyncio
    async def test_custom_ttl(self, fake_cache, locks):
        await locks.acquire("u1", "binance", "BTC/USDT", ttl=5)
        assert fake_cache.ttls["tradelock:u1:binance:BTC/USDT"] == 5

    @pytest.mark.asyncio
    async def test_concurrent_acquire_single_winner(self, fake_cache, locks):
        results = await asyncio.gather(
            *(locks.acquire("u1", "binance", "BTC/USDT") for _ in range(10))
        )
        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_locks_are_independent(self, fake_cache, locks):
        assert await locks.acquire("u1", "binance", "BTC/USDT")
        assert await locks.acquire("u1", "binance", "ETH/USDT")
        assert await locks.acquire("u2", "binance", "BTC/USDT")
        assert await locks.acquire("u1", "okx", "BTC/USDT")

    @pytest.mark.asyncio
    async def test_hold_releases_on_error(self, fake_cache, locks):
        with pytest.raises(RuntimeError):
            async with locks.hold("u1", "binance", "BTC/USDT"):
                assert "tradelock:u1:binance:BTC/USDT" in fake_cache.data
                raise RuntimeError("boom")

        assert fake_cache.data == {}

    @pytest.mark.asyncio
    async def test_hold_contention(self, fake_cache, locks):
        await locks.acquire("u1", "binance", "BTC/USDT")

        with pytest.raises(LockContention) as exc_info:
            async with locks.hold("u1", "binance", "BTC/USDT"):
                pytest.fail("lock should not be granted")

        assert exc_info.value.pair == "BTC/USDT"
        # The other holder's lock is untouched
        assert "tradelock:u1:binance:BTC/USDT" in fake_cache.data

    @pytest.mark.asyncio
    async def test_cache_unavailable(self, locks):
        with patch.object(trade_lock.cache, "set_nx", new_callable=AsyncMock, return_value=None):
            with pytest.raises(FetchFailure):
                await locks.acquire("u1", "binance", "BTC/USDT")

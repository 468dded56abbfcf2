"""Shared test fixtures."""

import orjson
import pytest

from pulse.storage import cache


class FakeCache:
    """In-memory stand-in for the Redis-backed cache module functions."""

    def __init__(self):
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int | None] = {}

    def is_cache_available(self) -> bool:
        return True

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ttl=None):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def set_nx(self, key, value, ttl):
        if key in self.data:
            return False
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key):
        self.data.pop(key, None)
        self.ttls.pop(key, None)
        return True

    async def get_json(self, key):
        data = self.data.get(key)
        return orjson.loads(data) if data is not None else None

    async def set_json(self, key, value, ttl=None):
        return await self.set(key, orjson.dumps(value), ttl)


@pytest.fixture
def fake_cache(monkeypatch):
    """Route pulse.storage.cache calls to an in-memory dict."""
    fake = FakeCache()
    for name in ("is_cache_available", "get", "set", "set_nx", "delete", "get_json", "set_json"):
        monkeypatch.setattr(cache, name, getattr(fake, name))
    return fake


def make_candles(closes, volumes=None, start_ts=1_700_000_000_000):
    """Build ccxt-style OHLCV rows from closes."""
    volumes = volumes or [1.0] * len(closes)
    return [
        [start_ts + i * 60_000, c, c + 1, c - 1, c, v]
        for i, (c, v) in enumerate(zip(closes, volumes))
    ]

"""Exchange clients built on ccxt.

Every call is bounded twice: ccxt's own request timeout and an
asyncio.wait_for guard around the whole call (which covers rate-limit
sleeps and retries inside ccxt).
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Protocol

import ccxt.async_support as ccxt

from pulse.config import get_settings
from pulse.errors import FetchFailure, OrderPlacementFailure, UnknownExchange
from pulse_core.models import ExchangeCredentials

logger = logging.getLogger(__name__)

# Exchanges the registry knows how to build
EXCHANGE_FACTORIES: dict[str, Callable[[dict], ccxt.Exchange]] = {
    "binance": ccxt.binance,
    "bybit": ccxt.bybit,
    "okx": ccxt.okx,
    "kucoin": ccxt.kucoin,
    "kraken": ccxt.kraken,
}

TOP_PAIRS_QUOTE = "USDT"


@dataclass
class OrderResult:
    """Outcome of a filled (or accepted) market order."""

    order_id: str
    pair: str
    side: str
    quantity: Decimal
    average_price: Decimal | None
    status: str


class ExchangeClient(Protocol):
    """What the scanner and executor need from an exchange."""

    name: str

    async def fetch_ohlcv(
        self, pair: str, timeframe: str = "1m", limit: int = 100
    ) -> list[list[float]]: ...

    async def fetch_balance(self) -> dict[str, Decimal]: ...

    async def create_market_order(
        self, pair: str, side: str, quantity: Decimal
    ) -> OrderResult: ...

    async def fetch_top_pairs(self, limit: int = 10) -> list[str]: ...

    async def close(self) -> None: ...


class CcxtExchangeClient:
    """ExchangeClient backed by a ccxt.async_support exchange."""

    def __init__(
        self,
        name: str,
        exchange: ccxt.Exchange,
        timeout: float = 10.0,
        order_timeout: float = 15.0,
    ):
        self.name = name
        self._exchange = exchange
        self._timeout = timeout
        self._order_timeout = order_timeout

    async def _call(self, what: str, coro, timeout: float) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise FetchFailure(f"{self.name} {what} timed out after {timeout}s") from e
        except ccxt.BaseError as e:
            raise FetchFailure(f"{self.name} {what} failed: {e}") from e

    async def fetch_ohlcv(
        self, pair: str, timeframe: str = "1m", limit: int = 100
    ) -> list[list[float]]:
        """
        Fetch OHLCV candles, oldest first.

        Raises:
            FetchFailure: Exchange error or timeout
        """
        return await self._call(
            f"fetch_ohlcv({pair})",
            self._exchange.fetch_ohlcv(pair, timeframe, limit=limit),
            self._timeout,
        )

    async def fetch_balance(self) -> dict[str, Decimal]:
        """
        Fetch free balances by currency.

        Raises:
            FetchFailure: Exchange error or timeout
        """
        balance = await self._call(
            "fetch_balance", self._exchange.fetch_balance(), self._timeout
        )
        free = balance.get("free") or {}
        return {
            currency: Decimal(str(amount))
            for currency, amount in free.items()
            if amount is not None
        }

    async def create_market_order(
        self, pair: str, side: str, quantity: Decimal
    ) -> OrderResult:
        """
        Place a market order.

        Raises:
            OrderPlacementFailure: Exchange rejected the order or timed out
        """
        try:
            order = await asyncio.wait_for(
                self._exchange.create_order(pair, "market", side, float(quantity)),
                timeout=self._order_timeout,
            )
        except asyncio.TimeoutError as e:
            raise OrderPlacementFailure(
                f"{self.name} order for {pair} timed out after {self._order_timeout}s"
            ) from e
        except ccxt.BaseError as e:
            raise OrderPlacementFailure(f"{self.name} rejected order for {pair}: {e}") from e

        average = order.get("average") or order.get("price")
        filled = order.get("filled") or order.get("amount") or quantity
        return OrderResult(
            order_id=str(order.get("id")),
            pair=pair,
            side=side,
            quantity=Decimal(str(filled)),
            average_price=Decimal(str(average)) if average else None,
            status=order.get("status") or "open",
        )

    async def fetch_top_pairs(self, limit: int = 10) -> list[str]:
        """
        Get the most traded USDT-quoted pairs by 24h quote volume.

        Raises:
            FetchFailure: Exchange error or timeout
        """
        tickers = await self._call(
            "fetch_tickers", self._exchange.fetch_tickers(), self._timeout
        )
        quoted = [
            (symbol, ticker.get("quoteVolume") or 0)
            for symbol, ticker in tickers.items()
            if symbol.endswith(f"/{TOP_PAIRS_QUOTE}")
        ]
        quoted.sort(key=lambda item: item[1], reverse=True)
        return [symbol for symbol, _ in quoted[:limit]]

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self._exchange.close()


def _build_ccxt(name: str, config: dict, timeout: float) -> ccxt.Exchange:
    factory = EXCHANGE_FACTORIES.get(name)
    if factory is None:
        raise UnknownExchange(f"Unsupported exchange: {name}")
    return factory({
        "enableRateLimit": True,
        "timeout": int(timeout * 1000),  # ccxt takes milliseconds
        **config,
    })


class ExchangeRegistry:
    """
    Explicit map of exchange name -> public client.

    Built once at startup from the configured names. Unknown names fail
    fast with UnknownExchange.
    """

    def __init__(
        self,
        names: list[str] | None = None,
        timeout: float | None = None,
        order_timeout: float | None = None,
    ):
        settings = get_settings()
        self._timeout = timeout or settings.exchange_timeout
        self._order_timeout = order_timeout or settings.order_timeout
        self._clients: dict[str, ExchangeClient] = {}

        for name in names if names is not None else settings.supported_exchanges:
            self._clients[name] = CcxtExchangeClient(
                name,
                _build_ccxt(name, {}, self._timeout),
                timeout=self._timeout,
                order_timeout=self._order_timeout,
            )
        logger.info(f"Exchange registry ready: {', '.join(self._clients) or 'none'}")

    @property
    def names(self) -> list[str]:
        return list(self._clients)

    def register(self, name: str, client: ExchangeClient) -> None:
        """Add or replace a client."""
        self._clients[name] = client

    def get(self, name: str) -> ExchangeClient:
        """
        Get the public client for an exchange.

        Raises:
            UnknownExchange: Name was not configured
        """
        client = self._clients.get(name)
        if client is None:
            raise UnknownExchange(f"Exchange not configured: {name}")
        return client

    def create_private_client(
        self, name: str, credentials: ExchangeCredentials
    ) -> ExchangeClient:
        """
        Build an authenticated one-off client. Caller must close() it.

        Raises:
            UnknownExchange: Name was not configured
        """
        if name not in self._clients:
            raise UnknownExchange(f"Exchange not configured: {name}")

        config = {"apiKey": credentials.api_key, "secret": credentials.api_secret}
        if credentials.passphrase:
            config["password"] = credentials.passphrase

        return CcxtExchangeClient(
            name,
            _build_ccxt(name, config, self._timeout),
            timeout=self._timeout,
            order_timeout=self._order_timeout,
        )

    async def close(self) -> None:
        """Close all public clients."""
        for name, client in self._clients.items():
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Error closing {name} client: {e}")
        self._clients.clear()

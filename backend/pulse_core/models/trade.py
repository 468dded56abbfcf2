"""Trade and tracked-pair data models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

from pulse_core.models.signal import Direction


class TradeStateConflict(Exception):
    """Trade is not in a state that allows the requested transition."""


class TradeStatus(str, Enum):
    """Trade lifecycle status."""

    OPEN = "open"
    CLOSED = "closed"


class TradeRecord(BaseModel):
    """A position opened by executing a signal."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    exchange: str
    pair: str
    signal_id: str
    direction: Direction
    entry_price: Decimal
    quantity: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    status: TradeStatus = TradeStatus.OPEN
    pnl: Decimal | None = None
    pnl_percent: Decimal | None = None
    close_price: Decimal | None = None
    exchange_order_id: str | None = None
    executed_at: datetime
    closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    def calculate_pnl(self, price: Decimal) -> tuple[Decimal, Decimal]:
        """
        Calculate P&L at a given price.

        Returns:
            Tuple of (pnl, pnl_percent); percent is relative to the entry notional
        """
        if self.direction == Direction.BUY:
            pnl = (price - self.entry_price) * self.quantity
        else:
            pnl = (self.entry_price - price) * self.quantity

        notional = self.entry_price * self.quantity
        pnl_percent = pnl / notional * 100 if notional else Decimal("0")
        return pnl, pnl_percent

    def close(self, price: Decimal, timestamp: datetime) -> None:
        """
        Close the trade at the given price.

        Raises:
            TradeStateConflict: if the trade is already closed
        """
        if not self.is_open:
            raise TradeStateConflict(f"Trade {self.id} is already {self.status.value}")

        pnl, pnl_percent = self.calculate_pnl(price)
        self.pnl = pnl
        self.pnl_percent = pnl_percent
        self.close_price = price
        self.closed_at = timestamp
        self.status = TradeStatus.CLOSED


class TrackedPair(BaseModel):
    """A (user, exchange, pair) subscription that feeds the scanner."""

    user_id: str
    exchange: str
    pair: str
    active: bool = True


class ExchangeCredentials(BaseModel):
    """A user's API keys for one exchange."""

    user_id: str
    exchange: str
    api_key: str
    api_secret: str
    passphrase: str | None = None
    is_validated: bool = False

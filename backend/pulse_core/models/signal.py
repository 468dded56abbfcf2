"""Signal and indicator data models."""

import hashlib
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Direction(str, Enum):
    """Signal / trade direction."""

    BUY = "BUY"
    SELL = "SELL"

    @property
    def order_side(self) -> str:
        """ccxt order side for this direction."""
        return "buy" if self is Direction.BUY else "sell"


class Trend(str, Enum):
    """Trend classification from fast vs slow EMA."""

    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class MacdResult(BaseModel):
    """MACD line, signal line and histogram for the latest bar."""

    model_config = ConfigDict(frozen=True)

    macd: float
    signal: float
    histogram: float


class VolumeProfile(BaseModel):
    """Current volume relative to the series average."""

    model_config = ConfigDict(frozen=True)

    average: float
    current: float
    ratio: float
    is_high: bool
    is_low: bool


class IndicatorSet(BaseModel):
    """Indicator values for one pair in one scan cycle.

    Any field may be None when the series was too short for it.
    """

    model_config = ConfigDict(frozen=True)

    rsi: float | None = None
    macd: MacdResult | None = None
    ema_fast: float | None = None
    ema_slow: float | None = None
    volume: VolumeProfile | None = None
    trend: Trend | None = None

    @property
    def volume_ratio(self) -> float | None:
        return self.volume.ratio if self.volume else None

    @property
    def is_high_volume(self) -> bool:
        return bool(self.volume and self.volume.is_high)

    @property
    def has_emas(self) -> bool:
        return self.ema_fast is not None and self.ema_slow is not None


def _generate_signal_id(
    exchange: str, pair: str, created_at: datetime, direction: Direction
) -> str:
    """Generate deterministic signal ID based on signal attributes."""
    ts_str = created_at.strftime("%Y%m%d%H%M%S%f")
    key = f"{exchange}:{pair}:{ts_str}:{direction.value}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class SignalRecord(BaseModel):
    """Time-boxed directional trading signal."""

    id: str = ""  # Will be set in model_post_init
    exchange: str
    pair: str
    direction: Direction
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    confidence: int = Field(ge=0, le=100)
    indicators: IndicatorSet = Field(default_factory=IndicatorSet)
    created_at: datetime
    expires_at: datetime
    active: bool = True

    @model_validator(mode="after")
    def _check_window(self):
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be after created_at")
        return self

    def model_post_init(self, __context) -> None:
        """Generate deterministic ID after model initialization."""
        if not self.id:
            object.__setattr__(
                self,
                "id",
                _generate_signal_id(
                    self.exchange, self.pair, self.created_at, self.direction
                ),
            )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_live(self, now: datetime) -> bool:
        """Active and not yet expired."""
        return self.active and not self.is_expired(now)

    @property
    def risk_amount(self) -> Decimal:
        """Distance from entry to stop loss."""
        if self.direction == Direction.BUY:
            return self.entry_price - self.stop_loss
        return self.stop_loss - self.entry_price

    @property
    def reward_amount(self) -> Decimal:
        """Distance from entry to take profit."""
        if self.direction == Direction.BUY:
            return self.take_profit - self.entry_price
        return self.entry_price - self.take_profit

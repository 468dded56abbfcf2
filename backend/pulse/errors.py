"""Error types raised by the I/O side of the pipeline."""

from pulse_core.models import TradeStateConflict


class PulseError(Exception):
    """Base class for pipeline errors."""


class FetchFailure(PulseError):
    """An exchange or cache read failed or timed out."""


class UnknownExchange(PulseError):
    """Exchange name is not in the registry (configuration error)."""


class LockContention(PulseError):
    """Another trade for the same user/exchange/pair is in flight. Retryable."""

    def __init__(self, user_id: str, exchange: str, pair: str):
        self.user_id = user_id
        self.exchange = exchange
        self.pair = pair
        super().__init__(f"Trade already in progress for {user_id} on {exchange} {pair}")


class SignalUnavailable(PulseError):
    """Signal is missing, expired, inactive or for a different pair."""


class CredentialsMissing(PulseError):
    """User has no validated credentials for the exchange."""


class OrderPlacementFailure(PulseError):
    """The exchange rejected the order or did not answer in time."""


class TradeRecordFailure(PulseError):
    """The order was placed on the exchange but the trade could not be stored.

    Not retryable: the exchange order exists. Reconcile by ``order_id``.
    """

    def __init__(self, order_id: str, reason: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} placed but trade not recorded: {reason}")


class TradeNotFound(PulseError):
    """Trade does not exist or belongs to another user."""


__all__ = [
    "PulseError",
    "FetchFailure",
    "UnknownExchange",
    "LockContention",
    "SignalUnavailable",
    "CredentialsMissing",
    "OrderPlacementFailure",
    "TradeRecordFailure",
    "TradeNotFound",
    "TradeStateConflict",
]

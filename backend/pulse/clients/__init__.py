"""Exchange and push gateway clients."""

from pulse.clients.exchange import (
    CcxtExchangeClient,
    ExchangeClient,
    ExchangeRegistry,
    OrderResult,
)
from pulse.clients.push import DeliveryResult, PushClient

__all__ = [
    "CcxtExchangeClient",
    "ExchangeClient",
    "ExchangeRegistry",
    "OrderResult",
    "DeliveryResult",
    "PushClient",
]

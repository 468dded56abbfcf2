"""Signal notification service.

Stores a notification row for every subscriber of the signal's pair and
pushes it to their devices. Delivery is best-effort: failures are
reported back, never raised to the signal generator.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from pulse.clients.push import DeliveryResult, PushClient
from pulse.storage.account_repo import DeviceTokenRepository
from pulse.storage.notification_repo import NotificationRepository
from pulse.storage.pair_repo import TrackedPairRepository
from pulse_core.models import Direction, SignalRecord

logger = logging.getLogger(__name__)


@dataclass
class NotificationReport:
    """What happened when a signal was announced."""

    signal_id: str
    recipients: int = 0
    stored: int = 0
    delivered: int = 0
    failed_tokens: list[str] = field(default_factory=list)


def format_signal_message(signal: SignalRecord) -> tuple[str, str, dict[str, str]]:
    """Build (title, body, data) for a signal notification."""
    side = "Buy" if signal.direction == Direction.BUY else "Sell"
    title = f"{side} signal: {signal.pair}"
    body = f"Confidence {signal.confidence}% • Entry {signal.entry_price}"
    data = {
        "signalId": signal.id,
        "exchange": signal.exchange,
        "pair": signal.pair,
        "type": signal.direction.value,
        "confidence": str(signal.confidence),
        "entryPrice": str(signal.entry_price),
        "stopLoss": str(signal.stop_loss),
        "takeProfit": str(signal.take_profit),
    }
    return title, body, data


class SignalNotifier:
    """Fan a signal out to the users tracking its pair."""

    def __init__(
        self,
        push_client: PushClient,
        pair_repo: TrackedPairRepository,
        token_repo: DeviceTokenRepository,
        notification_repo: NotificationRepository,
        retries: int = 3,
        retry_delay: float = 0.5,
    ):
        self.push_client = push_client
        self.pair_repo = pair_repo
        self.token_repo = token_repo
        self.notification_repo = notification_repo
        self.retries = max(1, retries)
        self.retry_delay = retry_delay

    async def notify_signal(self, signal: SignalRecord) -> NotificationReport:
        """
        Notify subscribers of a new signal.

        Returns:
            NotificationReport with counts and tokens that could not be reached
        """
        report = NotificationReport(signal_id=signal.id)

        user_ids = await self.pair_repo.get_subscribers(signal.exchange, signal.pair)
        if not user_ids:
            return report
        report.recipients = len(user_ids)

        title, body, data = format_signal_message(signal)
        try:
            report.stored = await self.notification_repo.save_many(user_ids, title, body, data)
            logger.info(
                f"Stored notifications for {report.stored} users subscribed to "
                f"{signal.exchange} {signal.pair}"
            )
        except Exception as e:
            logger.error(f"Failed to store notifications for signal {signal.id}: {e}")

        tokens = await self.token_repo.get_tokens(user_ids)
        if not tokens:
            return report

        results = await self._send_with_retries(tokens, title, body, data)
        report.delivered = sum(1 for r in results if r.success)
        report.failed_tokens = [r.token for r in results if not r.success]

        if report.failed_tokens:
            logger.warning(
                f"Signal {signal.id}: {len(report.failed_tokens)}/{len(tokens)} "
                "device tokens failed"
            )
        return report

    async def _send_with_retries(
        self,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str],
    ) -> list[DeliveryResult]:
        """Send, retrying gateway failures and retryable per-token errors."""
        final: dict[str, DeliveryResult] = {}
        pending = list(tokens)

        for attempt in range(1, self.retries + 1):
            results = await self.push_client.send(pending, title, body, data)
            for result in results:
                final[result.token] = result

            pending = [r.token for r in results if r.retryable]
            if not pending or attempt == self.retries:
                break
            logger.warning(
                f"Retrying {len(pending)} device tokens (attempt {attempt}/{self.retries})"
            )
            await asyncio.sleep(self.retry_delay * attempt)

        return [final[t] for t in tokens]

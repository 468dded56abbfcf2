"""Push notification gateway client (FCM-style HTTP API)."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from pulse.config import get_settings

logger = logging.getLogger(__name__)

# Gateway accepts at most this many registration IDs per request
MAX_TOKENS_PER_REQUEST = 1000

# Whole-request failure (transport error or non-2xx), recorded per token
GATEWAY_ERROR = "GatewayError"

# Per-token errors worth retrying
RETRYABLE_ERRORS = {"Unavailable", "InternalServerError", GATEWAY_ERROR}


@dataclass
class DeliveryResult:
    """Gateway verdict for one device token."""

    token: str
    message_id: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.message_id is not None

    @property
    def retryable(self) -> bool:
        return self.error in RETRYABLE_ERRORS


class PushClient:
    """Sends notifications to device tokens over HTTP."""

    def __init__(
        self,
        gateway_url: str | None = None,
        server_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.gateway_url = gateway_url or settings.push_gateway_url
        self.server_key = server_key if server_key is not None else settings.push_server_key
        self.timeout = timeout or settings.push_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.server_key:
                headers["Authorization"] = f"key={self.server_key}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def send(
        self,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> list[DeliveryResult]:
        """
        Send one notification to many devices.

        Args:
            tokens: Device registration tokens
            title: Notification title
            body: Notification body
            data: Extra key/value payload delivered to the app

        Returns:
            One DeliveryResult per token, in input order. A batch the gateway
            rejects as a whole is reported as GatewayError for each of its tokens.
        """
        results: list[DeliveryResult] = []
        client = await self._get_client()

        for start in range(0, len(tokens), MAX_TOKENS_PER_REQUEST):
            batch = tokens[start:start + MAX_TOKENS_PER_REQUEST]
            payload = {
                "registration_ids": batch,
                "notification": {"title": title, "body": body},
                "data": data or {},
            }
            try:
                response = await client.post(self.gateway_url, json=payload)
                response.raise_for_status()
                entries = response.json().get("results") or []
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Push gateway error for batch of {len(batch)}: {e}")
                results.extend(DeliveryResult(token=t, error=GATEWAY_ERROR) for t in batch)
                continue

            for i, token in enumerate(batch):
                entry = entries[i] if i < len(entries) else {"error": "MissingResult"}
                results.append(
                    DeliveryResult(
                        token=token,
                        message_id=entry.get("message_id"),
                        error=entry.get("error"),
                    )
                )

        return results

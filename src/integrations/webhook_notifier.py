"""Best-effort delivery of call lifecycle events to a caller-supplied webhook."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from relay.errors import WebhookDeliveryError

LOGGER = logging.getLogger(__name__)


class WebhookNotifier:
    """Posts ``{"event": ..., **payload}`` to one URL.

    Failures are logged and dropped; there is no retry and nothing is raised to
    the caller. An empty URL turns every notification into a no-op.
    """

    def __init__(
        self,
        url: str | None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url or ""
        self._timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    async def notify(self, event: str, payload: dict[str, Any]) -> bool:
        if not self._url:
            return False
        try:
            await self._deliver({"event": event, **payload})
        except WebhookDeliveryError as exc:
            LOGGER.error("[Webhook] Failed to send %s: %s", event, exc.detail)
            return False
        LOGGER.info("[Webhook] Sent event: %s", event)
        return True

    async def _deliver(self, body: dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._url, json=body)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise WebhookDeliveryError(str(exc)) from exc

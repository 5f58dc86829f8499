"""ElevenLabs Conversational AI connectivity: signed URLs and the conversation socket."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
import websockets

from config.settings import Settings, get_settings
from relay.errors import UpstreamAuthError, UpstreamCallError

LOGGER = logging.getLogger(__name__)

SIGNED_URL_PATH = "/v1/convai/conversation/get_signed_url"


@dataclass(frozen=True)
class ElevenLabsConfig:
    api_key: str
    agent_id: str
    api_base_url: str = "https://api.elevenlabs.io"
    timeout_seconds: float = 10.0


def get_elevenlabs_config(settings: Settings | None = None) -> ElevenLabsConfig:
    settings = settings or get_settings()
    return ElevenLabsConfig(
        api_key=settings.elevenlabs_api_key,
        agent_id=settings.elevenlabs_agent_id,
        api_base_url=settings.elevenlabs_api_base_url.rstrip("/"),
        timeout_seconds=settings.signed_url_timeout_seconds,
    )


class ElevenLabsClient:
    """Fetches short-lived signed URLs so the API key never travels on the socket."""

    def __init__(self, config: ElevenLabsConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport

    async def get_signed_url(self) -> str:
        url = f"{self._config.api_base_url}{SIGNED_URL_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds, transport=self._transport) as client:
                response = await client.get(
                    url,
                    params={"agent_id": self._config.agent_id},
                    headers={"xi-api-key": self._config.api_key},
                )
        except httpx.HTTPError as exc:
            LOGGER.error("Signed URL request failed: %s", exc)
            raise UpstreamCallError(f"Signed URL request failed: {exc}") from exc

        if not response.is_success:
            LOGGER.error("Failed to get signed URL: %s %s", response.status_code, response.text)
            raise UpstreamAuthError(f"Failed to get signed URL: {response.status_code} {response.reason_phrase}")

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamAuthError("Signed URL response is not JSON") from exc
        signed_url = body.get("signed_url") if isinstance(body, dict) else None
        if not signed_url:
            raise UpstreamAuthError("Signed URL response missing signed_url")
        return str(signed_url)


async def connect_conversation(signed_url: str):
    """Open the conversation websocket for a signed URL."""

    return await websockets.connect(signed_url, ping_interval=20, ping_timeout=20)

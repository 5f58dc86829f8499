"""Domain-specific exceptions for call placement and session relaying.

These exceptions are safe to import from API layers without pulling in the
websocket or Twilio client stacks.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    status_code: int = 500
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "error": self.detail}


class ValidationError(RelayError):
    """A required call parameter is missing."""

    status_code = 400
    default_detail = "Phone number is required"

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.detail}


class UpstreamAuthError(RelayError):
    """The AI provider refused to issue a signed session URL."""

    default_detail = "Failed to get signed URL"


class UpstreamCallError(RelayError):
    """The telephony or AI provider rejected or failed a request."""

    default_detail = "Failed to initiate call"


class ProtocolParseError(RelayError):
    """A message on one of the live streams could not be decoded."""

    default_detail = "Malformed stream message"


class WebhookDeliveryError(RelayError):
    """A webhook notification could not be delivered."""

    default_detail = "Webhook delivery failed"

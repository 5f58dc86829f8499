"""Twilio Media Streams message envelopes.

Inbound messages are parsed into one dataclass per ``event`` value; anything
unrecognised becomes an :class:`UnknownTelephonyEvent` so callers can log it and
move on. Outbound helpers build the ``media`` and ``clear`` envelopes Twilio
expects on the same socket.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Union

from relay.errors import ProtocolParseError


@dataclass(frozen=True, slots=True)
class SessionParameters:
    """Values threaded from the outbound call request into the stream start."""

    prompt: str = ""
    first_message: str = ""
    webhook_url: str = ""
    external_id: str = ""

    @classmethod
    def from_custom_parameters(cls, params: dict[str, Any] | None) -> SessionParameters:
        params = params or {}
        return cls(
            prompt=str(params.get("prompt") or ""),
            first_message=str(params.get("firstMessage") or ""),
            webhook_url=str(params.get("webhook") or ""),
            external_id=str(params.get("id") or ""),
        )


@dataclass(frozen=True, slots=True)
class ConnectedEvent:
    protocol: str = ""


@dataclass(frozen=True, slots=True)
class StartEvent:
    stream_sid: str
    call_sid: str
    parameters: SessionParameters = field(default_factory=SessionParameters)


@dataclass(frozen=True, slots=True)
class MediaEvent:
    payload: str
    track: str | None = None


@dataclass(frozen=True, slots=True)
class StopEvent:
    stream_sid: str | None = None


@dataclass(frozen=True, slots=True)
class UnknownTelephonyEvent:
    event: str


TelephonyEvent = Union[ConnectedEvent, StartEvent, MediaEvent, StopEvent, UnknownTelephonyEvent]


def _load_json_object(text: str | bytes) -> dict[str, Any]:
    try:
        message = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolParseError(f"Invalid JSON from Twilio: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolParseError("Twilio message is not a JSON object")
    return message


def parse_twilio_ws_message(text: str | bytes) -> TelephonyEvent:
    message = _load_json_object(text)
    event = str(message.get("event") or "")

    if event == "connected":
        return ConnectedEvent(protocol=str(message.get("protocol") or ""))

    if event == "start":
        start = message.get("start") or {}
        stream_sid = start.get("streamSid") or message.get("streamSid")
        if not stream_sid:
            raise ProtocolParseError("Twilio start event without streamSid")
        return StartEvent(
            stream_sid=str(stream_sid),
            call_sid=str(start.get("callSid") or ""),
            parameters=SessionParameters.from_custom_parameters(start.get("customParameters")),
        )

    if event == "media":
        media = message.get("media") or {}
        payload = media.get("payload")
        if not isinstance(payload, str):
            raise ProtocolParseError("Twilio media event without payload")
        return MediaEvent(payload=payload, track=media.get("track"))

    if event == "stop":
        stream_sid = message.get("streamSid")
        return StopEvent(stream_sid=str(stream_sid) if stream_sid else None)

    return UnknownTelephonyEvent(event=event)


def normalize_audio_payload(payload_b64: str) -> str:
    """Round-trip a base64 audio payload, rejecting anything that is not base64."""

    try:
        raw = base64.b64decode(payload_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ProtocolParseError(f"Audio payload is not valid base64: {exc}") from exc
    return base64.b64encode(raw).decode("ascii")


def media_message(stream_sid: str, payload_b64: str) -> dict[str, Any]:
    return {"event": "media", "streamSid": stream_sid, "media": {"payload": payload_b64}}


def clear_message(stream_sid: str) -> dict[str, Any]:
    return {"event": "clear", "streamSid": stream_sid}

"""ElevenLabs Conversational AI websocket messages."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from relay.errors import ProtocolParseError

NO_TEXT = "no text"


@dataclass(frozen=True, slots=True)
class InitiationMetadata:
    conversation_id: str | None


@dataclass(frozen=True, slots=True)
class AudioMessage:
    payload: str | None


@dataclass(frozen=True, slots=True)
class InterruptionMessage:
    pass


@dataclass(frozen=True, slots=True)
class PingMessage:
    event_id: Any


@dataclass(frozen=True, slots=True)
class UserTranscript:
    text: str


@dataclass(frozen=True, slots=True)
class AgentResponse:
    text: str


@dataclass(frozen=True, slots=True)
class UnknownConversationMessage:
    type: str


ConversationMessage = Union[
    InitiationMetadata,
    AudioMessage,
    InterruptionMessage,
    PingMessage,
    UserTranscript,
    AgentResponse,
    UnknownConversationMessage,
]


def _section(message: dict[str, Any], key: str) -> dict[str, Any]:
    value = message.get(key)
    return value if isinstance(value, dict) else {}


def parse_conversation_message(text: str | bytes) -> ConversationMessage:
    try:
        message = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolParseError(f"Invalid JSON from ElevenLabs: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolParseError("ElevenLabs message is not a JSON object")

    msg_type = str(message.get("type") or "")

    if msg_type == "conversation_initiation_metadata":
        event = _section(message, "conversation_initiation_metadata_event")
        conversation_id = event.get("conversation_id")
        return InitiationMetadata(conversation_id=str(conversation_id) if conversation_id else None)

    if msg_type == "audio":
        # Two payload shapes are in the wild: audio.chunk and audio_event.audio_base_64.
        payload = _section(message, "audio").get("chunk") or _section(message, "audio_event").get(
            "audio_base_64"
        )
        return AudioMessage(payload=payload if isinstance(payload, str) and payload else None)

    if msg_type == "interruption":
        return InterruptionMessage()

    if msg_type == "ping":
        return PingMessage(event_id=_section(message, "ping_event").get("event_id"))

    if msg_type == "user_transcript":
        text = _section(message, "user_transcription_event").get("user_transcript")
        return UserTranscript(text=str(text) if text else NO_TEXT)

    if msg_type == "agent_response":
        text = _section(message, "agent_response_event").get("agent_response")
        return AgentResponse(text=str(text) if text else NO_TEXT)

    return UnknownConversationMessage(type=msg_type)


def initiation_message(prompt: str, first_message: str) -> dict[str, Any]:
    return {
        "type": "conversation_initiation_client_data",
        "conversation_config_override": {
            "agent": {
                "prompt": {"prompt": prompt},
                "first_message": first_message,
            },
        },
    }


def user_audio_message(payload_b64: str) -> dict[str, Any]:
    return {"user_audio_chunk": payload_b64}


def pong_message(event_id: Any) -> dict[str, Any]:
    return {"type": "pong", "event_id": event_id}

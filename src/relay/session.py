"""Per-call session state owned by a single SessionRelay."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from integrations.twilio_streaming import SessionParameters, StartEvent

Role = Literal["caller", "agent"]


class SessionState(str, Enum):
    AWAITING_START = "awaiting_start"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class TranscriptEntry:
    role: Role
    text: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "text": self.text}


@dataclass(slots=True)
class CallSession:
    state: SessionState = SessionState.AWAITING_START
    stream_sid: str | None = None
    call_sid: str | None = None
    conversation_id: str | None = None
    parameters: SessionParameters = field(default_factory=SessionParameters)
    transcript: list[TranscriptEntry] = field(default_factory=list)

    @property
    def external_id(self) -> str:
        return self.parameters.external_id

    @property
    def webhook_url(self) -> str:
        return self.parameters.webhook_url

    def start(self, event: StartEvent) -> None:
        self.stream_sid = event.stream_sid
        self.call_sid = event.call_sid
        self.parameters = event.parameters
        self.state = SessionState.ACTIVE

    def record(self, role: Role, text: str) -> TranscriptEntry:
        entry = TranscriptEntry(role=role, text=text)
        self.transcript.append(entry)
        return entry

    def history(self) -> list[dict[str, str]]:
        return [entry.as_dict() for entry in self.transcript]

    def call_ended_payload(self) -> dict[str, Any]:
        return {
            "externalId": self.external_id,
            "callSid": self.call_sid,
            "conversationId": self.conversation_id,
            "conversationHistory": self.history(),
        }

    def error_payload(self, error: str) -> dict[str, Any]:
        return {
            "externalId": self.external_id,
            "callSid": self.call_sid,
            "conversationId": self.conversation_id,
            "error": error,
            "conversationHistory": self.history(),
        }

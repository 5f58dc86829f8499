"""Bidirectional relay between one Twilio media stream and one ElevenLabs conversation.

The telephony socket is read by :meth:`SessionRelay.run` (the websocket route's
own coroutine); the conversation socket is read by a task started when Twilio
sends ``start``. Both run on the same event loop, so the session needs no locks.
Audio is never buffered: frames arriving before the other side is ready are
dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from integrations.elevenlabs_client import connect_conversation
from integrations.elevenlabs_protocol import (
    AgentResponse,
    AudioMessage,
    ConversationMessage,
    InitiationMetadata,
    InterruptionMessage,
    PingMessage,
    UserTranscript,
    initiation_message,
    parse_conversation_message,
    pong_message,
    user_audio_message,
)
from integrations.twilio_streaming import (
    ConnectedEvent,
    MediaEvent,
    StartEvent,
    StopEvent,
    TelephonyEvent,
    clear_message,
    media_message,
    normalize_audio_payload,
    parse_twilio_ws_message,
)
from integrations.webhook_notifier import WebhookNotifier
from relay.errors import ProtocolParseError, RelayError
from relay.session import CallSession, SessionState

LOGGER = logging.getLogger(__name__)


class SignedUrlFetcher(Protocol):
    async def get_signed_url(self) -> str: ...


ConversationConnector = Callable[[str], Awaitable[Any]]
NotifierFactory = Callable[[str], WebhookNotifier]


class SessionRelay:
    def __init__(
        self,
        telephony: WebSocket,
        fetcher: SignedUrlFetcher,
        *,
        connector: ConversationConnector = connect_conversation,
        notifier_factory: NotifierFactory = WebhookNotifier,
    ) -> None:
        self.session = CallSession()
        self._telephony = telephony
        self._fetcher = fetcher
        self._connector = connector
        self._notifier_factory = notifier_factory
        self._notifier: WebhookNotifier | None = None

        self._conversation: Any = None
        self._conversation_open = False
        self._conversation_task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._call_ended_sent = False

    @property
    def conversation_open(self) -> bool:
        return self._conversation_open

    async def run(self) -> None:
        """Consume the telephony socket until Twilio disconnects."""

        try:
            while True:
                message = await self._telephony.receive_text()
                await self.handle_telephony_message(message)
        except WebSocketDisconnect:
            LOGGER.info("[Twilio] Client disconnected (stream=%s)", self.session.stream_sid)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        self.session.state = SessionState.CLOSED
        await self.close_conversation()
        if self._conversation_task is not None:
            await self._conversation_task
        if self._pending:
            await asyncio.gather(*self._pending)

    async def close_conversation(self) -> None:
        if not self._conversation_open or self._conversation is None:
            return
        self._conversation_open = False
        await self._conversation.close()

    # Telephony side

    async def handle_telephony_message(self, text: str | bytes) -> None:
        try:
            event = parse_twilio_ws_message(text)
        except ProtocolParseError as exc:
            LOGGER.error("[Twilio] Error processing message: %s", exc.detail)
            return
        await self.handle_telephony_event(event)

    async def handle_telephony_event(self, event: TelephonyEvent) -> None:
        if isinstance(event, StartEvent):
            await self._on_start(event)
        elif isinstance(event, MediaEvent):
            await self._on_media(event)
        elif isinstance(event, StopEvent):
            await self._on_stop()
        elif isinstance(event, ConnectedEvent):
            LOGGER.info("[Twilio] Connected to outbound media stream (protocol=%s)", event.protocol)
        else:
            LOGGER.info("[Twilio] Unhandled event: %s", event.event)

    async def _on_start(self, event: StartEvent) -> None:
        if self.session.state is not SessionState.AWAITING_START:
            LOGGER.warning(
                "[Twilio] Ignoring start for %s; session already %s", event.stream_sid, self.session.state.value
            )
            return

        self.session.start(event)
        self._notifier = self._notifier_factory(self.session.webhook_url)
        LOGGER.info(
            "[Twilio] Stream started - StreamSid: %s, CallSid: %s, externalId: %s",
            event.stream_sid,
            event.call_sid,
            self.session.external_id,
        )
        self._conversation_task = asyncio.create_task(self._run_conversation())

    async def _on_media(self, event: MediaEvent) -> None:
        if self.session.state is not SessionState.ACTIVE or not self._conversation_open:
            return
        try:
            payload = normalize_audio_payload(event.payload)
        except ProtocolParseError as exc:
            LOGGER.error("[Twilio] Dropping media frame: %s", exc.detail)
            return
        await self._send_conversation(user_audio_message(payload))

    async def _on_stop(self) -> None:
        LOGGER.info("[Twilio] Stream %s ended", self.session.stream_sid)
        if self.session.state is SessionState.ACTIVE:
            self.session.state = SessionState.CLOSING
        await self.close_conversation()

    async def _send_telephony(self, message: dict[str, Any]) -> None:
        if (
            self._telephony.client_state is not WebSocketState.CONNECTED
            or self._telephony.application_state is not WebSocketState.CONNECTED
        ):
            LOGGER.debug("[Twilio] Socket closed; dropping %s", message.get("event"))
            return
        try:
            await self._telephony.send_text(json.dumps(message))
        except (WebSocketDisconnect, OSError) as exc:
            LOGGER.warning("[Twilio] Send failed: %s", exc)

    # Conversation side

    async def _run_conversation(self) -> None:
        try:
            signed_url = await self._fetcher.get_signed_url()
            conversation = await self._connector(signed_url)
        except RelayError as exc:
            LOGGER.error("[ElevenLabs] Setup error: %s", exc.detail)
            await self._notify("error", self.session.error_payload(exc.detail))
            return
        except (OSError, WebSocketException) as exc:
            LOGGER.error("[ElevenLabs] Setup error: %s", exc)
            await self._notify("error", self.session.error_payload(str(exc)))
            return

        self._conversation = conversation
        try:
            if self.session.state is SessionState.ACTIVE:
                prompt = self.session.parameters.prompt
                LOGGER.info("[ElevenLabs] Connected; sending initial config with prompt: %s", prompt)
                await conversation.send(
                    json.dumps(initiation_message(prompt, self.session.parameters.first_message))
                )
            # Twilio may have stopped while we were connecting.
            if self.session.state is SessionState.ACTIVE:
                self._conversation_open = True
            else:
                LOGGER.info("[ElevenLabs] Call ended during setup; closing conversation")
                await conversation.close()

            async for raw in conversation:
                await self.handle_conversation_message(raw)
        except ConnectionClosedError as exc:
            LOGGER.error("[ElevenLabs] WebSocket error: %s", exc)
            await self._notify("error", self.session.error_payload(str(exc)))
        except ConnectionClosed as exc:
            LOGGER.debug("[ElevenLabs] Closed during send: %s", exc)
        finally:
            self._conversation_open = False

        LOGGER.info("[ElevenLabs] Disconnected (conversation=%s)", self.session.conversation_id)
        await self._notify_call_ended()

    async def handle_conversation_message(self, raw: str | bytes) -> None:
        try:
            message = parse_conversation_message(raw)
        except ProtocolParseError as exc:
            LOGGER.error("[ElevenLabs] Error processing message: %s", exc.detail)
            self._notify_in_background("error", self.session.error_payload(exc.detail))
            return
        await self.handle_conversation_event(message)

    async def handle_conversation_event(self, message: ConversationMessage) -> None:
        session = self.session
        if isinstance(message, InitiationMetadata):
            LOGGER.info("[ElevenLabs] Received initiation metadata (conversation=%s)", message.conversation_id)
            if message.conversation_id:
                session.conversation_id = message.conversation_id
        elif isinstance(message, AudioMessage):
            if not session.stream_sid:
                LOGGER.info("[ElevenLabs] Received audio but no StreamSid yet")
                return
            if message.payload:
                await self._send_telephony(media_message(session.stream_sid, message.payload))
        elif isinstance(message, InterruptionMessage):
            if session.stream_sid:
                await self._send_telephony(clear_message(session.stream_sid))
        elif isinstance(message, PingMessage):
            if message.event_id is not None:
                await self._send_conversation(pong_message(message.event_id))
        elif isinstance(message, UserTranscript):
            session.record("caller", message.text)
            LOGGER.info("[User] %s", message.text)
        elif isinstance(message, AgentResponse):
            session.record("agent", message.text)
            LOGGER.info("[Agent] %s", message.text)
        else:
            LOGGER.debug("[ElevenLabs] Unhandled message type: %s", message.type)

    async def _send_conversation(self, message: dict[str, Any]) -> None:
        if self._conversation is None:
            return
        try:
            await self._conversation.send(json.dumps(message))
        except ConnectionClosed as exc:
            LOGGER.debug("[ElevenLabs] Send after close: %s", exc)

    # Notifications

    async def _notify(self, event: str, payload: dict[str, Any]) -> None:
        if self._notifier is None:
            return
        await self._notifier.notify(event, payload)

    def _notify_in_background(self, event: str, payload: dict[str, Any]) -> None:
        task = asyncio.create_task(self._notify(event, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify_call_ended(self) -> None:
        if self._call_ended_sent:
            return
        self._call_ended_sent = True
        await self._notify("call_ended", self.session.call_ended_payload())

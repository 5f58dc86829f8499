"""Twilio-facing HTTP and websocket endpoints.

This module provides:
- Outbound call initiation.
- The TwiML callback that attaches the call to the media-stream relay.
- The media-stream websocket itself.
- A log-and-acknowledge webhook receiver, handy as a local webhook target.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Query, Request, Response, WebSocket
from fastapi.responses import JSONResponse

from api.dependencies import get_notifier_factory, get_signed_url_fetcher, get_twilio_cfg, get_twilio_client
from api.schemas import OutboundCallRequest, OutboundCallResponse
from integrations.twilio_client import TwilioConfig, place_outbound_call
from relay.errors import ValidationError
from relay.relay import NotifierFactory, SessionRelay, SignedUrlFetcher

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["twilio"])

MEDIA_STREAM_PATH = "/outbound-media-stream"


def _public_base_url(request: Request, cfg: TwilioConfig) -> str:
    if cfg.public_base_url:
        return cfg.public_base_url
    # Twilio only talks to public https endpoints, whatever scheme reached us behind the proxy.
    host = request.headers.get("host") or request.url.netloc
    return f"https://{host}"


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _attr(value: str) -> str:
    # Values are escaped, so an input that already holds an entity (e.g. "&amp;") reaches the stream literally.
    return escape(value, {'"': "&quot;"})


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _twiml_connect_stream(*, stream_url: str, parameters: dict[str, str]) -> str:
    params = "".join(
        f"<Parameter name=\"{_attr(name)}\" value=\"{_attr(value)}\" />" for name, value in parameters.items()
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{_attr(stream_url)}\">"
        f"{params}"
        "</Stream>"
        "</Connect>"
        "</Response>"
    )


@router.post("/outbound-call", response_model=OutboundCallResponse)
async def outbound_call(
    request: Request,
    payload: OutboundCallRequest,
    twilio_client=Depends(get_twilio_client),
    cfg: TwilioConfig = Depends(get_twilio_cfg),
) -> OutboundCallResponse:
    if not payload.number:
        raise ValidationError("Phone number is required")

    query = urlencode(
        {
            "prompt": payload.prompt,
            "firstMessage": payload.first_message,
            "webhook": payload.webhook,
            "id": payload.external_id,
        }
    )
    twiml_url = f"{_public_base_url(request, cfg)}/outbound-call-twiml?{query}"

    call_sid = await place_outbound_call(twilio_client, cfg, to_number=payload.number, twiml_url=twiml_url)
    LOGGER.info("Outbound call %s placed to %s (externalId=%s)", call_sid, payload.number, payload.external_id)

    return OutboundCallResponse(external_id=payload.external_id, call_sid=call_sid)


@router.api_route("/outbound-call-twiml", methods=["GET", "POST"])
async def outbound_call_twiml(
    request: Request,
    prompt: str = "",
    first_message: str = Query(default="", alias="firstMessage"),
    webhook: str = "",
    external_id: str = Query(default="", alias="id"),
    cfg: TwilioConfig = Depends(get_twilio_cfg),
) -> Response:
    stream_url = _to_ws_url(_public_base_url(request, cfg)) + MEDIA_STREAM_PATH
    return _twiml_response(
        _twiml_connect_stream(
            stream_url=stream_url,
            parameters={
                "prompt": prompt,
                "firstMessage": first_message,
                "webhook": webhook,
                "id": external_id,
            },
        )
    )


@router.websocket(MEDIA_STREAM_PATH)
async def outbound_media_stream(
    websocket: WebSocket,
    fetcher: SignedUrlFetcher = Depends(get_signed_url_fetcher),
    notifier_factory: NotifierFactory = Depends(get_notifier_factory),
) -> None:
    await websocket.accept()
    LOGGER.info("[Server] Twilio connected to outbound media stream")
    relay = SessionRelay(websocket, fetcher, notifier_factory=notifier_factory)
    await relay.run()


@router.post("/webhook")
async def webhook_receiver(request: Request) -> JSONResponse:
    try:
        event = await request.json()
    except ValueError as exc:
        LOGGER.error("[Webhook] Error processing event: %s", exc)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    LOGGER.info("[Webhook] Received event: %s", event)
    return JSONResponse(content={"success": True})

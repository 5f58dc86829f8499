from __future__ import annotations

import threading
from urllib.parse import parse_qs, urlparse
from xml.etree import ElementTree

from fastapi.testclient import TestClient
from twilio.base.exceptions import TwilioRestException

from integrations.twilio_client import TwilioConfig
from relay.errors import UpstreamAuthError


class FailingTwilioCalls:
    def create(self, *, to: str, from_: str, url: str):
        raise TwilioRestException(status=400, uri="/Calls", msg="Invalid 'To' number")


class FailingTwilioClient:
    def __init__(self) -> None:
        self.calls = FailingTwilioCalls()


def test_outbound_call_places_call_with_defaults(client, twilio_client):
    resp = client.post("/outbound-call", json={"number": "+15551234567"})

    assert resp.status_code == 200
    body = resp.json()
    assert body == {"success": True, "message": "Call initiated", "externalId": "", "callSid": "CA123"}

    created = twilio_client.calls.created
    assert len(created) == 1
    assert created[0]["to"] == "+15551234567"
    assert created[0]["from_"] == "+15005550006"

    callback = urlparse(created[0]["url"])
    assert callback.scheme == "https"
    assert callback.path == "/outbound-call-twiml"
    query = parse_qs(callback.query, keep_blank_values=True)
    assert query == {"prompt": [""], "firstMessage": [""], "webhook": [""], "id": [""]}


def test_outbound_call_threads_session_parameters_into_callback(client, twilio_client):
    resp = client.post(
        "/outbound-call",
        json={
            "number": "+15551234567",
            "prompt": "You are a polite scheduler & assistant",
            "firstMessage": "Hi there!",
            "webhook": "https://x/hook",
            "externalId": "lead-42",
        },
    )

    assert resp.status_code == 200
    assert resp.json()["externalId"] == "lead-42"

    query = parse_qs(urlparse(twilio_client.calls.created[0]["url"]).query)
    assert query["prompt"] == ["You are a polite scheduler & assistant"]
    assert query["firstMessage"] == ["Hi there!"]
    assert query["webhook"] == ["https://x/hook"]
    assert query["id"] == ["lead-42"]


def test_outbound_call_without_number_returns_400(client, twilio_client):
    resp = client.post("/outbound-call", json={"prompt": "hello"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Phone number is required"}
    assert twilio_client.calls.created == []


def test_outbound_call_provider_failure_returns_500(app):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_twilio_client] = lambda: FailingTwilioClient()
    try:
        with TestClient(app) as client:
            resp = client.post("/outbound-call", json={"number": "+15551234567"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Failed to initiate call"}


def test_outbound_call_prefers_configured_public_base_url(app, twilio_client):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_twilio_client] = lambda: twilio_client
    app.dependency_overrides[deps.get_twilio_cfg] = lambda: TwilioConfig(
        account_sid="AC123",
        auth_token="token",
        from_number="+15005550006",
        public_base_url="https://relay.example.com",
    )
    try:
        with TestClient(app) as client:
            resp = client.post("/outbound-call", json={"number": "+15551234567"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 200
    assert twilio_client.calls.created[0]["url"].startswith("https://relay.example.com/outbound-call-twiml?")


def _stream_element(xml: str) -> ElementTree.Element:
    root = ElementTree.fromstring(xml)
    assert root.tag == "Response"
    stream = root.find("./Connect/Stream")
    assert stream is not None
    return stream


def test_twiml_embeds_stream_parameters(client):
    resp = client.get(
        "/outbound-call-twiml",
        params={"prompt": "Be brief", "firstMessage": "Hello", "webhook": "https://x/hook", "id": "lead-42"},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/xml")

    stream = _stream_element(resp.text)
    assert stream.get("url") == "wss://testserver/outbound-media-stream"
    params = {p.get("name"): p.get("value") for p in stream.findall("Parameter")}
    assert params == {"prompt": "Be brief", "firstMessage": "Hello", "webhook": "https://x/hook", "id": "lead-42"}


def test_twiml_accepts_post_and_defaults_missing_values(client):
    resp = client.post("/outbound-call-twiml")

    assert resp.status_code == 200
    params = {p.get("name"): p.get("value") for p in _stream_element(resp.text).findall("Parameter")}
    assert params == {"prompt": "", "firstMessage": "", "webhook": "", "id": ""}


def test_twiml_escapes_markup_in_values(client):
    prompt = 'Say "yes" & <pause>'
    resp = client.get("/outbound-call-twiml", params={"prompt": prompt})

    assert resp.status_code == 200
    assert "<pause>" not in resp.text
    params = {p.get("name"): p.get("value") for p in _stream_element(resp.text).findall("Parameter")}
    assert params["prompt"] == prompt


def test_webhook_receiver_acknowledges_json(client):
    resp = client.post("/webhook", json={"event": "call_ended", "externalId": "lead-42"})

    assert resp.status_code == 200
    assert resp.json() == {"success": True}


def test_webhook_receiver_rejects_malformed_body(client):
    resp = client.post("/webhook", content=b"{not json", headers={"content-type": "application/json"})

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert body["error"]


def test_twiml_keeps_existing_entities_literal(client):
    resp = client.get("/outbound-call-twiml", params={"prompt": "Tom &amp; Jerry"})

    params = {p.get("name"): p.get("value") for p in _stream_element(resp.text).findall("Parameter")}
    assert params["prompt"] == "Tom &amp; Jerry"


class FailingFetcher:
    async def get_signed_url(self) -> str:
        raise UpstreamAuthError("Failed to get signed URL: 401 Unauthorized")


class RecordingNotifier:
    def __init__(self) -> None:
        self.urls: list[str] = []
        self.events: list[tuple[str, dict]] = []
        self.errored = threading.Event()

    def __call__(self, url: str) -> RecordingNotifier:
        self.urls.append(url)
        return self

    async def notify(self, event: str, payload: dict) -> bool:
        self.events.append((event, payload))
        if event == "error":
            self.errored.set()
        return True


def test_media_stream_socket_reports_setup_failure_to_webhook(app):
    import api.dependencies as deps

    notifier = RecordingNotifier()
    app.dependency_overrides[deps.get_signed_url_fetcher] = lambda: FailingFetcher()
    app.dependency_overrides[deps.get_notifier_factory] = lambda: notifier
    try:
        with TestClient(app) as client:
            with client.websocket_connect("/outbound-media-stream") as ws:
                ws.send_json({"event": "connected", "protocol": "Call", "version": "1.0.0"})
                ws.send_json(
                    {
                        "event": "start",
                        "streamSid": "MZ1",
                        "start": {
                            "streamSid": "MZ1",
                            "callSid": "CA1",
                            "customParameters": {"webhook": "https://x/hook", "id": "lead-42"},
                        },
                    }
                )
                assert notifier.errored.wait(timeout=5)
                ws.send_json({"event": "stop", "streamSid": "MZ1"})
    finally:
        app.dependency_overrides.clear()

    assert notifier.urls == ["https://x/hook"]
    event, payload = notifier.events[0]
    assert event == "error"
    assert payload["externalId"] == "lead-42"
    assert payload["callSid"] == "CA1"
    assert payload["error"] == "Failed to get signed URL: 401 Unauthorized"

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

TEST_ENV = {
    "ELEVENLABS_API_KEY": "xi-test-key",
    "ELEVENLABS_AGENT_ID": "agent-123",
    "TWILIO_ACCOUNT_SID": "AC123",
    "TWILIO_AUTH_TOKEN": "token",
    "TWILIO_PHONE_NUMBER": "+15005550006",
}

# Must be set before importing modules that read settings at import time.
for _key, _value in TEST_ENV.items():
    os.environ.setdefault(_key, _value)


class FakeTwilioCall:
    def __init__(self, sid: str) -> None:
        self.sid = sid


class FakeTwilioCalls:
    def __init__(self) -> None:
        self.created: list[dict] = []

    def create(self, *, to: str, from_: str, url: str):
        self.created.append({"to": to, "from_": from_, "url": url})
        return FakeTwilioCall("CA123")


class FakeTwilioClient:
    def __init__(self) -> None:
        self.calls = FakeTwilioCalls()


@pytest.fixture(scope="session")
def app():
    import importlib

    from config.settings import get_settings

    get_settings.cache_clear()
    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def twilio_client() -> FakeTwilioClient:
    return FakeTwilioClient()


@pytest.fixture()
def client(app, twilio_client):
    # Override provider dependencies so tests never reach Twilio.
    import api.dependencies as deps

    app.dependency_overrides[deps.get_twilio_client] = lambda: twilio_client

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()

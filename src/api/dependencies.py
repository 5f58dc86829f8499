"""Shared FastAPI dependencies.

Separated so tests can override provider clients without importing the routes.
"""

from __future__ import annotations

from functools import lru_cache, partial

from config.settings import get_settings
from integrations.elevenlabs_client import ElevenLabsClient, get_elevenlabs_config
from integrations.twilio_client import TwilioConfig, build_twilio_client, get_twilio_config
from integrations.webhook_notifier import WebhookNotifier
from relay.relay import NotifierFactory, SignedUrlFetcher


def get_twilio_cfg() -> TwilioConfig:
    return get_twilio_config()


@lru_cache(maxsize=1)
def _twilio_client_factory():
    return build_twilio_client(get_twilio_config())


def get_twilio_client():
    return _twilio_client_factory()


def get_signed_url_fetcher() -> SignedUrlFetcher:
    return ElevenLabsClient(get_elevenlabs_config())


def get_notifier_factory() -> NotifierFactory:
    return partial(WebhookNotifier, timeout=get_settings().webhook_timeout_seconds)

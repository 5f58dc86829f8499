from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi.concurrency import run_in_threadpool
from twilio.base.exceptions import TwilioRestException

from config.settings import Settings, get_settings
from relay.errors import UpstreamCallError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str
    public_base_url: str | None = None


def get_twilio_config(settings: Settings | None = None) -> TwilioConfig:
    settings = settings or get_settings()
    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_phone_number,
        public_base_url=settings.public_base_url,
    )


def build_twilio_client(cfg: TwilioConfig | None = None):
    from twilio.rest import Client

    cfg = cfg or get_twilio_config()
    return Client(cfg.account_sid, cfg.auth_token)


async def place_outbound_call(client, cfg: TwilioConfig, *, to_number: str, twiml_url: str) -> str:
    """Originate a call whose call-control is fetched from ``twiml_url``.

    The Twilio SDK is synchronous, so the request runs in the thread pool.
    Returns the call SID.
    """

    try:
        call = await run_in_threadpool(
            client.calls.create,
            from_=cfg.from_number,
            to=to_number,
            url=twiml_url,
        )
    except (TwilioRestException, OSError) as exc:
        LOGGER.error("Error initiating outbound call to %s: %s", to_number, exc)
        raise UpstreamCallError() from exc
    return str(call.sid)

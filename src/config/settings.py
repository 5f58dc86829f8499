"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration.

    The provider credentials have no defaults: constructing the settings without
    them raises, which stops the process before it accepts any call.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # ElevenLabs Conversational AI
    elevenlabs_api_key: str = Field(min_length=1)
    elevenlabs_agent_id: str = Field(min_length=1)
    elevenlabs_api_base_url: str = Field(default="https://api.elevenlabs.io")
    signed_url_timeout_seconds: float = Field(default=10.0, gt=0)

    # Twilio (Voice)
    twilio_account_sid: str = Field(min_length=1)
    twilio_auth_token: str = Field(min_length=1)
    twilio_phone_number: str = Field(min_length=1, description="E.164, e.g. +1555...")
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio callbacks (e.g. https://<ngrok>.ngrok-free.app).",
    )

    # Outbound webhook notifications
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str | None) -> str | None:
        if not value:
            return None
        return value.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()

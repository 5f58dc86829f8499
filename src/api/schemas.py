"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OutboundCallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    number: str | None = Field(default=None, description="E.164 destination, e.g. +1555...")
    prompt: str = ""
    first_message: str = Field(default="", alias="firstMessage")
    webhook: str = ""
    external_id: str = Field(default="", alias="externalId")

    @field_validator("prompt", "first_message", "webhook", "external_id", mode="before")
    @classmethod
    def none_as_empty(cls, value: object) -> object:
        return "" if value is None else value


class OutboundCallResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Call initiated"
    external_id: str = Field(alias="externalId")
    call_sid: str = Field(alias="callSid")

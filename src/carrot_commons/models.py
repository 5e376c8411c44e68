"""Pydantic models for uploader, gateway and pinning service payloads."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CidPayload(BaseModel):
    """``{"cid": ...}``: the uploader's request body and its echoed response."""

    cid: str

    model_config = {"extra": "ignore"}


class PinResponse(BaseModel):
    """Gateway POST /api/v0/pin/add response."""

    pins: list[str] = Field(alias="Pins")

    model_config = {"extra": "ignore"}


class CarUploadResponse(BaseModel):
    """Third-party pinning service POST /car response."""

    cid: str

    model_config = {"extra": "ignore"}

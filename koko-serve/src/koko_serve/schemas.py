"""Pydantic schemas for the OpenAI-compatible speech API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

ResponseFormat = Literal["wav", "pcm"]


class SpeechRequest(BaseModel):
    """Request body for POST /v1/audio/speech."""

    model: str = Field("kokoro", description="Accepted for compatibility; one model is served.")
    input: str = Field(..., min_length=1, max_length=100000)
    voice: str | None = Field(
        None,
        description="Style name or blend such as 'af_sarah.4+af_nicole.6'. Server default if omitted.",
    )
    speed: float | None = Field(None, gt=0.0, le=4.0, description="Server default if omitted.")
    response_format: ResponseFormat = "wav"
    initial_silence: int | None = Field(None, ge=0, le=256)


class VoicesResponse(BaseModel):
    """Response for GET /v1/audio/voices."""

    voices: list[str] = Field(default_factory=list)


class ModelInfo(BaseModel):
    id: str
    object: str = "model"
    created: int = 0
    owned_by: str = "koko"


class ModelsResponse(BaseModel):
    """Response for GET /v1/models."""

    object: str = "list"
    data: list[ModelInfo] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    models_loaded: bool = False
    instances: int = 0
    styles_count: int = 0


class ErrorDetail(BaseModel):
    message: str
    type: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """OpenAI-style error envelope."""

    error: ErrorDetail

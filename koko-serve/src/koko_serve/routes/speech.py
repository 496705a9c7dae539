"""POST /v1/audio/speech, GET /v1/audio/voices and GET /v1/models."""

from __future__ import annotations

import dataclasses
import logging
import time

from fastapi import APIRouter
from fastapi.responses import Response

from koko_core.audio import encode_pcm16, encode_wav
from koko_core.constants import SAMPLE_RATE
from koko_serve.schemas import ModelInfo, ModelsResponse, SpeechRequest, VoicesResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_MEDIA_TYPES = {
    "wav": "audio/wav",
    "pcm": f"audio/L16; rate={SAMPLE_RATE}; channels=1",
}


@router.post("/v1/audio/speech")
async def create_speech(req: SpeechRequest) -> Response:
    from koko_serve import app as state

    engine = state.get_engine()
    defaults = state._defaults
    options = dataclasses.replace(
        defaults,
        style=req.voice or defaults.style,
        speed=req.speed if req.speed is not None else defaults.speed,
        initial_silence=(
            req.initial_silence if req.initial_silence is not None else defaults.initial_silence
        ),
        mono=True,
    )

    t0 = time.perf_counter()
    audio = await engine.synthesize_async(req.input, options, fan_out=state._fan_out)
    elapsed = time.perf_counter() - t0
    logger.info(
        "Synthesized %d chars -> %.2fs audio in %.2fs (voice=%s)",
        len(req.input), audio.shape[0] / SAMPLE_RATE, elapsed, options.style,
    )

    if req.response_format == "pcm":
        body = encode_pcm16(audio)
    else:
        body = encode_wav(audio, mono=True)
    return Response(content=body, media_type=_MEDIA_TYPES[req.response_format])


@router.get("/v1/audio/voices", response_model=VoicesResponse)
async def list_voices() -> VoicesResponse:
    from koko_serve.app import get_engine

    return VoicesResponse(voices=get_engine().styles.names())


@router.get("/v1/models", response_model=ModelsResponse)
async def list_models() -> ModelsResponse:
    from koko_serve.app import MODEL_ID

    return ModelsResponse(data=[ModelInfo(id=MODEL_ID)])

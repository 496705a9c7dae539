"""FastAPI application for the koko TTS server.

Endpoints:
- POST /v1/audio/speech   Synthesize text (OpenAI-compatible), WAV or PCM
- GET  /v1/audio/voices   List style names
- GET  /v1/models         List served models
- GET  /health            Health check
"""

from __future__ import annotations

import logging
import re

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from koko_core.errors import KokoError
from koko_core.types import SynthesisOptions
from koko_serve.routes import health, speech
from koko_serve.schemas import ErrorDetail, ErrorResponse
from koko_serve.tts_engine import TTSEngine

logger = logging.getLogger(__name__)

app = FastAPI(
    title="koko TTS Server",
    description="OpenAI-compatible text-to-speech API over Kokoro ONNX.",
    version="0.1.0",
)
app.include_router(speech.router)
app.include_router(health.router)

# Global state (initialized by init_app before serving)
_engine: TTSEngine | None = None
_defaults: SynthesisOptions = SynthesisOptions()
_fan_out: bool = False

MODEL_ID = "kokoro"


def get_engine() -> TTSEngine:
    if _engine is None:
        raise HTTPException(status_code=503, detail="TTS engine not initialized.")
    return _engine


def init_app(
    engine: TTSEngine,
    defaults: SynthesisOptions | None = None,
    fan_out: bool = False,
) -> None:
    """Install *engine* for request handling.

    Called by the CLI (or a test) before serving.
    """
    global _engine, _defaults, _fan_out

    _engine = engine
    _defaults = defaults or SynthesisOptions()
    _fan_out = fan_out
    logger.info(
        "Server ready: %d instance(s), %d style(s), fan-out %s",
        engine.pool.size, len(engine.styles), "on" if fan_out else "off",
    )


def reset_app() -> None:
    global _engine, _defaults, _fan_out

    _engine = None
    _defaults = SynthesisOptions()
    _fan_out = False


def _error_type(exc: KokoError) -> str:
    # UnknownStyleError -> unknown_style_error
    return re.sub(r"(?<!^)(?=[A-Z])", "_", type(exc).__name__).lower()


@app.exception_handler(KokoError)
async def koko_error_handler(request: Request, exc: KokoError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    body = ErrorResponse(error=ErrorDetail(message=str(exc), type=_error_type(exc)))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())

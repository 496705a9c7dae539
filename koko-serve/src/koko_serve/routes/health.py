"""GET /health endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from koko_serve.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    from koko_serve.app import _engine

    engine = _engine
    return HealthResponse(
        status="ok",
        models_loaded=engine is not None,
        instances=engine.pool.size if engine else 0,
        styles_count=len(engine.styles) if engine else 0,
    )

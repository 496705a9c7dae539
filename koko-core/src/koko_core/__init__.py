"""koko-core: shared constants, error taxonomy, audio assembly, execution backends."""

from koko_core.constants import (
    DEFAULT_LANGUAGE,
    DEFAULT_STYLE,
    ENGINE_CONTEXT_TOKENS,
    MAX_CHUNK_TOKENS,
    SAMPLE_RATE,
    SILENCE_TOKEN_ID,
    STYLE_DIM,
)
from koko_core.device import calculate_optimal_threads, get_backend
from koko_core.errors import (
    ChunkInferenceFailedError,
    KokoError,
    ModelLoadFailedError,
    PhonemizeFailedError,
    StyleDataMissingError,
    UnknownStyleError,
)

__all__ = [
    "DEFAULT_LANGUAGE",
    "DEFAULT_STYLE",
    "ENGINE_CONTEXT_TOKENS",
    "MAX_CHUNK_TOKENS",
    "SAMPLE_RATE",
    "SILENCE_TOKEN_ID",
    "STYLE_DIM",
    "ChunkInferenceFailedError",
    "KokoError",
    "ModelLoadFailedError",
    "PhonemizeFailedError",
    "StyleDataMissingError",
    "UnknownStyleError",
    "calculate_optimal_threads",
    "get_backend",
]

"""Shared data types for the koko pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from koko_core.constants import (
    DEFAULT_LANGUAGE,
    DEFAULT_STYLE,
    PAD_TOKEN_ID,
    SAMPLE_RATE,
    SILENCE_TOKEN_ID,
)


@dataclass(frozen=True, eq=False)
class InferenceRequest:
    """One engine call: tokens + style vector + speed.

    ``style`` has shape ``[1, 256]``. ``initial_silence`` is a count of
    silence tokens prepended to ``tokens`` before the call.
    """

    tokens: tuple[int, ...]
    style: np.ndarray
    speed: float = 1.0
    initial_silence: int | None = None
    text: str = ""

    def input_ids(self) -> np.ndarray:
        """Token IDs as the engine sees them: ``[1, L]`` int64, pad-wrapped."""
        silence = (SILENCE_TOKEN_ID,) * (self.initial_silence or 0)
        ids = (PAD_TOKEN_ID, *silence, *self.tokens, PAD_TOKEN_ID)
        return np.asarray([ids], dtype=np.int64)


@dataclass(frozen=True)
class SynthesisOptions:
    """Per-request knobs shared by the CLI modes and the HTTP server."""

    language: str = DEFAULT_LANGUAGE
    style: str = DEFAULT_STYLE
    speed: float = 1.0
    initial_silence: int | None = None
    mono: bool = False
    phase_shift: float = 0.0

    @property
    def channels(self) -> int:
        return 1 if self.mono else 2


@dataclass
class SynthesisMetrics:
    """Timing for one synthesized text unit."""

    chunk_count: int = 0
    phonemize_ms: float = 0.0
    inference_ms: float = 0.0
    total_ms: float = 0.0
    output_samples: int = 0
    per_chunk_ms: list[float] = field(default_factory=list)

    @property
    def output_duration_sec(self) -> float:
        return self.output_samples / SAMPLE_RATE

    @property
    def rtf(self) -> float:
        """Real-time factor: processing time / audio duration. <1 is faster than real time."""
        if self.output_samples <= 0:
            return 0.0
        return (self.total_ms / 1000.0) / self.output_duration_sec

"""Audio assembly: chunk concatenation, stereo synthesis and WAV sinks.

All buffers are float32 mono at ``SAMPLE_RATE`` until the output stage, where
a second channel is either duplicated or derived with a first-order
all-pass style filter::

    y[n] = k * x[n] + y[n-1] - k * x[n-1],    y[-1] = x[-1] = 0

Two sinks are provided:

- :func:`write_wav` / :func:`encode_wav` finalize a complete container once
  every chunk of a request is available.
- :class:`StreamSink` writes a header once per stream and then appends raw
  interleaved float32 samples, flushing after every block.
"""

from __future__ import annotations

import io
import logging
import os
import struct
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

import numpy as np
import soundfile as sf

from koko_core.constants import SAMPLE_RATE

logger = logging.getLogger(__name__)

_WAVE_FORMAT_IEEE_FLOAT = 3
_BYTES_PER_SAMPLE = 4
# RIFF/data sizes for a stream whose length is unknown up front
_UNKNOWN_SIZE = 0xFFFFFFFF


def concatenate_chunks(chunks: Sequence[np.ndarray]) -> np.ndarray:
    """Join per-chunk buffers in order with no crossfade or gap."""
    if not chunks:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate([np.asarray(c, dtype=np.float32).reshape(-1) for c in chunks])


def apply_phase_shift(audio: np.ndarray, phase_shift: float) -> np.ndarray:
    """Run *audio* through the all-pass recurrence with coefficient *phase_shift*.

    A zero coefficient means "no widening" and returns an unfiltered copy, so
    the right channel matches plain duplication bit for bit.
    """
    _check_phase_shift(phase_shift)
    x = np.asarray(audio, dtype=np.float32).reshape(-1)
    if phase_shift == 0.0 or x.size == 0:
        return x.copy()

    kx = np.float32(phase_shift) * x
    y = np.empty_like(x)
    # Sample by sample in float32, rounding after every step
    prev_y = np.float32(0.0)
    prev_kx = np.float32(0.0)
    for n, kxn in enumerate(kx):
        prev_y = kxn + prev_y - prev_kx
        y[n] = prev_y
        prev_kx = kxn
    return y


def to_channels(audio: np.ndarray, mono: bool = False, phase_shift: float = 0.0) -> np.ndarray:
    """Lay out *audio* for output.

    Returns ``[N]`` for mono, ``[N, 2]`` for stereo. The left channel is always
    the original signal.
    """
    left = np.asarray(audio, dtype=np.float32).reshape(-1)
    if mono:
        return left
    if phase_shift == 0.0:
        right = left
    else:
        right = apply_phase_shift(left, phase_shift)
    return np.stack([left, right], axis=1)


def write_wav(
    path: str | Path,
    audio: np.ndarray,
    mono: bool = False,
    phase_shift: float = 0.0,
    sample_rate: int = SAMPLE_RATE,
) -> Path:
    """Write a finished 32-bit float WAV file.

    The file is written next to *path* and moved into place only after the
    write succeeds, so a failure never leaves a truncated file behind.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = to_channels(audio, mono=mono, phase_shift=phase_shift)
    partial = path.with_name(path.name + ".partial")
    try:
        sf.write(str(partial), data, sample_rate, format="WAV", subtype="FLOAT")
        os.replace(partial, path)
    finally:
        if partial.exists():
            partial.unlink()
    logger.info("Audio saved to %s", path)
    return path


def encode_wav(
    audio: np.ndarray,
    mono: bool = False,
    phase_shift: float = 0.0,
    sample_rate: int = SAMPLE_RATE,
) -> bytes:
    """Encode *audio* as an in-memory 32-bit float WAV container."""
    buf = io.BytesIO()
    data = to_channels(audio, mono=mono, phase_shift=phase_shift)
    sf.write(buf, data, sample_rate, format="WAV", subtype="FLOAT")
    return buf.getvalue()


def encode_pcm16(audio: np.ndarray) -> bytes:
    """Raw little-endian 16-bit mono PCM."""
    clipped = np.clip(np.asarray(audio, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def stream_header(channels: int = 1, sample_rate: int = SAMPLE_RATE) -> bytes:
    """WAV header for an open-ended float32 stream."""
    block_align = channels * _BYTES_PER_SAMPLE
    return b"".join([
        b"RIFF",
        struct.pack("<I", _UNKNOWN_SIZE),
        b"WAVE",
        b"fmt ",
        struct.pack("<I", 16),  # chunk size
        struct.pack("<H", _WAVE_FORMAT_IEEE_FLOAT),
        struct.pack("<H", channels),
        struct.pack("<I", sample_rate),
        struct.pack("<I", sample_rate * block_align),  # byte rate
        struct.pack("<H", block_align),
        struct.pack("<H", _BYTES_PER_SAMPLE * 8),  # bits per sample
        b"data",
        struct.pack("<I", _UNKNOWN_SIZE),
    ])


class StreamSink:
    """Incremental WAV writer over a binary pipe.

    The header goes out once, on the first call to :meth:`write_header` or
    :meth:`write_block`. Every block is flushed immediately so a downstream
    player sees audio as soon as a line is synthesized.
    """

    def __init__(
        self,
        out: BinaryIO,
        mono: bool = True,
        phase_shift: float = 0.0,
        sample_rate: int = SAMPLE_RATE,
    ) -> None:
        _check_phase_shift(phase_shift)
        self._out = out
        self.mono = mono
        self.phase_shift = phase_shift
        self.sample_rate = sample_rate
        self._header_written = False
        self.blocks_written = 0

    @property
    def channels(self) -> int:
        return 1 if self.mono else 2

    def write_header(self) -> None:
        if self._header_written:
            return
        self._out.write(stream_header(self.channels, self.sample_rate))
        self._out.flush()
        self._header_written = True

    def write_block(self, audio: np.ndarray) -> None:
        self.write_header()
        data = to_channels(audio, mono=self.mono, phase_shift=self.phase_shift)
        self._out.write(np.ascontiguousarray(data, dtype="<f4").tobytes())
        self._out.flush()
        self.blocks_written += 1


def _check_phase_shift(phase_shift: float) -> None:
    if not -1.0 <= phase_shift <= 1.0:
        raise ValueError(f"phase_shift must be within [-1, 1], got {phase_shift}")

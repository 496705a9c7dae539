"""Line-by-line streaming synthesis to a WAV pipe.

Each non-empty input line is one text unit. Lines are synthesized as they
arrive (up to ``max_in_flight`` at once) and written to the sink in input
order. A line that fails is logged and dropped; the stream continues, and
audio already flushed is never rolled back.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TextIO

import numpy as np

from koko_core.audio import StreamSink
from koko_core.errors import KokoError
from koko_core.types import SynthesisOptions
from koko_serve.pool import Resequencer
from koko_serve.tts_engine import TTSEngine

logger = logging.getLogger(__name__)


@dataclass
class StreamStats:
    lines: int = 0
    written: int = 0
    failed: int = 0


async def read_lines(stream: TextIO | None = None) -> AsyncIterator[str]:
    """Yield lines from a blocking text stream without blocking the loop."""
    stream = stream or sys.stdin
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, stream.readline)
        if not line:
            return
        yield line


async def run_stream(
    engine: TTSEngine,
    lines: AsyncIterator[str],
    sink: StreamSink,
    options: SynthesisOptions,
    max_in_flight: int | None = None,
) -> StreamStats:
    """Synthesize every line of *lines* into *sink*.

    The stream header is written before the first line is read.
    """
    limit = max_in_flight or max(1, engine.pool.size)
    stats = StreamStats()
    resequencer: Resequencer[np.ndarray | None] = Resequencer()
    pending: dict[asyncio.Future, int] = {}

    def emit(index: int, audio: np.ndarray | None) -> None:
        for block in resequencer.push(index, audio):
            if block is None:
                continue
            sink.write_block(block)
            stats.written += 1

    async def drain(return_when: str) -> None:
        done, _ = await asyncio.wait(pending, return_when=return_when)
        for future in sorted(done, key=pending.__getitem__):
            index = pending.pop(future)
            emit(index, _line_result(future, index))

    sink.write_header()

    async for line in lines:
        text = line.strip()
        if not text:
            continue
        index = stats.lines
        stats.lines += 1
        try:
            future = engine.submit(text, options)
        except KokoError as e:
            logger.error("Line %d failed: %s", index, e)
            emit(index, None)
            continue
        pending[asyncio.wrap_future(future)] = index

        if len(pending) >= limit:
            await drain(asyncio.FIRST_COMPLETED)

    while pending:
        await drain(asyncio.ALL_COMPLETED)

    stats.failed = stats.lines - stats.written
    logger.info("Stream finished: %d line(s), %d failed", stats.lines, stats.failed)
    return stats


def _line_result(future: asyncio.Future, index: int) -> np.ndarray | None:
    error = future.exception()
    if error is None:
        return future.result()
    if isinstance(error, KokoError):
        logger.error("Line %d failed: %s", index, error)
        return None
    raise error

"""Text-to-speech pipeline over an :class:`InferencePool`.

For one text unit the engine resolves the style, plans token-budgeted chunks,
phonemizes and tokenizes each chunk, runs inference, and concatenates the
chunk audio in order. By default a whole text unit runs on one instance;
:meth:`TTSEngine.synthesize_fan_out` spreads the chunks of a single text over
every instance and resequences them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import Future, as_completed
from functools import partial

import numpy as np

from koko_core.audio import concatenate_chunks
from koko_core.errors import ChunkInferenceFailedError
from koko_core.types import InferenceRequest, SynthesisMetrics, SynthesisOptions
from koko_data import g2p
from koko_data.g2p import PhonemizeFn
from koko_data.text_chunker import ChunkPlanner
from koko_data.text_tokenizer import Tokenizer
from koko_serve.pool import InferencePool, Resequencer
from koko_serve.style_resolver import StyleTable

logger = logging.getLogger(__name__)


class TTSEngine:
    """End-to-end synthesis for one model, one style table and one pool.

    Args:
        pool: Pool whose instances expose ``infer(InferenceRequest)``.
        styles: Shared, read-only style table.
        phonemize: ``(text, language) -> phonemes``; espeak by default.
        tokenizer: Phoneme tokenizer.
        planner: Chunk planner; built from *phonemize* and *tokenizer* if omitted.
    """

    def __init__(
        self,
        pool: InferencePool,
        styles: StyleTable,
        phonemize: PhonemizeFn | None = None,
        tokenizer: Tokenizer | None = None,
        planner: ChunkPlanner | None = None,
    ) -> None:
        self.pool = pool
        self.styles = styles
        self._phonemize = phonemize or g2p.phonemize
        self.tokenizer = tokenizer or Tokenizer()
        self.planner = planner or ChunkPlanner(self._phonemize, self.tokenizer)

        # Last metrics (accessible after a synthesis call completes)
        self.last_metrics: SynthesisMetrics | None = None

    def close(self) -> None:
        self.pool.close()

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def prepare(
        self,
        text: str,
        options: SynthesisOptions,
        style: np.ndarray | None = None,
        metrics: SynthesisMetrics | None = None,
    ) -> list[InferenceRequest]:
        """Plan *text* into one :class:`InferenceRequest` per chunk."""
        if style is None:
            style = self.styles.resolve(options.style)

        t0 = time.perf_counter()
        requests: list[InferenceRequest] = []
        for chunk in self.planner.plan(text, options.language):
            tokens = self.tokenizer.encode(self._phonemize(chunk, options.language))
            if not tokens:
                logger.debug("Chunk %r has no known phonemes; skipped", chunk)
                continue
            requests.append(InferenceRequest(
                tokens=tuple(tokens),
                style=style,
                speed=options.speed,
                initial_silence=options.initial_silence,
                text=chunk,
            ))
        if metrics is not None:
            metrics.phonemize_ms += (time.perf_counter() - t0) * 1000
            metrics.chunk_count = len(requests)
        return requests

    # ------------------------------------------------------------------
    # Whole text on one instance
    # ------------------------------------------------------------------

    def submit(self, text: str, options: SynthesisOptions) -> Future[np.ndarray]:
        """Queue *text* for synthesis on a single instance.

        The style is resolved before anything is queued, so style errors
        raise here and no inference call is made.
        """
        style = self.styles.resolve(options.style)
        return self.pool.submit(partial(self._render, text=text, options=options, style=style))

    def synthesize(self, text: str, options: SynthesisOptions) -> np.ndarray:
        return self.submit(text, options).result()

    async def synthesize_async(
        self,
        text: str,
        options: SynthesisOptions,
        fan_out: bool = False,
    ) -> np.ndarray:
        if fan_out:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self.synthesize_fan_out, text, options)
        return await asyncio.wrap_future(self.submit(text, options))

    def _render(
        self,
        instance: object,
        text: str,
        options: SynthesisOptions,
        style: np.ndarray,
    ) -> np.ndarray:
        metrics = SynthesisMetrics()
        t_start = time.perf_counter()

        requests = self.prepare(text, options, style=style, metrics=metrics)
        pieces: list[np.ndarray] = []
        for request in requests:
            t0 = time.perf_counter()
            pieces.append(_infer_chunk(instance, request))
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.per_chunk_ms.append(elapsed)
            metrics.inference_ms += elapsed

        audio = concatenate_chunks(pieces)
        self._finish_metrics(metrics, t_start, audio)
        return audio

    # ------------------------------------------------------------------
    # Chunks of one text across all instances
    # ------------------------------------------------------------------

    def synthesize_fan_out(self, text: str, options: SynthesisOptions) -> np.ndarray:
        """Dispatch each chunk separately and reassemble in chunk order.

        Blocks until every chunk is done. The first failing chunk cancels the
        chunks still queued and is re-raised.
        """
        metrics = SynthesisMetrics()
        t_start = time.perf_counter()

        requests = self.prepare(text, options, metrics=metrics)
        futures = {
            self.pool.submit(partial(_timed_infer_chunk, request=request)): idx
            for idx, request in enumerate(requests)
        }

        resequencer: Resequencer[np.ndarray] = Resequencer()
        pieces: list[np.ndarray] = []
        try:
            for future in as_completed(futures):
                audio, elapsed = future.result()
                metrics.per_chunk_ms.append(elapsed)
                metrics.inference_ms += elapsed
                pieces.extend(resequencer.push(futures[future], audio))
        except Exception:
            for future in futures:
                future.cancel()
            raise

        audio = concatenate_chunks(pieces)
        self._finish_metrics(metrics, t_start, audio)
        return audio

    def _finish_metrics(self, metrics: SynthesisMetrics, t_start: float, audio: np.ndarray) -> None:
        metrics.total_ms = (time.perf_counter() - t_start) * 1000
        metrics.output_samples = int(audio.shape[0])
        self.last_metrics = metrics
        logger.debug(
            "Synthesized %d chunk(s): %.1fs audio in %.0fms (phonemize %.0fms, inference %.0fms, RTF %.3f)",
            metrics.chunk_count, metrics.output_duration_sec, metrics.total_ms,
            metrics.phonemize_ms, metrics.inference_ms, metrics.rtf,
        )


def _infer_chunk(instance: object, request: InferenceRequest) -> np.ndarray:
    try:
        return instance.infer(request)
    except Exception as e:
        logger.error("Inference failed for chunk %r: %s", request.text, e)
        raise ChunkInferenceFailedError(request.text, e) from e


def _timed_infer_chunk(instance: object, request: InferenceRequest) -> tuple[np.ndarray, float]:
    t0 = time.perf_counter()
    audio = _infer_chunk(instance, request)
    return audio, (time.perf_counter() - t0) * 1000

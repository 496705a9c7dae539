"""Shared test fixtures: synthetic styles, echo phonemizer, fake inference instances."""

from __future__ import annotations

import logging
import threading
import time
from types import SimpleNamespace

import numpy as np
import pytest

from koko_core.constants import MAX_CHUNK_TOKENS, STYLE_DIM
from koko_data.text_chunker import ChunkPlanner
from koko_serve.pool import InferencePool
from koko_serve.style_resolver import StyleTable
from koko_serve.tts_engine import TTSEngine

SAMPLES_PER_TOKEN = 10


def echo_phonemize(text: str, language: str = "en-us") -> str:
    """Stand-in for espeak: letters and punctuation are already symbols."""
    return text


def one_hot(index: int, positions: int = 2) -> np.ndarray:
    style = np.zeros((positions, 1, STYLE_DIM), dtype=np.float32)
    style[:, 0, index] = 1.0
    return style


class ConcurrencyTracker:
    """Counts calls in flight and remembers the peak."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def __enter__(self) -> ConcurrencyTracker:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        return self

    def __exit__(self, *exc: object) -> None:
        with self._lock:
            self.active -= 1


class FakeInstance:
    """Inference instance returning ``SAMPLES_PER_TOKEN`` samples per input token.

    Every sample equals the first token ID of the request, so chunks can be
    told apart in the assembled audio.
    """

    def __init__(
        self,
        name: str = "fake",
        latency: float | object = 0.0,
        fail_on: str | None = None,
        tracker: ConcurrencyTracker | None = None,
    ) -> None:
        self.name = name
        self.latency = latency
        self.fail_on = fail_on
        self.tracker = tracker
        self.own = ConcurrencyTracker()
        self.calls: list = []

    def infer(self, request) -> np.ndarray:
        with self.own, (self.tracker or ConcurrencyTracker()):
            delay = self.latency(request) if callable(self.latency) else self.latency
            if delay:
                time.sleep(delay)
            if self.fail_on and self.fail_on in request.text:
                raise RuntimeError("engine exploded")
            self.calls.append(request)
            n = (len(request.tokens) + (request.initial_silence or 0)) * SAMPLES_PER_TOKEN
            return np.full(n, float(request.tokens[0]), dtype=np.float32)


class RecordingPipe:
    """Binary sink recording each write and flush in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, bytes]] = []

    def write(self, data: bytes) -> int:
        self.events.append(("write", bytes(data)))
        return len(data)

    def flush(self) -> None:
        self.events.append(("flush", b""))

    @property
    def writes(self) -> list[bytes]:
        return [data for kind, data in self.events if kind == "write"]


class FakeSession:
    """Minimal ``onnxruntime.InferenceSession`` look-alike."""

    def __init__(self, tokens_name: str = "tokens", speed_type: str = "tensor(float)", samples: int = 2400) -> None:
        self._inputs = [
            SimpleNamespace(name=tokens_name, type="tensor(int64)"),
            SimpleNamespace(name="style", type="tensor(float)"),
            SimpleNamespace(name="speed", type=speed_type),
        ]
        self._samples = samples
        self.feeds: list[dict] = []

    def get_inputs(self):
        return self._inputs

    def get_outputs(self):
        return [SimpleNamespace(name="audio")]

    def get_providers(self):
        return ["CPUExecutionProvider"]

    def run(self, output_names, feeds):
        self.feeds.append(feeds)
        return [np.zeros((1, self._samples), dtype=np.float32)]


@pytest.fixture
def echo_phonemizer():
    return echo_phonemize


@pytest.fixture
def style_table() -> StyleTable:
    """Styles ``a``/``b`` are one-hot on dims 0/1; two named voices are random."""
    rng = np.random.default_rng(0)
    return StyleTable({
        "a": one_hot(0),
        "b": one_hot(1),
        "af_sarah": rng.standard_normal((4, 1, STYLE_DIM)).astype(np.float32),
        "af_nicole": rng.standard_normal((4, 1, STYLE_DIM)).astype(np.float32),
    })


@pytest.fixture
def make_engine(style_table):
    """Factory for a :class:`TTSEngine` over fake instances. Pools are closed after the test."""
    pools: list[InferencePool] = []

    def _make(
        n_instances: int = 1,
        max_tokens: int = MAX_CHUNK_TOKENS,
        instances: list | None = None,
        phonemize=echo_phonemize,
        **instance_kwargs,
    ) -> TTSEngine:
        if instances is None:
            instances = [FakeInstance(name=f"fake-{i}", **instance_kwargs) for i in range(n_instances)]
        pool = InferencePool(instances)
        pools.append(pool)
        planner = ChunkPlanner(phonemize, max_tokens=max_tokens)
        return TTSEngine(pool, style_table, phonemize=phonemize, planner=planner)

    yield _make

    for pool in pools:
        pool.close()


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by ``setup_logging``."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)

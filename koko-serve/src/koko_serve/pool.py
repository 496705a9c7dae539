"""Fixed-size pool of inference instances.

One worker thread owns each instance and pulls jobs from a shared queue, so
an instance never runs two calls at once and at most ``size`` calls run in
parallel. Extra submissions wait in the queue; a bounded queue blocks the
submitter instead.

:class:`Resequencer` restores index order for work that completes out of
order (chunk fan-out, streamed lines).
"""

from __future__ import annotations

import heapq
import logging
import queue as stdlib_queue
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future
from pathlib import Path
from typing import Generic, TypeVar

from koko_core.device import ExecutionBackend
from koko_core.errors import KokoError

logger = logging.getLogger(__name__)

I = TypeVar("I")
T = TypeVar("T")

_Job = tuple[Future, Callable]


class InferencePool(Generic[I]):
    """Dispatches jobs to ``len(instances)`` worker threads.

    Args:
        instances: One object per worker. Each is handed to the jobs its
            worker runs and is never shared between threads.
        max_queue: Queue bound; ``0`` means unbounded.
    """

    def __init__(self, instances: Sequence[I], max_queue: int = 0) -> None:
        if not instances:
            raise ValueError("InferencePool needs at least one instance")
        self._instances = list(instances)
        self._queue: stdlib_queue.Queue[_Job | None] = stdlib_queue.Queue(maxsize=max_queue)
        self._closed = False
        self._close_lock = threading.Lock()
        self._workers = [
            threading.Thread(
                target=self._work,
                args=(instance,),
                name=f"koko-instance-{idx}",
                daemon=True,
            )
            for idx, instance in enumerate(self._instances)
        ]
        for worker in self._workers:
            worker.start()

    @classmethod
    def from_model(
        cls,
        model_path: str | Path,
        total_instances: int,
        backend: ExecutionBackend,
        max_queue: int = 0,
    ) -> InferencePool:
        """Create *total_instances* ONNX sessions for *model_path*.

        Every instance must load; the first failure aborts construction.
        """
        from koko_serve.onnx_instance import OnnxInstance

        if total_instances < 1:
            raise ValueError(f"total_instances must be >= 1, got {total_instances}")
        if backend.is_cpu and total_instances > 1:
            logger.warning(
                "WARNING: Using %d instances on CPU may reduce throughput due to "
                "memory bandwidth contention. Consider --instances 1 for CPU.",
                total_instances,
            )

        instances = []
        for i in range(total_instances):
            instance_id = f"{i:02x}"
            logger.info("Initializing TTS instance [%s] (%d/%d)", instance_id, i + 1, total_instances)
            instances.append(
                OnnxInstance.load(model_path, backend, total_instances, instance_id=instance_id)
            )
        return cls(instances, max_queue=max_queue)

    @property
    def size(self) -> int:
        return len(self._instances)

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, job: Callable[[I], T]) -> Future[T]:
        """Queue ``job(instance)`` for the next free instance."""
        future: Future[T] = Future()
        # Jobs must land ahead of the shutdown sentinels
        with self._close_lock:
            if self._closed:
                raise RuntimeError("cannot submit to a closed InferencePool")
            self._queue.put((future, job))
        return future

    def close(self, wait: bool = True) -> None:
        """Stop the workers after the jobs already queued have run."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            for _ in self._workers:
                self._queue.put(None)
        if wait:
            for worker in self._workers:
                worker.join()

    def __enter__(self) -> InferencePool[I]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _work(self, instance: I) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            future, job = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = job(instance)
            except Exception as e:
                if not isinstance(e, KokoError):
                    logger.debug("Job failed on %s: %s", threading.current_thread().name, e)
                future.set_exception(e)
            else:
                future.set_result(result)


class Resequencer(Generic[T]):
    """Buffers ``(index, item)`` completions and releases them in index order.

    ``push`` returns every item that became ready, which may be none (a gap
    is still pending) or several (the gap was just filled).
    """

    def __init__(self, start: int = 0) -> None:
        self._next = start
        self._heap: list[int] = []
        self._items: dict[int, T] = {}

    def push(self, index: int, item: T) -> list[T]:
        if index < self._next or index in self._items:
            raise ValueError(f"index {index} already released or pending")
        heapq.heappush(self._heap, index)
        self._items[index] = item

        ready: list[T] = []
        while self._heap and self._heap[0] == self._next:
            heapq.heappop(self._heap)
            ready.append(self._items.pop(self._next))
            self._next += 1
        return ready

    @property
    def next_index(self) -> int:
        return self._next

    @property
    def pending(self) -> int:
        return len(self._items)

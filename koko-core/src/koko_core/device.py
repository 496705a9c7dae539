"""Execution backend selection for ONNX Runtime sessions with CUDA / CPU fallback."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from koko_core.constants import MIN_THREADS_PER_INSTANCE

logger = logging.getLogger(__name__)


def cpu_core_count() -> int:
    return os.cpu_count() or 1


def calculate_optimal_threads(total_instances: int, total_cores: int | None = None) -> int:
    """Intra-op threads for one of *total_instances* sessions sharing the host.

    Cores are split evenly and the remainder is dropped. Each instance keeps
    at least ``MIN_THREADS_PER_INSTANCE`` threads.
    """
    if total_cores is None:
        total_cores = cpu_core_count()
    per_instance = total_cores // max(1, total_instances)
    return max(per_instance, MIN_THREADS_PER_INSTANCE)


class ExecutionBackend:
    """Configures and creates one inference session.

    Subclasses decide the providers and threading. ``configure`` is called
    once per pool instance.
    """

    name = "base"
    providers: tuple[str, ...] = ()

    def session_options(self, total_instances: int) -> "onnxruntime.SessionOptions":
        import onnxruntime as ort

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        options.log_severity_level = 2  # warnings and above
        return options

    def configure(self, model_path: str | Path, total_instances: int) -> "onnxruntime.InferenceSession":
        import onnxruntime as ort

        options = self.session_options(total_instances)
        return ort.InferenceSession(
            str(model_path),
            sess_options=options,
            providers=list(self.providers),
        )

    @property
    def is_cpu(self) -> bool:
        return False


class CpuBackend(ExecutionBackend):
    """CPU path: shared env allocators plus an even split of host cores."""

    name = "cpu"
    providers = ("CPUExecutionProvider",)

    def __init__(self, total_cores: int | None = None) -> None:
        self._total_cores = total_cores

    def session_options(self, total_instances: int) -> "onnxruntime.SessionOptions":
        options = super().session_options(total_instances)
        total_cores = self._total_cores or cpu_core_count()
        threads = calculate_optimal_threads(total_instances, total_cores)
        logger.info(
            "CPU threading: %d threads per instance (%d total instances, %d total cores)",
            threads, total_instances, total_cores,
        )
        options.add_session_config_entry("session.use_env_allocators", "1")
        options.intra_op_num_threads = threads
        return options

    @property
    def is_cpu(self) -> bool:
        return True


class CudaBackend(ExecutionBackend):
    """Accelerated path: a single inter-op thread, default intra-op threading."""

    name = "cuda"
    providers = ("CUDAExecutionProvider", "CPUExecutionProvider")

    def session_options(self, total_instances: int) -> "onnxruntime.SessionOptions":
        options = super().session_options(total_instances)
        logger.info("Using CUDA execution provider with 1 inter-op thread")
        options.inter_op_num_threads = 1
        return options


def get_backend(preferred: str = "cpu") -> ExecutionBackend:
    """Select an execution backend.

    ``"auto"`` picks CUDA when ONNX Runtime reports it, else CPU. A specific
    request for ``"cuda"`` that cannot be honoured falls back to CPU.
    """
    preferred = preferred.lower()

    if preferred == "cpu":
        return CpuBackend()

    if preferred not in {"auto", "cuda"}:
        raise ValueError(f"Unsupported execution provider: {preferred}. Expected one of: cpu, cuda, auto.")

    if _cuda_available():
        logger.info("Using CUDA execution provider")
        return CudaBackend()
    if preferred == "cuda":
        logger.warning("CUDA requested but not available, falling back to CPU")
    else:
        logger.info("Using CPU execution provider")
    return CpuBackend()


def _cuda_available() -> bool:
    try:
        import onnxruntime as ort
    except ImportError:
        return False
    return "CUDAExecutionProvider" in ort.get_available_providers()

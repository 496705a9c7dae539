"""A single ONNX Runtime session for the Kokoro acoustic model."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from koko_core.constants import ENGINE_CONTEXT_TOKENS, STYLE_DIM
from koko_core.device import ExecutionBackend
from koko_core.errors import ModelLoadFailedError
from koko_core.types import InferenceRequest

logger = logging.getLogger(__name__)


class OnnxInstance:
    """Wraps one ``onnxruntime.InferenceSession``.

    Kokoro exports differ in the name of the token input (``tokens`` or
    ``input_ids``) and the dtype of ``speed`` (float or int32); both are
    read from the session's input metadata.
    """

    def __init__(self, session: object, instance_id: str = "") -> None:
        self._session = session
        self.instance_id = instance_id

        inputs = {i.name: i for i in session.get_inputs()}
        self._tokens_name = "input_ids" if "input_ids" in inputs else "tokens"
        speed = inputs.get("speed")
        speed_type = getattr(speed, "type", "tensor(float)")
        self._speed_dtype = np.int32 if "int" in speed_type else np.float32

        logger.debug(
            "[%s] model inputs: %s", instance_id,
            ", ".join(f"{n}:{getattr(i, 'type', '?')}" for n, i in inputs.items()),
        )
        logger.debug(
            "[%s] model outputs: %s", instance_id,
            ", ".join(o.name for o in session.get_outputs()),
        )

    @classmethod
    def load(
        cls,
        model_path: str | Path,
        backend: ExecutionBackend,
        total_instances: int = 1,
        instance_id: str = "",
    ) -> OnnxInstance:
        model_path = Path(model_path)
        try:
            session = backend.configure(model_path, total_instances)
        except Exception as e:  # onnxruntime raises its own exception types
            raise ModelLoadFailedError(model_path, e) from e
        logger.debug("[%s] providers: %s", instance_id, session.get_providers())
        return cls(session, instance_id=instance_id)

    def infer(self, request: InferenceRequest) -> np.ndarray:
        """Run one call and return flat float32 mono samples."""
        input_ids = request.input_ids()
        if input_ids.shape[1] > ENGINE_CONTEXT_TOKENS:
            logger.warning(
                "[%s] %d tokens exceed the model context of %d",
                self.instance_id, input_ids.shape[1], ENGINE_CONTEXT_TOKENS,
            )
        feeds = {
            self._tokens_name: input_ids,
            "style": np.asarray(request.style, dtype=np.float32).reshape(1, STYLE_DIM),
            "speed": np.asarray([request.speed], dtype=self._speed_dtype),
        }
        outputs = self._session.run(None, feeds)
        return np.asarray(outputs[0], dtype=np.float32).reshape(-1)

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import InferenceFailure

PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names if needed
    - intra_op_threads: 0 lets ORT decide
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    intra_op_threads: int = 0


def _import_ort():
    try:
        import onnxruntime as ort  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError(
            "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
            "(or `onnxruntime-gpu`)."
        ) from e
    return ort


class OnnxRuntimeBackend:
    """
    ONNX Runtime engine.

    Expects an NCHW float32 blob shaped (1, 3, H, W) and returns the primary output.
    `InferenceSession.run` is safe to call from several threads.
    """

    thread_safe = True

    def __init__(
        self,
        model: Union[PathLike, bytes],
        cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig(),
    ):
        ort = _import_ort()
        self._ort = ort

        if isinstance(model, (bytes, bytearray)):
            self.model_path: Optional[Path] = None
            source: Union[str, bytes] = bytes(model)
        else:
            self.model_path = Path(model)
            if not self.model_path.exists():
                raise FileNotFoundError(str(self.model_path))
            source = str(self.model_path)

        sess_opts = ort.SessionOptions()
        if cfg.intra_op_threads:
            sess_opts.intra_op_num_threads = int(cfg.intra_op_threads)
        providers = list(cfg.providers) if cfg.providers is not None else None
        try:
            self.session = ort.InferenceSession(source, sess_options=sess_opts, providers=providers)
        except Exception as e:
            raise InferenceFailure(f"Could not load ONNX model: {e}", stage="load") from e

        self.input_name = cfg.input_name or self.session.get_inputs()[0].name
        # If output_name not provided, pick first output.
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name
        logger.debug(
            "Loaded ONNX model %s (input=%s, output=%s, providers=%s)",
            self.model_path or "<bytes>",
            self.input_name,
            self.output_name,
            self.providers_in_use,
        )

    @classmethod
    def from_bytes(cls, model_bytes: bytes, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()) -> "OnnxRuntimeBackend":
        return cls(model_bytes, cfg)

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    @property
    def input_shape(self) -> Tuple[Any, ...]:
        return tuple(self.session.get_inputs()[0].shape)

    def run(self, blob: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> np.ndarray:
        inputs: Dict[str, Any] = {self.input_name: blob}
        if extra_inputs:
            inputs.update(extra_inputs)
        try:
            outputs = self.session.run([self.output_name], inputs)
        except Exception as e:
            raise InferenceFailure(f"ONNX Runtime inference failed: {e}", stage="infer") from e
        return outputs[0]

    def close(self) -> None:
        # ORT frees the session when the last reference goes away.
        self.session = None

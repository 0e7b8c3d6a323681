from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import ModelUnavailable

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names if needed
    - intra_op_num_threads: CPU threads per inference call (0 lets ORT decide)
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    intra_op_num_threads: int = 4


class OnnxRuntimeBackend:
    """
    Minimal ONNX Runtime backend: float32 tensor in, primary output out.

    Raises ModelUnavailable when onnxruntime is not installed or the model
    cannot be loaded; `load_pipeline` turns that into a model-less pipeline.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except ImportError as e:
            raise ModelUnavailable(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime`."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise ModelUnavailable(f"Model file not found: {self.model_path}")

        sess_opts = ort.SessionOptions()
        sess_opts.intra_op_num_threads = int(cfg.intra_op_num_threads)
        providers = list(cfg.providers) if cfg.providers is not None else None
        try:
            self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)
        except Exception as e:
            raise ModelUnavailable(f"Failed to load ONNX model {self.model_path}: {e}") from e

        model_input = self.session.get_inputs()[0]
        self.input_name = cfg.input_name or model_input.name
        # If output_name not provided, pick first output.
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name
        self._input_shape = tuple(model_input.shape)
        logger.info("Loaded %s (input %s %s, providers %s)", self.model_path.name, self.input_name,
                    self._input_shape, self.providers_in_use)

    @property
    def input_shape(self) -> Tuple[Any, ...]:
        # Dynamic axes come back as strings or None.
        return self._input_shape

    @property
    def channels_last(self) -> Optional[bool]:
        """True for (1, S, S, 3) inputs, False for (1, 3, S, S), None if undeclared."""
        shape = self._input_shape
        if len(shape) != 4:
            return None
        if shape[-1] == 3:
            return True
        if shape[1] == 3:
            return False
        return None

    @property
    def input_size(self) -> Optional[int]:
        """Square input side declared by the model, if static."""
        layout = self.channels_last
        if layout is None:
            return None
        h, w = (self._input_shape[1], self._input_shape[2]) if layout else (self._input_shape[2], self._input_shape[3])
        if isinstance(h, int) and h == w:
            return h
        return None

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        return self.session.run([self.output_name], {self.input_name: tensor})[0]

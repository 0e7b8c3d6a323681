from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .encode import encode, input_shape
from .errors import ModelUnavailable
from .labels import DEFAULT_LABELS, load_labels
from .letterbox import LetterboxResult, image_size, letterbox
from .postprocess import DecoderConfig, DetectionDecoder
from .types import Detection

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
InferFn = Callable[[np.ndarray], np.ndarray]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery.

    Useful when `mangrove_kit` is vendored as `A/mangrove_kit` and models live in `A/models`.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root` if provided, else the project root.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class PipelineConfig:
    input_size: int = 640
    channels_last: bool = True
    letterbox_color: Tuple[int, int, int] = (0, 0, 0)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)

    def __post_init__(self) -> None:
        if self.input_size < 1:
            raise ValueError("input_size must be >= 1")


@dataclass(frozen=True)
class PreprocessResult:
    tensor: np.ndarray
    transform: LetterboxResult
    source_size: Tuple[int, int]


class DetectionPipeline:
    """
    letterbox -> encode -> infer -> decode, for one image at a time.

    Holds the LabelSet, the inference capability and the config; nothing else
    is kept between calls, so a pipeline can be shared across worker threads
    as long as `infer_fn` itself is thread-safe.

    With `infer_fn=None` (model failed to load) every call returns an empty
    list instead of raising.
    """

    def __init__(
        self,
        infer_fn: Optional[InferFn],
        labels: Sequence[str] = DEFAULT_LABELS,
        config: PipelineConfig = PipelineConfig(),
        *,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
    ):
        self._infer_fn = infer_fn
        self.labels: Tuple[str, ...] = tuple(labels)
        self.config = config
        self.backend = backend
        self.backend_name = backend_name
        self.decoder = DetectionDecoder(config.decoder)
        self._warned_unavailable = False

    @property
    def model_available(self) -> bool:
        return self._infer_fn is not None

    @property
    def input_shape(self) -> Tuple[int, int, int, int]:
        return input_shape(self.config.input_size, self.config.channels_last)

    def preprocess(self, image: np.ndarray) -> PreprocessResult:
        source_size = image_size(image)
        transform = letterbox(image, self.config.input_size, color=self.config.letterbox_color)
        tensor = encode(transform.canvas, channels_last=self.config.channels_last)
        return PreprocessResult(tensor=tensor, transform=transform, source_size=source_size)

    def __call__(self, image: np.ndarray) -> List[Detection]:
        if self._infer_fn is None:
            if not self._warned_unavailable:
                logger.warning("No model loaded; returning no detections")
                self._warned_unavailable = True
            return []

        prep = self.preprocess(image)
        output = self._infer_fn(prep.tensor)
        src_w, src_h = prep.source_size
        return self.decoder.decode(output, prep.transform, self.labels, src_w, src_h)


def _infer_backend(path: Path) -> Optional[str]:
    suffix = path.suffix.lower()
    if suffix == ".onnx":
        return "onnxruntime"
    return None


def load_pipeline(
    model_path: Optional[PathLike],
    labels_path: Optional[PathLike] = None,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    config: PipelineConfig = PipelineConfig(),
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_threads: int = 4,
) -> DetectionPipeline:
    """
    Build a pipeline for a model on disk.

        pipe = load_pipeline("models/best.onnx", "models/labels.txt")

    Relative paths resolve against the project root by default. A model that
    cannot be loaded (missing file, missing runtime, unrecognised extension
    with no `backend=`) yields a pipeline with `model_available == False`
    rather than an exception. An explicit unknown `backend=` raises ValueError. Labels fall back to
    the default mangrove classes when `labels_path` is None or unreadable.

    When the model declares a static input shape, its channel layout and size
    override `config.channels_last` / `config.input_size`.
    """

    labels = load_labels(resolve_path(labels_path, root=root)) if labels_path is not None else DEFAULT_LABELS

    if model_path is None:
        logger.warning("No model path given; detection disabled")
        return DetectionPipeline(None, labels, config)

    resolved = resolve_path(model_path, root=root)
    if backend is None:
        chosen = _infer_backend(resolved)
        if chosen is None:
            logger.error("No backend for model format '%s' (%s); detection disabled", resolved.suffix, resolved)
            return DetectionPipeline(None, labels, config)
    else:
        chosen = backend.lower()

    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        try:
            ort_backend = OnnxRuntimeBackend(
                resolved,
                OnnxRuntimeBackendConfig(providers=onnx_providers, intra_op_num_threads=onnx_threads),
            )
        except ModelUnavailable as exc:
            logger.error("Model load failed: %s", exc)
            return DetectionPipeline(None, labels, config)

        if ort_backend.channels_last is not None:
            config = replace(config, channels_last=ort_backend.channels_last)
        if ort_backend.input_size is not None:
            config = replace(config, input_size=ort_backend.input_size)

        return DetectionPipeline(
            ort_backend.infer,
            labels,
            config,
            backend=ort_backend,
            backend_name="onnxruntime",
        )

    raise ValueError(f"Unsupported backend: {backend!r}")

"""
Mangrove tree-state detection helpers for the field-survey app.

Letterbox an RGB image, encode it into the model's input tensor, run an
opaque inference callable, and decode the (1, 4 + C, A) output into labeled
boxes in source-image pixels. Core pieces need only NumPy and OpenCV;
ONNX Runtime is optional.
"""

from .types import Detection
from .errors import InvalidInput, MangroveKitError, ModelUnavailable, ShapeMismatch
from .letterbox import LetterboxResult, letterbox
from .encode import encode, input_shape
from .labels import DEFAULT_LABELS, label_for, load_labels
from .nms import NMSConfig, nms
from .postprocess import CoordConvention, DecoderConfig, DetectionDecoder, decode
from .runtime import DetectionPipeline, PipelineConfig, load_pipeline, find_project_root, resolve_path
from .worker import FrameResult, LatestFrameWorker, WorkerConfig, WorkerStats
from .config import DetectorProfile, configure_logging, load_detector_profile
from .visualize import LabelColors, draw_detections, summarize

__all__ = [
    "Detection",
    "InvalidInput",
    "MangroveKitError",
    "ModelUnavailable",
    "ShapeMismatch",
    "LetterboxResult",
    "letterbox",
    "encode",
    "input_shape",
    "DEFAULT_LABELS",
    "label_for",
    "load_labels",
    "NMSConfig",
    "nms",
    "CoordConvention",
    "DecoderConfig",
    "DetectionDecoder",
    "decode",
    "DetectionPipeline",
    "PipelineConfig",
    "load_pipeline",
    "find_project_root",
    "resolve_path",
    "FrameResult",
    "LatestFrameWorker",
    "WorkerConfig",
    "WorkerStats",
    "DetectorProfile",
    "configure_logging",
    "load_detector_profile",
    "LabelColors",
    "draw_detections",
    "summarize",
]

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .postprocess import CoordConvention, DecoderConfig
from .runtime import PipelineConfig
from .worker import WorkerConfig

LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Union[str, int] = LOG_LEVEL) -> None:
    """
    Configure root logging if nothing else has.

    Safe to call more than once; only the first call installs a handler.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)


@dataclass(frozen=True)
class DetectorProfile:
    """
    Deployment settings for one model artifact, loaded from JSON:

        {
          "schema_version": 1,
          "model_path": "models/best_float32.onnx",
          "labels_path": "models/labels.txt",
          "conf_threshold": 0.5,
          "coord_convention": "normalized_to_source"
        }
    """

    schema_version: int
    model_path: Optional[str] = None
    labels_path: Optional[str] = None
    input_size: int = 640
    channels_last: bool = True
    conf_threshold: float = 0.5
    coord_convention: CoordConvention = CoordConvention.NORMALIZED_TO_SOURCE
    num_classes: Optional[int] = None
    num_anchors: Optional[int] = None
    min_extent: Optional[float] = None
    apply_nms: bool = False
    iou_threshold: float = 0.45
    max_detections: Optional[int] = None
    process_every: int = 1
    deadline_s: Optional[float] = None
    log_level: str = LOG_LEVEL

    def __post_init__(self) -> None:
        if self.schema_version != 1:
            raise ValueError("detector profile schema_version must be 1")
        if self.input_size < 1:
            raise ValueError("input_size must be >= 1")
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be in [0, 1]")
        if self.process_every < 1:
            raise ValueError("process_every must be >= 1")
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log_level: {self.log_level}")

    def decoder_config(self) -> DecoderConfig:
        return DecoderConfig(
            conf_threshold=self.conf_threshold,
            coord_convention=self.coord_convention,
            num_classes=self.num_classes,
            num_anchors=self.num_anchors,
            min_extent=self.min_extent,
            apply_nms=self.apply_nms,
            iou_threshold=self.iou_threshold,
            max_detections=self.max_detections,
        )

    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            input_size=self.input_size,
            channels_last=self.channels_last,
            decoder=self.decoder_config(),
        )

    def worker_config(self) -> WorkerConfig:
        return WorkerConfig(process_every=self.process_every, deadline_s=self.deadline_s)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_int(payload: Dict[str, Any], key: str) -> Optional[int]:
    if payload.get(key) is None:
        return None
    return _require_int(payload, key)


def _optional_number(payload: Dict[str, Any], key: str) -> Optional[float]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_bool(payload: Dict[str, Any], key: str) -> Optional[bool]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false")
    return value


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{key} must be a string if provided")
    return value


_ALLOWED_KEYS = {
    "schema_version",
    "model_path",
    "labels_path",
    "input_size",
    "channels_last",
    "conf_threshold",
    "coord_convention",
    "num_classes",
    "num_anchors",
    "min_extent",
    "apply_nms",
    "iou_threshold",
    "max_detections",
    "process_every",
    "deadline_s",
    "log_level",
    "notes",
}


def load_detector_profile(path: Path) -> DetectorProfile:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Detector profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid detector profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Detector profile must be a JSON object")

    unknown = sorted(set(payload.keys()) - _ALLOWED_KEYS)
    if unknown:
        raise ValueError(f"Unknown detector profile keys: {unknown}")

    kwargs: Dict[str, Any] = {"schema_version": _require_int(payload, "schema_version")}
    for key in ("model_path", "labels_path", "log_level"):
        if payload.get(key) is not None:
            kwargs[key] = _optional_str(payload, key)
    for key in ("input_size", "num_classes", "num_anchors", "max_detections", "process_every"):
        if payload.get(key) is not None:
            kwargs[key] = _optional_int(payload, key)
    for key in ("conf_threshold", "min_extent", "iou_threshold", "deadline_s"):
        if payload.get(key) is not None:
            kwargs[key] = _optional_number(payload, key)
    for key in ("channels_last", "apply_nms"):
        if payload.get(key) is not None:
            kwargs[key] = _optional_bool(payload, key)

    convention = _optional_str(payload, "coord_convention")
    if convention is not None:
        try:
            kwargs["coord_convention"] = CoordConvention(convention)
        except ValueError as exc:
            choices = [c.value for c in CoordConvention]
            raise ValueError(f"coord_convention must be one of {choices}") from exc

    return DetectorProfile(**kwargs)

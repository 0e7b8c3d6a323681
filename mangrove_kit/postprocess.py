from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import InvalidInput, ShapeMismatch
from .labels import label_for
from .letterbox import LetterboxResult
from .nms import NMSConfig, nms
from .types import Detection

logger = logging.getLogger(__name__)

# Rows 0..3 of the output tensor: cx, cy, w, h.
BOX_ROWS = 4


class CoordConvention(str, Enum):
    """
    How rows 0..3 of the output tensor are expressed.

    NORMALIZED_TO_SOURCE: fractions in [0, 1] applied directly to the source
        image size (no letterbox inversion).
    CANVAS_PIXELS_TO_CANVAS: absolute pixels on the S x S canvas; padding is
        removed and the resize scale divided out.
    """

    NORMALIZED_TO_SOURCE = "normalized_to_source"
    CANVAS_PIXELS_TO_CANVAS = "canvas_pixels_to_canvas"


@dataclass(frozen=True)
class DecoderConfig:
    """
    Decoder settings.

    num_classes / num_anchors pin the expected output shape; leave them as
    None to accept whatever the model emits. min_extent=None means 5 px for
    canvas-pixel outputs and no minimum for normalized outputs.
    NMS is off by default; `apply_nms` turns on the class-agnostic pass and
    `max_detections` caps its output.
    """

    conf_threshold: float = 0.5
    coord_convention: CoordConvention = CoordConvention.NORMALIZED_TO_SOURCE
    num_classes: Optional[int] = None
    num_anchors: Optional[int] = None
    min_extent: Optional[float] = None
    apply_nms: bool = False
    iou_threshold: float = 0.45
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        # Accept plain strings from JSON profiles / CLI flags.
        object.__setattr__(self, "coord_convention", CoordConvention(self.coord_convention))
        if self.num_classes is not None and self.num_classes < 1:
            raise ValueError("num_classes must be >= 1")
        if self.num_anchors is not None and self.num_anchors < 1:
            raise ValueError("num_anchors must be >= 1")
        if self.min_extent is not None and self.min_extent < 0:
            raise ValueError("min_extent must be >= 0")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1")

    def resolved_min_extent(self) -> float:
        if self.min_extent is not None:
            return float(self.min_extent)
        if self.coord_convention is CoordConvention.CANVAS_PIXELS_TO_CANVAS:
            return 5.0
        return 0.0


class DetectionDecoder:
    """
    Turns a raw (1, 4 + C, A) output into filtered, labeled boxes in source pixels.

    Every anchor is judged on its own: arg-max class, strict confidence
    threshold, box reconstruction, clipping, and a minimum-extent check.
    Overlapping boxes for the same tree are kept (no NMS) unless the config
    opts in. Results come back in anchor-index order.

    Stateless apart from the frozen config, so one instance can be shared by
    several worker threads.
    """

    def __init__(self, cfg: DecoderConfig = DecoderConfig()):
        self.cfg = cfg

    def decode(
        self,
        output: np.ndarray,
        transform: Optional[LetterboxResult],
        labels: Sequence[str],
        source_width: int,
        source_height: int,
    ) -> List[Detection]:
        """
        Args:
            output: model output for a single image, (1, 4 + C, A) or (4 + C, A)
            transform: letterbox parameters used for this image (required for
                canvas-pixel outputs)
            labels: LabelSet; missing entries render as "Class <i>"
            source_width/source_height: original image size in pixels
        """

        if source_width <= 0 or source_height <= 0:
            raise InvalidInput(f"Source size must be positive, got {source_width}x{source_height}")

        rows = self._as_rows(output)
        boxes, scores, class_ids = self._select(rows)
        if boxes.shape[0] == 0:
            return []

        boxes_xyxy = self._to_source(boxes, transform, source_width, source_height)
        keep = self._valid_extent(boxes_xyxy)
        boxes_xyxy, scores, class_ids = boxes_xyxy[keep], scores[keep], class_ids[keep]
        if boxes_xyxy.shape[0] == 0:
            return []

        if self.cfg.apply_nms:
            keep_idx = nms(
                boxes_xyxy,
                scores,
                NMSConfig(iou_threshold=self.cfg.iou_threshold, max_detections=self.cfg.max_detections),
            )
            boxes_xyxy, scores, class_ids = boxes_xyxy[keep_idx], scores[keep_idx], class_ids[keep_idx]

        return [
            Detection(
                x1=float(x1),
                y1=float(y1),
                x2=float(x2),
                y2=float(y2),
                score=float(score),
                class_id=int(cls_id),
                label=label_for(labels, int(cls_id)),
            )
            for (x1, y1, x2, y2), score, cls_id in zip(boxes_xyxy, scores, class_ids)
        ]

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _as_rows(self, output: np.ndarray) -> np.ndarray:
        """
        Validate the output layout and return it as a (4 + C, A) array.
        """

        p = np.asarray(output)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise ShapeMismatch(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.ndim != 2:
            raise ShapeMismatch(f"Expected output shape (1, 4 + C, A), got {np.asarray(output).shape}")

        num_rows, num_anchors = p.shape
        if num_rows < BOX_ROWS + 1:
            raise ShapeMismatch(f"Output needs 4 box rows and at least one class row, got {num_rows} rows")
        if self.cfg.num_classes is not None and num_rows != BOX_ROWS + self.cfg.num_classes:
            raise ShapeMismatch(
                f"Expected {BOX_ROWS + self.cfg.num_classes} rows for {self.cfg.num_classes} classes, got {num_rows}"
            )
        if self.cfg.num_anchors is not None and num_anchors != self.cfg.num_anchors:
            raise ShapeMismatch(f"Expected {self.cfg.num_anchors} anchors, got {num_anchors}")
        return p

    def _select(self, rows: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Arg-max class per anchor and confidence filter.

        Returns cxcywh boxes (N, 4), scores (N,), class ids (N,) for the
        surviving anchors, still in anchor order.
        """

        boxes = rows[0:BOX_ROWS, :].T.astype(np.float64)  # (A, 4) as cx, cy, w, h
        class_scores = rows[BOX_ROWS:, :].astype(np.float64)  # (C, A)
        # A NaN class score never wins the arg-max; the other classes still compete.
        class_scores[np.isnan(class_scores)] = -np.inf

        # np.argmax returns the first maximum: ties go to the lower class index.
        class_ids = np.argmax(class_scores, axis=0)
        scores = class_scores[class_ids, np.arange(class_scores.shape[1])]

        keep = np.isfinite(scores) & (scores > self.cfg.conf_threshold) & np.isfinite(boxes).all(axis=1)
        logger.debug("%d of %d anchors above threshold %.3f", int(keep.sum()), keep.size, self.cfg.conf_threshold)
        return boxes[keep], scores[keep], class_ids[keep]

    def _to_source(
        self,
        boxes: np.ndarray,
        transform: Optional[LetterboxResult],
        source_width: int,
        source_height: int,
    ) -> np.ndarray:
        """
        Convert cxcywh boxes to xyxy in source pixels and clip to the image.
        """

        cx, cy, w_box, h_box = boxes.T
        x1 = cx - w_box / 2
        y1 = cy - h_box / 2
        x2 = cx + w_box / 2
        y2 = cy + h_box / 2

        if self.cfg.coord_convention is CoordConvention.NORMALIZED_TO_SOURCE:
            x1, x2 = x1 * source_width, x2 * source_width
            y1, y2 = y1 * source_height, y2 * source_height
        else:
            if transform is None:
                raise ValueError("Canvas-pixel outputs need the LetterboxResult used for this image.")
            x1 = (x1 - transform.pad_x) / transform.scale
            x2 = (x2 - transform.pad_x) / transform.scale
            y1 = (y1 - transform.pad_y) / transform.scale
            y2 = (y2 - transform.pad_y) / transform.scale

        boxes_xyxy = np.stack([x1, y1, x2, y2], axis=1)
        boxes_xyxy[:, [0, 2]] = np.clip(boxes_xyxy[:, [0, 2]], 0, source_width)
        boxes_xyxy[:, [1, 3]] = np.clip(boxes_xyxy[:, [1, 3]], 0, source_height)
        return boxes_xyxy

    def _valid_extent(self, boxes_xyxy: np.ndarray) -> np.ndarray:
        widths = boxes_xyxy[:, 2] - boxes_xyxy[:, 0]
        heights = boxes_xyxy[:, 3] - boxes_xyxy[:, 1]
        min_extent = self.cfg.resolved_min_extent()
        return (widths > 0) & (heights > 0) & (widths >= min_extent) & (heights >= min_extent)


def decode(
    output: np.ndarray,
    transform: Optional[LetterboxResult],
    labels: Sequence[str],
    source_width: int,
    source_height: int,
    conf_threshold: float = 0.5,
    coord_convention: Union[CoordConvention, str] = CoordConvention.NORMALIZED_TO_SOURCE,
    min_extent: Optional[float] = None,
) -> List[Detection]:
    """One-shot decode with explicit threshold/convention (no NMS, no shape pinning)."""
    cfg = DecoderConfig(
        conf_threshold=conf_threshold,
        coord_convention=CoordConvention(coord_convention),
        min_extent=min_extent,
    )
    return DetectionDecoder(cfg).decode(output, transform, labels, source_width, source_height)

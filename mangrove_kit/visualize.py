from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple

import numpy as np

from .types import Detection

RGB = Tuple[int, int, int]

GREEN: RGB = (0, 255, 0)
RED: RGB = (255, 0, 0)
YELLOW: RGB = (255, 255, 0)


@dataclass(frozen=True)
class LabelColors:
    """
    Overlay colour per mangrove class (RGB). Labels are matched by keyword,
    case-insensitive; anything unrecognised gets `unknown`.
    """

    alive_rhizophora: RGB = GREEN
    alive_trunk: RGB = GREEN
    dead_rhizophora: RGB = RED
    dead_trunk: RGB = RED
    unknown: RGB = YELLOW

    def for_label(self, label: str) -> RGB:
        key = label.lower()
        if "alive rhizophora" in key:
            return self.alive_rhizophora
        if "alive trunk" in key:
            return self.alive_trunk
        if "dead rhizophora" in key:
            return self.dead_rhizophora
        if "dead trunk" in key:
            return self.dead_trunk
        return self.unknown


def summarize(detections: Iterable[Detection], empty_text: str = "No detection") -> str:
    """Status-line text: comma-joined "label (score%)" entries, or `empty_text`."""
    parts = [d.display_text for d in detections]
    return ", ".join(parts) if parts else empty_text


def draw_detections(
    image: np.ndarray,
    detections: Iterable[Detection],
    *,
    colors: LabelColors = LabelColors(),
    show_score: bool = True,
    fill_alpha: float = 30 / 255,
    box_thickness: int = 2,
    font_scale: float = 0.5,
    font_thickness: int = 1,
) -> np.ndarray:
    """
    Draw translucent boxes + labels on an RGB image and return a copy.

    Args:
        image: input image (H, W, 3), same channel order as `colors`.
        detections: Detection boxes in source image coordinates.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_detections(). Install with `pip install opencv-python`.") from e

    if image is None or not hasattr(image, "shape"):
        raise TypeError("image must be a NumPy array (H, W, 3).")
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image, 'shape', None)}")

    out = image.copy()
    h, w = out.shape[:2]
    dets = list(detections)

    def _corners(det: Detection) -> Tuple[int, int, int, int]:
        x1, y1, x2, y2 = det.as_xyxy()
        return (
            int(np.clip(round(x1), 0, w - 1)),
            int(np.clip(round(y1), 0, h - 1)),
            int(np.clip(round(x2), 0, w - 1)),
            int(np.clip(round(y2), 0, h - 1)),
        )

    # Translucent fills first so outlines and text stay crisp.
    if fill_alpha > 0 and dets:
        fills = out.copy()
        for det in dets:
            x1i, y1i, x2i, y2i = _corners(det)
            cv2.rectangle(fills, (x1i, y1i), (x2i, y2i), colors.for_label(det.label), thickness=-1)
        out = cv2.addWeighted(fills, fill_alpha, out, 1.0 - fill_alpha, 0)

    for det in dets:
        x1i, y1i, x2i, y2i = _corners(det)
        color = colors.for_label(det.label)
        cv2.rectangle(out, (x1i, y1i), (x2i, y2i), color, thickness=box_thickness)

        label = det.display_text if show_score else det.label

        (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, font_thickness)
        # Place label above the box if possible, else inside.
        y_text_top = y1i - th - baseline
        if y_text_top < 0:
            y_text_top = y1i

        x_text_right = min(x1i + tw, w - 1)
        y_text_bottom = min(y_text_top + th + baseline, h - 1)

        cv2.rectangle(out, (x1i, y_text_top), (x_text_right, y_text_bottom), (0, 0, 0), thickness=-1)
        cv2.putText(
            out,
            label,
            (x1i, min(y_text_top + th, h - 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (255, 255, 255),
            thickness=font_thickness,
            lineType=cv2.LINE_AA,
        )

    return out

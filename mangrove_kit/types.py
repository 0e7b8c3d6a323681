from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Detection:
    """
    One decoded box in source-image pixel coordinates.

    x1/y1/x2/y2 are left/top/right/bottom. `label` is already resolved against
    the LabelSet (or the "Class <i>" fallback).
    """

    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    class_id: int
    label: str

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    @property
    def box(self) -> Tuple[float, float, float, float]:
        return self.as_xyxy()

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def display_text(self) -> str:
        # Overlay text, e.g. "Alive Trunk (91.2%)"
        return f"{self.label} ({self.score * 100:.1f}%)"

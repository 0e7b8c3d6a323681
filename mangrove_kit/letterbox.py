from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import InvalidInput


@dataclass(frozen=True)
class LetterboxResult:
    """
    Square canvas plus the parameters needed to map boxes back to the source.

    Keep this around across the inference call: the decoder needs `scale`,
    `pad_x` and `pad_y` for the inverse mapping.
    """

    canvas: np.ndarray
    scale: float
    pad_x: int
    pad_y: int

    @property
    def size(self) -> int:
        return int(self.canvas.shape[0])


def image_size(image: np.ndarray) -> Tuple[int, int]:
    """
    Validate an RGB/RGBA image and return its (width, height).
    """

    if image is None or not hasattr(image, "shape"):
        raise InvalidInput("image must be a NumPy array (H, W, 3) or (H, W, 4).")
    if image.ndim != 3 or image.shape[2] not in (3, 4):
        raise InvalidInput(f"Expected image shape (H, W, 3) or (H, W, 4), got {image.shape}")
    h, w = image.shape[:2]
    if w == 0 or h == 0:
        raise InvalidInput(f"Image has zero width or height: {w}x{h}")
    return int(w), int(h)


def letterbox(
    image: np.ndarray,
    target_size: int = 640,
    color: Tuple[int, int, int] = (0, 0, 0),
) -> LetterboxResult:
    """
    Resize (aspect preserved) and centre-pad an image onto a square canvas.

    Args:
        image: RGB (H, W, 3) or RGBA (H, W, 4) image; alpha is dropped.
        target_size: canvas side S.
        color: fill for the padded border.

    Returns:
        LetterboxResult with canvas (S, S, 3), scale and left/top padding.
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if target_size < 1:
        raise InvalidInput(f"target_size must be >= 1, got {target_size}")

    w, h = image_size(image)
    rgb = image[:, :, :3]

    # Scale ratio (new / old)
    scale = min(target_size / w, target_size / h)
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    new_w, new_h = min(new_w, target_size), min(new_h, target_size)

    if (w, h) != (new_w, new_h):
        resized = cv2.resize(np.ascontiguousarray(rgb), (new_w, new_h), interpolation=cv2.INTER_LINEAR)
    else:
        resized = rgb

    pad_x = (target_size - new_w) // 2
    pad_y = (target_size - new_h) // 2

    canvas = np.empty((target_size, target_size, 3), dtype=np.uint8)
    canvas[...] = np.asarray(color, dtype=np.uint8)
    canvas[pad_y : pad_y + new_h, pad_x : pad_x + new_w] = resized

    return LetterboxResult(canvas=canvas, scale=float(scale), pad_x=int(pad_x), pad_y=int(pad_y))

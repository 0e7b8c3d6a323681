from typing import Optional, Tuple

import numpy as np

from .errors import InvalidInput, ShapeMismatch


def input_shape(size: int, channels_last: bool = True) -> Tuple[int, int, int, int]:
    """Fixed model input shape for a square canvas of side `size`."""
    if channels_last:
        return (1, size, size, 3)
    return (1, 3, size, size)


def encode(
    canvas: np.ndarray,
    channels_last: bool = True,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Convert a letterboxed RGB canvas into a float32 input tensor in [0, 1].

    Layout is (1, S, S, 3) when `channels_last` (TFLite-style exports) and
    (1, 3, S, S) otherwise (ONNX/PyTorch exports). Pass `out` to reuse a
    pre-allocated buffer across frames; it is filled in place and returned.
    """

    if canvas is None or not hasattr(canvas, "shape"):
        raise InvalidInput("canvas must be a NumPy array (S, S, 3).")
    if canvas.ndim != 3 or canvas.shape[2] not in (3, 4):
        raise InvalidInput(f"Expected canvas shape (S, S, 3), got {canvas.shape}")
    size = canvas.shape[0]
    if size == 0 or canvas.shape[1] != size:
        raise InvalidInput(f"Canvas must be square and non-empty, got {canvas.shape[1]}x{size}")

    expected = input_shape(size, channels_last)
    if out is None:
        out = np.empty(expected, dtype=np.float32)
    elif out.shape != expected or out.dtype != np.float32:
        raise ShapeMismatch(f"Output buffer must be float32 {expected}, got {out.dtype} {out.shape}")

    rgb = canvas[:, :, :3]
    if channels_last:
        np.divide(rgb, 255.0, out=out[0], dtype=np.float32)
    else:
        # HWC -> CHW
        np.divide(np.transpose(rgb, (2, 0, 1)), 255.0, out=out[0], dtype=np.float32)
    return out

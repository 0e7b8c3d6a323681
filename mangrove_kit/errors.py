from __future__ import annotations


class MangroveKitError(Exception):
    """Base class for errors raised by mangrove_kit."""


class InvalidInput(MangroveKitError, ValueError):
    """Image or canvas that cannot be letterboxed/encoded (zero size, wrong rank, wrong channels)."""


class ShapeMismatch(MangroveKitError, ValueError):
    """Tensor shape inconsistent with the configured class/anchor counts or input contract."""


class ModelUnavailable(MangroveKitError, RuntimeError):
    """
    Inference capability could not be created.

    The pipeline treats this as "no detections" rather than a crash; it is only
    raised out of backend constructors.
    """

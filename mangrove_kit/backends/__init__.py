"""
Optional inference backends for mangrove_kit.

Backends are kept in a separate module so core functionality (letterbox,
encode, decode) stays lightweight and can be used without installing an
inference runtime.
"""

from __future__ import annotations

__all__ = []

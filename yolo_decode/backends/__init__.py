"""
Inference backends for yolo_decode.

Backends are kept in a separate module so decoding stays lightweight and can be
used without installing inference runtimes.
"""

from __future__ import annotations

__all__ = []

from __future__ import annotations


class DecodeError(ValueError):
    """
    Base class for fatal post-processing errors.

    Every subclass means the anchor/class configuration does not match the model,
    so there is nothing sensible left to decode.
    """


class ConfigError(DecodeError):
    """Anchor count/stride mismatch, non-square model input, bad thresholds."""


class UnsupportedFormatError(DecodeError):
    """Tensor dtype, batch size or memory layout the decoder cannot read."""


class ShapeMismatchError(DecodeError):
    """Feature map channel count differs from anchors * (num_classes + 5)."""

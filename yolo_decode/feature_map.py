"""
Raw YOLO output tensors and how to index into them.

A feature map holds, for every grid cell and every anchor, the values
[x, y, w, h, objectness, class_scores...]. Where those values live in the flat
buffer depends on the memory layout of the tensor:

- channel-minor (NHWC): channel is the fastest dimension, class stride 1
- channel-major (NCHW): each channel is a full H*W plane, class stride H*W
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union

import numpy as np

from .errors import ShapeMismatchError, UnsupportedFormatError

IndexLike = Union[int, np.ndarray]


class FeatureMapLayout(str, Enum):
    CHANNEL_MINOR = "NHWC"
    CHANNEL_MAJOR = "NCHW"
    # NC4HW4 packed tensors, recognised only to be rejected
    TILED = "NC4HW4"


class ActivationPolicy(str, Enum):
    # YOLOv3 / tiny: independent sigmoid per class
    SIGMOID = "sigmoid"
    # YOLOv2: softmax across classes
    SOFTMAX = "softmax"

    @classmethod
    def for_anchor_count(cls, anchors_per_layer: int) -> "ActivationPolicy":
        return cls.SOFTMAX if anchors_per_layer == 5 else cls.SIGMOID


@dataclass(frozen=True)
class CellOffsets:
    """
    Flat buffer offsets for one (h, w, anchor). Works element-wise when h, w and
    anchor are broadcastable NumPy arrays.
    """

    x: IndexLike
    y: IndexLike
    w: IndexLike
    h: IndexLike
    objectness: IndexLike
    scores: IndexLike
    score_step: int


# (h, w, anchor) -> CellOffsets
OffsetStrategy = Callable[[IndexLike, IndexLike, IndexLike], CellOffsets]


class _ChannelMinorOffsets:
    def __init__(self, width: int, height: int, channel: int, num_classes: int):
        self.width = width
        self.channel = channel
        self.entry = num_classes + 5

    def __call__(self, h: IndexLike, w: IndexLike, anchor: IndexLike) -> CellOffsets:
        base = h * self.width * self.channel + w * self.channel + anchor * self.entry
        return CellOffsets(
            x=base,
            y=base + 1,
            w=base + 2,
            h=base + 3,
            objectness=base + 4,
            scores=base + 5,
            score_step=1,
        )


class _ChannelMajorOffsets:
    def __init__(self, width: int, height: int, channel: int, num_classes: int):
        self.width = width
        self.plane = width * height
        self.entry = num_classes + 5

    def __call__(self, h: IndexLike, w: IndexLike, anchor: IndexLike) -> CellOffsets:
        cell = h * self.width + w
        first = anchor * self.entry
        return CellOffsets(
            x=first * self.plane + cell,
            y=(first + 1) * self.plane + cell,
            w=(first + 2) * self.plane + cell,
            h=(first + 3) * self.plane + cell,
            objectness=(first + 4) * self.plane + cell,
            scores=(first + 5) * self.plane + cell,
            score_step=self.plane,
        )


_STRATEGIES = {
    FeatureMapLayout.CHANNEL_MINOR: _ChannelMinorOffsets,
    FeatureMapLayout.CHANNEL_MAJOR: _ChannelMajorOffsets,
}


@dataclass(frozen=True)
class RawFeatureMap:
    """
    Read-only view over one model output for a single image.
    """

    data: np.ndarray
    width: int
    height: int
    channel: int
    layout: FeatureMapLayout
    batch: int = 1
    name: str = ""

    def __post_init__(self) -> None:
        layout = FeatureMapLayout(self.layout)
        object.__setattr__(self, "layout", layout)
        if layout is FeatureMapLayout.TILED:
            raise UnsupportedFormatError(f"Tensor layout {layout.value} is not supported")
        if self.batch != 1:
            raise UnsupportedFormatError(f"Only batch size 1 is supported, got {self.batch}")

        data = np.asarray(self.data)
        if data.dtype != np.float32:
            raise UnsupportedFormatError(f"Only float32 feature maps are supported, got {data.dtype}")
        if min(self.width, self.height, self.channel) <= 0:
            raise ShapeMismatchError(f"Invalid feature map shape {self.height}x{self.width}x{self.channel}")

        flat = data.reshape(-1)
        expected = self.width * self.height * self.channel
        if flat.size != expected:
            raise ShapeMismatchError(
                f"Feature map buffer holds {flat.size} values, expected {expected} "
                f"({self.height}x{self.width}x{self.channel})"
            )
        flat = flat.view()
        flat.flags.writeable = False
        object.__setattr__(self, "data", flat)

    @classmethod
    def from_array(cls, array: np.ndarray, layout: FeatureMapLayout, name: str = "") -> "RawFeatureMap":
        """
        Build from a 4-D (N, H, W, C) or (N, C, H, W) array, or the same without batch axis.
        """

        a = np.asarray(array)
        if a.ndim == 3:
            a = a[None, ...]
        if a.ndim != 4:
            raise ShapeMismatchError(f"Expected a 3-D or 4-D feature map, got shape {a.shape}")

        layout = FeatureMapLayout(layout)
        if layout is FeatureMapLayout.CHANNEL_MINOR:
            batch, height, width, channel = a.shape
        elif layout is FeatureMapLayout.CHANNEL_MAJOR:
            batch, channel, height, width = a.shape
        else:
            raise UnsupportedFormatError(f"Tensor layout {layout.value} is not supported")

        if batch != 1:
            raise UnsupportedFormatError(f"Only batch size 1 is supported, got {batch}")
        return cls(
            data=np.ascontiguousarray(a),
            width=int(width),
            height=int(height),
            channel=int(channel),
            layout=layout,
            batch=int(batch),
            name=name,
        )

    def check_shape(self, anchors_per_layer: int, num_classes: int) -> None:
        expected = anchors_per_layer * (num_classes + 5)
        if self.channel != expected:
            raise ShapeMismatchError(
                f"Feature map {self.name or '?'} has {self.channel} channels, expected "
                f"{anchors_per_layer} * ({num_classes} + 5) = {expected}"
            )

    def offsets(self, num_classes: int) -> OffsetStrategy:
        """Offset strategy for this tensor's layout, chosen once per feature map."""

        return offset_strategy(self.layout, self.width, self.height, self.channel, num_classes)


def offset_strategy(
    layout: FeatureMapLayout, width: int, height: int, channel: int, num_classes: int
) -> OffsetStrategy:
    layout = FeatureMapLayout(layout)
    if layout not in _STRATEGIES:
        raise UnsupportedFormatError(f"Tensor layout {layout.value} is not supported")
    return _STRATEGIES[layout](width, height, channel, num_classes)

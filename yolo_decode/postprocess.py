from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from .errors import ConfigError
from .feature_map import ActivationPolicy, RawFeatureMap
from .types import AnchorPair, Detection

logger = logging.getLogger(__name__)


def sigmoid(x):
    with np.errstate(over="ignore"):
        return 1 / (1 + np.exp(-x))


def softmax(logits: np.ndarray, axis: int = -1) -> np.ndarray:
    # Max shift keeps exp() finite and leaves the argmax unchanged
    shifted = logits - np.max(logits, axis=axis, keepdims=True)
    e = np.exp(shifted)
    return e / np.sum(e, axis=axis, keepdims=True)


def decode_feature_map(
    feature_map: RawFeatureMap,
    input_width: int,
    input_height: int,
    num_classes: int,
    anchors: Sequence[AnchorPair],
    conf_threshold: float,
) -> List[Detection]:
    """
    Decode one YOLO output layer into candidate boxes in model input pixels.

    Per grid cell (h, w) and anchor:

        bbox_x = (sigmoid(tx) + w) * stride
        bbox_y = (sigmoid(ty) + h) * stride
        bbox_w = exp(tw) * anchor_w / stride * stride
        bbox_h = exp(th) * anchor_h / stride * stride
        conf[c] = activation(class_score[c]) * sigmoid(obj)

    The centre is then moved to the top-left corner. A box is emitted when its
    best class confidence is >= conf_threshold. Output order is row-major over
    (h, w, anchor).
    """

    if input_width != input_height:
        raise ConfigError(f"Model input must be square, got {input_width}x{input_height}")
    if num_classes <= 0:
        raise ConfigError(f"num_classes must be > 0, got {num_classes}")

    anchors_per_layer = len(anchors)
    if anchors_per_layer == 0:
        raise ConfigError("Anchor subset is empty")
    feature_map.check_shape(anchors_per_layer, num_classes)

    stride = input_width // feature_map.width
    if stride <= 0:
        raise ConfigError(f"Feature map width {feature_map.width} exceeds model input width {input_width}")

    policy = ActivationPolicy.for_anchor_count(anchors_per_layer)
    offsets = feature_map.offsets(num_classes)
    logger.debug(
        "Decoding %s: %dx%dx%d, layout=%s, stride=%d, activation=%s",
        feature_map.name or "feature map",
        feature_map.height,
        feature_map.width,
        feature_map.channel,
        feature_map.layout.value,
        stride,
        policy.value,
    )

    grid_h, grid_w, anchor_idx = np.meshgrid(
        np.arange(feature_map.height),
        np.arange(feature_map.width),
        np.arange(anchors_per_layer),
        indexing="ij",
    )
    o = offsets(grid_h, grid_w, anchor_idx)
    data = feature_map.data

    anchor_wh = np.asarray(anchors, dtype=np.float32)
    s = np.float32(stride)

    bbox_x = (sigmoid(data[o.x]) + grid_w.astype(np.float32)) * s
    bbox_y = (sigmoid(data[o.y]) + grid_h.astype(np.float32)) * s
    bbox_w = np.exp(data[o.w]) * anchor_wh[:, 0] / s * s
    bbox_h = np.exp(data[o.h]) * anchor_wh[:, 1] / s * s
    objectness = sigmoid(data[o.objectness])

    bbox_x = bbox_x - bbox_w / 2
    bbox_y = bbox_y - bbox_h / 2

    class_offsets = o.scores[..., None] + np.arange(num_classes) * o.score_step
    class_scores = data[class_offsets]
    if policy is ActivationPolicy.SOFTMAX:
        class_prob = softmax(class_scores, axis=-1)
    else:
        class_prob = sigmoid(class_scores)
    conf = class_prob * objectness[..., None]

    best_class = np.argmax(conf, axis=-1)
    best_conf = np.take_along_axis(conf, best_class[..., None], axis=-1)[..., 0]

    keep = best_conf >= np.float32(conf_threshold)
    detections = [
        Detection(
            x=float(x),
            y=float(y),
            width=float(w),
            height=float(h),
            confidence=float(c),
            class_index=int(k),
        )
        for x, y, w, h, c, k in zip(
            bbox_x[keep], bbox_y[keep], bbox_w[keep], bbox_h[keep], best_conf[keep], best_class[keep]
        )
    ]
    logger.debug("%d candidates above threshold %.3f", len(detections), conf_threshold)
    return detections

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .types import Detection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.4


def _iou_one_to_many(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    """
    IoU of one (x, y, w, h) box against (N, 4) boxes.

    Intersection sides use the inclusive pixel convention (max - min + 1), while
    areas stay plain w * h.
    """

    x1min, y1min, w1, h1 = box
    x2min, y2min, w2, h2 = others[:, 0], others[:, 1], others[:, 2], others[:, 3]

    inter_w = np.maximum(0.0, np.minimum(x1min + w1, x2min + w2) - np.maximum(x1min, x2min) + 1)
    inter_h = np.maximum(0.0, np.minimum(y1min + h1, y2min + h2) - np.maximum(y1min, y2min) + 1)
    inter = inter_w * inter_h

    with np.errstate(divide="ignore", invalid="ignore"):
        return inter / (w1 * h1 + w2 * h2 - inter)


def _to_array(detections: Sequence[Detection]) -> np.ndarray:
    return np.array([[d.x, d.y, d.width, d.height] for d in detections], dtype=np.float64).reshape(-1, 4)


def box_iou(a: Detection, b: Detection) -> float:
    return float(_iou_one_to_many(_to_array([a])[0], _to_array([b]))[0])


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NMS over (N, 4) xywh boxes of a single class. Returns kept indices in
    pick order (highest score first).

    Scores are stably sorted ascending and picked from the back, so among equal
    scores the later input wins. Boxes with IoU > threshold against a pick are
    dropped for good.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(scores, kind="stable")
    keep = []

    while order.size > 0:
        i = order[-1]
        keep.append(i)
        rest = order[:-1]
        if rest.size == 0:
            break
        iou = _iou_one_to_many(boxes[i], boxes[rest])
        # NaN IoU (degenerate zero-area boxes) never exceeds the threshold
        order = rest[~(iou > cfg.iou_threshold)]

    return np.array(keep, dtype=np.int64)


def nms_boxes(detections: Sequence[Detection], num_classes: int, iou_threshold: float) -> List[Detection]:
    """
    Per-class NMS. Classes are processed in index order and their picks
    concatenated; boxes never suppress boxes of another class. Detections with
    a class index outside [0, num_classes) are dropped.
    """

    cfg = NMSConfig(iou_threshold=iou_threshold)
    kept: List[Detection] = []

    for cls in range(num_classes):
        class_dets = [d for d in detections if d.class_index == cls]
        if not class_dets:
            continue
        boxes = _to_array(class_dets)
        scores = np.array([d.confidence for d in class_dets], dtype=np.float64)
        kept.extend(class_dets[i] for i in nms(boxes, scores, cfg))

    logger.debug("NMS kept %d of %d detections", len(kept), len(detections))
    return kept

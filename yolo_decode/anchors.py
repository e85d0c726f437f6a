"""
Anchor table parsing and per-layer anchor selection.

Anchor files are plain text, e.g. for YOLOv3:

    10,13,  16,30,  33,23,  30,61,  62,45,  59,119,  116,90,  156,198,  373,326

Numbers are read pairwise as (width, height).
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Union

from .errors import ConfigError
from .types import AnchorPair

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_NUMBER_PREFIX = re.compile(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

# anchor count -> {stride: (start, stop)}
_ANCHOR_SLICES: Dict[int, Dict[int, Tuple[int, int]]] = {
    # YOLOv3: 3 output layers
    9: {32: (6, 9), 16: (3, 6), 8: (0, 3)},
    # Tiny YOLOv3: 2 output layers
    6: {32: (3, 6), 16: (0, 3)},
}

# YOLOv2 has a single output layer using every anchor (and softmax class scores)
SINGLE_SCALE_ANCHORS = 5


def _parse_number(token: str, strict: bool) -> float:
    # Reads the leading numeric prefix, "12abc" -> 12.0, "abc" -> 0.0
    match = _NUMBER_PREFIX.match(token)
    if match is None:
        if strict:
            raise ConfigError(f"Malformed anchor value: {token!r}")
        return 0.0
    if strict and token[match.end():].strip():
        raise ConfigError(f"Malformed anchor value: {token!r}")
    return float(match.group(0))


def parse_anchors(lines: Iterable[str], strict: bool = False) -> List[AnchorPair]:
    """
    Parse anchor lines into an ordered list of (width, height) pairs.

    A trailing value without a partner is ignored, as are blank lines. With
    `strict=False` malformed numbers are read as 0.0; with `strict=True` they
    raise ConfigError.
    """

    anchors: List[AnchorPair] = []
    for line in lines:
        if not line.strip():
            continue
        tokens = line.split(",")
        for i in range(0, len(tokens) - 1, 2):
            anchors.append((_parse_number(tokens[i], strict), _parse_number(tokens[i + 1], strict)))
    return anchors


def load_anchors(path: PathLike, strict: bool = False) -> List[AnchorPair]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Anchors file not found: {p}")
    with open(p, "r", encoding="utf-8") as f:
        anchors = parse_anchors(f, strict=strict)
    logger.debug("Loaded %d anchors from %s", len(anchors), p)
    return anchors


def select_anchor_subset(
    anchors: List[AnchorPair], feature_map_width: int, model_input_width: int
) -> List[AnchorPair]:
    """
    Pick the anchors that belong to a feature map, keyed by its stride.

    e.g. 416x416 input: 13x13 is stride 32, 26x26 stride 16, 52x52 stride 8.
    """

    if not anchors:
        raise ConfigError("Anchor table is empty")
    if feature_map_width <= 0:
        raise ConfigError(f"Invalid feature map width: {feature_map_width}")

    count = len(anchors)
    if count == SINGLE_SCALE_ANCHORS:
        return list(anchors)

    slices = _ANCHOR_SLICES.get(count)
    if slices is None:
        raise ConfigError(f"Invalid anchor count {count}; expected 5, 6 or 9")

    stride = model_input_width // feature_map_width
    if stride not in slices:
        raise ConfigError(f"Invalid feature map stride {stride} for {count} anchors")

    start, stop = slices[stride]
    return list(anchors[start:stop])

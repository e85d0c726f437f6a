"""
YOLO (v2 / v3 / tiny-v3) output decoding.

Turns the raw output layers of a YOLO model into de-duplicated boxes in original
image coordinates: anchor selection per stride, per-cell box decoding for NHWC
and NCHW tensors, confidence filtering, per-class NMS and letterbox inversion.
Core functionality only needs NumPy; OpenCV is used for image loading/resizing
and ONNX Runtime for the optional inference backend.
"""

from .anchors import load_anchors, parse_anchors, select_anchor_subset
from .config import InputConfig, PostprocessConfig
from .errors import ConfigError, DecodeError, ShapeMismatchError, UnsupportedFormatError
from .feature_map import ActivationPolicy, FeatureMapLayout, RawFeatureMap
from .letterbox import LetterboxTransform, adjust_boxes, compute_letterbox, letterbox_image, pad_to_square
from .metadata import load_class_names
from .nms import box_iou, nms_boxes
from .postprocess import decode_feature_map
from .runtime import YoloPipeline, decode_feature_maps, load_image, load_pipeline, postprocess, to_results
from .types import Detection, DetectionResult

__all__ = [
    "Detection",
    "DetectionResult",
    "DecodeError",
    "ConfigError",
    "UnsupportedFormatError",
    "ShapeMismatchError",
    "parse_anchors",
    "load_anchors",
    "select_anchor_subset",
    "LetterboxTransform",
    "compute_letterbox",
    "pad_to_square",
    "letterbox_image",
    "adjust_boxes",
    "FeatureMapLayout",
    "ActivationPolicy",
    "RawFeatureMap",
    "decode_feature_map",
    "decode_feature_maps",
    "box_iou",
    "nms_boxes",
    "postprocess",
    "to_results",
    "load_class_names",
    "load_image",
    "InputConfig",
    "PostprocessConfig",
    "YoloPipeline",
    "load_pipeline",
]

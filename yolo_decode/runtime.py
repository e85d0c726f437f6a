from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .anchors import load_anchors, select_anchor_subset
from .config import InputConfig, PostprocessConfig
from .errors import ConfigError
from .feature_map import FeatureMapLayout, RawFeatureMap
from .letterbox import LetterboxTransform, adjust_boxes, compute_letterbox, letterbox_image
from .metadata import load_class_names
from .nms import nms_boxes
from .postprocess import decode_feature_map
from .types import AnchorPair, Detection, DetectionResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    orig_size: Tuple[int, int]
    transform: LetterboxTransform


def check_layer_anchors(anchors: Sequence[AnchorPair], num_layers: int) -> None:
    # YOLOv3: 9 anchors / 3 layers, tiny: 6 / 2, YOLOv2: 5 / 1
    if num_layers > 1 and len(anchors) != 3 * num_layers:
        raise ConfigError(f"{len(anchors)} anchors do not match {num_layers} output layers (expected 3 per layer)")


def decode_feature_maps(
    feature_maps: Sequence[RawFeatureMap],
    anchors: Sequence[AnchorPair],
    input_size: Tuple[int, int],
    num_classes: int,
    conf_threshold: float,
    max_workers: int = 1,
) -> List[Detection]:
    """
    Decode every output layer and gather all candidates.

    Layers are independent; with max_workers > 1 they are decoded on a thread
    pool, and results are concatenated in layer order once all are done.
    """

    input_w, input_h = input_size
    check_layer_anchors(anchors, len(feature_maps))
    # Anchor subsets are resolved up front so config errors surface before any decode
    subsets = [select_anchor_subset(list(anchors), fm.width, input_w) for fm in feature_maps]

    def _decode(job: Tuple[RawFeatureMap, List[AnchorPair]]) -> List[Detection]:
        fm, subset = job
        return decode_feature_map(fm, input_w, input_h, num_classes, subset, conf_threshold)

    jobs = list(zip(feature_maps, subsets))
    if max_workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(jobs))) as pool:
            per_layer = list(pool.map(_decode, jobs))
    else:
        per_layer = [_decode(job) for job in jobs]

    candidates = [det for layer in per_layer for det in layer]
    logger.debug("Prediction list size before NMS: %d", len(candidates))
    return candidates


def postprocess(
    feature_maps: Sequence[RawFeatureMap],
    anchors: Sequence[AnchorPair],
    input_size: Tuple[int, int],
    orig_size: Tuple[int, int],
    num_classes: int,
    cfg: PostprocessConfig = PostprocessConfig(),
) -> List[Detection]:
    """
    decode -> per-class NMS -> letterbox inverse. Returns detections in
    original image coordinates.
    """

    transform = compute_letterbox(orig_size[0], orig_size[1], input_size[0], input_size[1])
    candidates = decode_feature_maps(
        feature_maps, anchors, input_size, num_classes, cfg.conf_threshold, max_workers=cfg.max_workers
    )
    kept = nms_boxes(candidates, num_classes, cfg.iou_threshold)
    return adjust_boxes(kept, transform)


def to_results(detections: Sequence[Detection], class_names: Sequence[str]) -> List[DetectionResult]:
    """
    Convert detections to labelled records with integer corners (truncated toward zero).
    """

    results = []
    for det in detections:
        x1, y1, x2, y2 = det.as_xyxy()
        results.append(
            DetectionResult(
                class_name=class_names[det.class_index],
                confidence=det.confidence,
                top_left=(int(x1), int(y1)),
                bottom_right=(int(x2), int(y2)),
            )
        )
    return results


def load_image(path: PathLike, channels: int = 3) -> np.ndarray:
    """Load an image as (H, W, C) uint8, RGB order for 3 channels."""

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for load_image(). Install with `pip install opencv-python`.") from e

    flag = cv2.IMREAD_GRAYSCALE if channels == 1 else cv2.IMREAD_COLOR
    img = cv2.imread(str(path), flag)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")
    if channels == 1:
        return img[:, :, None]
    return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)


class YoloPipeline:
    """
    Plug-and-play pipeline: letterbox -> inference -> decode -> NMS -> rescale.

    `infer_fn` takes the preprocessed blob and returns the raw output layers.
    """

    def __init__(
        self,
        infer_fn: Callable[[np.ndarray], List[RawFeatureMap]],
        *,
        anchors: Sequence[AnchorPair],
        class_names: Sequence[str],
        input_size: Tuple[int, int],
        input_layout: FeatureMapLayout = FeatureMapLayout.CHANNEL_MAJOR,
        backend: Optional[object] = None,
        input_cfg: InputConfig = InputConfig(),
        post_cfg: PostprocessConfig = PostprocessConfig(),
    ):
        if input_size[0] != input_size[1]:
            raise ConfigError(f"Model input must be square, got {input_size[0]}x{input_size[1]}")
        if not class_names:
            raise ConfigError("No class names given")
        if not anchors:
            raise ConfigError("Anchor table is empty")

        self._infer_fn = infer_fn
        self.backend = backend
        self.anchors = list(anchors)
        self.class_names = list(class_names)
        self.input_size = input_size
        self.input_layout = FeatureMapLayout(input_layout)
        self.input_cfg = input_cfg
        self.post_cfg = post_cfg

    @property
    def num_classes(self) -> int:
        return len(self.class_names)

    def preprocess(self, image: np.ndarray) -> PreprocessResult:
        if image is None or not hasattr(image, "shape"):
            raise TypeError("image must be a NumPy array.")
        if image.ndim != 3:
            raise ValueError(f"Expected image shape (H, W, C), got {getattr(image, 'shape', None)}")

        orig_h, orig_w = image.shape[:2]
        img, transform = letterbox_image(image, self.input_size)

        blob = (img.astype(np.float32) - self.input_cfg.input_mean) / self.input_cfg.input_std
        if self.input_layout is FeatureMapLayout.CHANNEL_MAJOR:
            blob = np.transpose(blob, (2, 0, 1))
        blob = np.ascontiguousarray(blob[None, ...], dtype=np.float32)

        return PreprocessResult(blob=blob, orig_size=(orig_w, orig_h), transform=transform)

    def infer(self, blob: np.ndarray) -> List[RawFeatureMap]:
        return self._infer_fn(blob)

    def decode(self, feature_maps: Sequence[RawFeatureMap]) -> List[Detection]:
        return decode_feature_maps(
            feature_maps,
            self.anchors,
            self.input_size,
            self.num_classes,
            self.post_cfg.conf_threshold,
            max_workers=self.post_cfg.max_workers,
        )

    def suppress(self, candidates: Sequence[Detection]) -> List[Detection]:
        return nms_boxes(candidates, self.num_classes, self.post_cfg.iou_threshold)

    def postprocess(self, feature_maps: Sequence[RawFeatureMap], prep: PreprocessResult) -> List[Detection]:
        kept = self.suppress(self.decode(feature_maps))
        return adjust_boxes(kept, prep.transform)

    def results(self, detections: Sequence[Detection]) -> List[DetectionResult]:
        return to_results(detections, self.class_names)

    def __call__(self, image: np.ndarray) -> List[DetectionResult]:
        prep = self.preprocess(image)
        feature_maps = self.infer(prep.blob)
        return self.results(self.postprocess(feature_maps, prep))


def load_pipeline(
    model_path: PathLike,
    anchors_path: PathLike,
    classes_path: PathLike,
    *,
    input_cfg: InputConfig = InputConfig(),
    post_cfg: PostprocessConfig = PostprocessConfig(),
    strict_anchors: bool = False,
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    output_layout: FeatureMapLayout = FeatureMapLayout.CHANNEL_MAJOR,
    num_threads: int = 0,
) -> YoloPipeline:
    """
    Create a pipeline for an ONNX model on disk.

        pipe = load_pipeline("yolov3.onnx", "yolo3_anchors.txt", "coco_classes.txt")
        for r in pipe(load_image("dog.jpg")):
            print(r)
    """

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    class_names = load_class_names(classes_path)
    anchors = load_anchors(anchors_path, strict=strict_anchors)
    logger.info("num_classes: %d, anchors: %d", len(class_names), len(anchors))

    ort_backend = OnnxRuntimeBackend(
        model_path,
        OnnxRuntimeBackendConfig(
            providers=onnx_providers,
            input_name=onnx_input_name,
            output_layout=output_layout,
            num_threads=num_threads,
        ),
    )
    return YoloPipeline(
        ort_backend.infer,
        anchors=anchors,
        class_names=class_names,
        input_size=ort_backend.input_size,
        input_layout=ort_backend.input_layout,
        backend=ort_backend,
        input_cfg=input_cfg,
        post_cfg=post_cfg,
    )

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, List, Tuple

import numpy as np

from .errors import ConfigError
from .types import Detection


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Square letterbox placement of an image.

    scale maps model input pixels back to original pixels; (x_offset, y_offset)
    is where the original image sits inside the square canvas.
    """

    scale: float
    x_offset: int
    y_offset: int
    square_dim: int

    @property
    def is_identity(self) -> bool:
        return self.scale == 1.0 and self.x_offset == 0 and self.y_offset == 0


def compute_letterbox(
    image_width: int, image_height: int, input_width: int, input_height: int
) -> LetterboxTransform:
    if input_width != input_height:
        raise ConfigError(f"Model input must be square, got {input_width}x{input_height}")
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"Invalid image size {image_width}x{image_height}")

    square_dim = max(image_width, image_height)
    scale = float(square_dim) / float(input_width)

    # Shorter side is centered, longer side touches the border
    if image_width > image_height:
        x_offset, y_offset = 0, (image_width - image_height) // 2
    else:
        x_offset, y_offset = (image_height - image_width) // 2, 0

    return LetterboxTransform(scale=scale, x_offset=x_offset, y_offset=y_offset, square_dim=square_dim)


def pad_to_square(pixels: np.ndarray, transform: LetterboxTransform) -> np.ndarray:
    """
    Paste an (H, W, C) image into a zero-filled square canvas.

    Square inputs are returned as-is, without a copy.
    """

    if pixels.ndim != 3:
        raise ValueError(f"Expected image shape (H, W, C), got {pixels.shape}")

    h, w, c = pixels.shape
    if h == w:
        return pixels

    dim = transform.square_dim
    canvas = np.zeros((dim, dim, c), dtype=pixels.dtype)
    canvas[transform.y_offset : transform.y_offset + h, transform.x_offset : transform.x_offset + w] = pixels
    return canvas


def letterbox_image(
    pixels: np.ndarray, input_size: Tuple[int, int]
) -> Tuple[np.ndarray, LetterboxTransform]:
    """
    Pad an image to square then resize it to the (width, height) model input.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox_image(). Install with `pip install opencv-python`.") from e

    if pixels.ndim != 3:
        raise ValueError(f"Expected image shape (H, W, C), got {pixels.shape}")

    h, w = pixels.shape[:2]
    input_w, input_h = input_size
    transform = compute_letterbox(w, h, input_w, input_h)
    square = pad_to_square(pixels, transform)

    if square.shape[:2] != (input_h, input_w):
        square = cv2.resize(square, (input_w, input_h), interpolation=cv2.INTER_LINEAR)
        # cv2 drops the channel axis of single channel images
        if square.ndim == 2:
            square = square[:, :, None]

    return square, transform


def adjust_boxes(detections: Iterable[Detection], transform: LetterboxTransform) -> List[Detection]:
    """
    Map letterboxed detections back to original image coordinates.
    """

    s = transform.scale
    return [
        replace(
            det,
            x=det.x * s - transform.x_offset,
            y=det.y * s - transform.y_offset,
            width=det.width * s,
            height=det.height * s,
        )
        for det in detections
    ]

from dataclasses import dataclass
from typing import Tuple

AnchorPair = Tuple[float, float]


@dataclass(frozen=True)
class Detection:
    """
    Single decoded box. (x, y) is the top-left corner in whatever space the box
    currently lives in: model input space after decoding, original image space
    after `adjust_boxes`.
    """

    x: float
    y: float
    width: float
    height: float
    confidence: float
    class_index: int

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.width, self.y + self.height


@dataclass(frozen=True)
class DetectionResult:
    class_name: str
    confidence: float
    top_left: Tuple[int, int]
    bottom_right: Tuple[int, int]

    def __str__(self) -> str:
        return (
            f"{self.class_name} {self.confidence:f} "
            f"({self.top_left[0]}, {self.top_left[1]}) ({self.bottom_right[0]}, {self.bottom_right[1]})"
        )

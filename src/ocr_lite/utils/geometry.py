"""
Geometry primitives for the OCR pipeline.

Provides:
- Axis-aligned bounding boxes (intersection, IoU, clipping)
- Detected text regions and recognized text blocks
- Letterbox metadata and the inverse coordinate transform
"""

import math
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, Dict, Any


# ============================================================================
# Bounding Box
# ============================================================================

@dataclass(frozen=True)
class BoundingBox:
    """Bounding box with corner coordinates (x2, y2 exclusive)."""
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return max(0, self.width) * max(0, self.height)

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)

    def to_xywh(self) -> Tuple[float, float, float, float]:
        return (self.x1, self.y1, self.width, self.height)

    @classmethod
    def from_xywh(cls, x: float, y: float, w: float, h: float) -> 'BoundingBox':
        return cls(x, y, x + w, y + h)

    def intersection_area(self, other: 'BoundingBox') -> float:
        x1 = max(self.x1, other.x1)
        y1 = max(self.y1, other.y1)
        x2 = min(self.x2, other.x2)
        y2 = min(self.y2, other.y2)
        return max(0, x2 - x1) * max(0, y2 - y1)

    def iou(self, other: 'BoundingBox') -> float:
        inter = self.intersection_area(other)
        union = self.area + other.area - inter
        return inter / union if union > 0 else 0.0

    def expand_vertical(self, ratio: float) -> 'BoundingBox':
        """Grow the box upward and downward by ``ratio`` of its own height."""
        delta = self.height * ratio
        return BoundingBox(self.x1, self.y1 - delta, self.x2, self.y2 + delta)

    def clip(self, width: float, height: float) -> 'BoundingBox':
        """Clamp to [0, width] x [0, height]."""
        return BoundingBox(
            max(0, self.x1),
            max(0, self.y1),
            min(width, self.x2),
            min(height, self.y2),
        )

    def rounded(self) -> 'BoundingBox':
        return BoundingBox(
            round_half_up(self.x1),
            round_half_up(self.y1),
            round_half_up(self.x2),
            round_half_up(self.y2),
        )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +inf."""
    return int(math.floor(value + 0.5))


# ============================================================================
# Regions and Blocks
# ============================================================================

@dataclass(frozen=True)
class TextRegion:
    """A detected text region in original image coordinates."""
    x: int
    y: int
    width: int
    height: int
    confidence: float
    class_id: int = 0
    char_count_category: Optional[int] = None

    @property
    def bbox(self) -> BoundingBox:
        return BoundingBox.from_xywh(self.x, self.y, self.width, self.height)

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "confidence": self.confidence,
            "class_id": self.class_id,
            "char_count_category": self.char_count_category,
        }


@dataclass(frozen=True)
class TextBlock(TextRegion):
    """A text region with recognized text and, once ordered, its reading order."""
    text: str = ""
    reading_order: Optional[int] = None

    @classmethod
    def from_region(cls, region: TextRegion, text: str) -> 'TextBlock':
        return cls(
            x=region.x,
            y=region.y,
            width=region.width,
            height=region.height,
            confidence=region.confidence,
            class_id=region.class_id,
            char_count_category=region.char_count_category,
            text=text,
        )

    def with_reading_order(self, order: int) -> 'TextBlock':
        return replace(self, reading_order=order)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["text"] = self.text
        data["reading_order"] = self.reading_order
        return data


def region_iou(a: TextRegion, b: TextRegion) -> float:
    """IoU of two regions' axis-aligned boxes."""
    return a.bbox.iou(b.bbox)


# ============================================================================
# Letterbox Metadata
# ============================================================================

@dataclass(frozen=True)
class PreprocessMetadata:
    """Parameters needed to undo the letterbox transform."""
    original_width: int
    original_height: int
    max_wh: int
    input_width: int
    input_height: int
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)


def remap_from_input(
    box: BoundingBox,
    metadata: PreprocessMetadata
) -> BoundingBox:
    """
    Map a box from network input space back to original image space.

    The image was placed at the top-left of a ``max_wh`` square and that
    square resized to the input resolution, so normalising by the input
    size and scaling by ``max_wh`` lands in original pixel coordinates.
    """
    square = metadata.max_wh
    return BoundingBox(
        box.x1 / metadata.input_width * square,
        box.y1 / metadata.input_height * square,
        box.x2 / metadata.input_width * square,
        box.y2 / metadata.input_height * square,
    )

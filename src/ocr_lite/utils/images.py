"""
Image utilities for the OCR pipeline.

Provides:
- Pixel buffer normalisation (gray / RGB / RGBA -> RGB)
- Letterboxing for the fixed-size layout detector input
- NCHW tensor construction
- Region cropping and recognizer input preparation
- Debug visualization
"""

import logging
from typing import Tuple, Optional, List, Sequence
import numpy as np

from .geometry import PreprocessMetadata, TextRegion, TextBlock

logger = logging.getLogger(__name__)


# ============================================================================
# Pixel Buffers
# ============================================================================

def ensure_rgb(image: np.ndarray) -> np.ndarray:
    """
    Convert an image to 3-channel RGB.

    Args:
        image: HxW, HxWx1, HxWx3 (RGB) or HxWx4 (RGBA) uint8 array

    Returns:
        HxWx3 RGB array
    """
    import cv2

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    if image.ndim == 3:
        channels = image.shape[2]
        if channels == 3:
            return image
        if channels == 4:
            return cv2.cvtColor(image, cv2.COLOR_RGBA2RGB)
        if channels == 1:
            return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2RGB)

    raise ValueError(f"Unexpected image shape: {image.shape}")


def from_rgba_buffer(data: bytes, width: int, height: int) -> np.ndarray:
    """
    Build an RGB image from a decoded RGBA byte buffer.

    Args:
        data: Row-major RGBA bytes (width * height * 4)
        width: Image width in pixels
        height: Image height in pixels

    Returns:
        HxWx3 RGB array
    """
    expected = width * height * 4
    if len(data) != expected:
        raise ValueError(
            f"RGBA buffer has {len(data)} bytes, expected {expected} for {width}x{height}"
        )
    rgba = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4)
    return ensure_rgb(rgba)


# ============================================================================
# Detector Input
# ============================================================================

def letterbox(
    image: np.ndarray,
    input_size: int = 1024
) -> Tuple[np.ndarray, PreprocessMetadata]:
    """
    Pad an image to a square and resize it to the detector input size.

    The image is placed at the top-left of a black ``max(w, h)`` square, so
    padding only extends to the right or bottom.

    Args:
        image: Input image (any layout accepted by ensure_rgb)
        input_size: Side length of the square network input

    Returns:
        Tuple of (resized RGB image, metadata to undo the transform)
    """
    import cv2

    rgb = ensure_rgb(image)
    h, w = rgb.shape[:2]
    max_wh = max(w, h)

    canvas = np.zeros((max_wh, max_wh, 3), dtype=np.uint8)
    canvas[:h, :w] = rgb

    resized = cv2.resize(canvas, (input_size, input_size), interpolation=cv2.INTER_LINEAR)

    metadata = PreprocessMetadata(
        original_width=w,
        original_height=h,
        max_wh=max_wh,
        input_width=input_size,
        input_height=input_size,
    )
    logger.debug(f"Letterboxed {w}x{h} -> {max_wh}x{max_wh} -> {input_size}x{input_size}")
    return resized, metadata


def to_nchw_tensor(
    image: np.ndarray,
    mean: Sequence[float],
    std: Sequence[float]
) -> np.ndarray:
    """
    Normalise an RGB image per channel and lay it out as [1, 3, H, W].
    """
    data = image.astype(np.float32)
    data = (data - np.asarray(mean, dtype=np.float32)) / np.asarray(std, dtype=np.float32)
    return np.ascontiguousarray(data.transpose(2, 0, 1)[np.newaxis, ...])


# ============================================================================
# Recognizer Input
# ============================================================================

def crop_region(image: np.ndarray, region: TextRegion) -> np.ndarray:
    """Extract a region from an image."""
    crop = image[region.y:region.y + region.height, region.x:region.x + region.width]
    if crop.size == 0:
        raise ValueError(
            f"Empty crop for region at ({region.x}, {region.y}) "
            f"size {region.width}x{region.height}"
        )
    return crop


def prepare_recognition_input(
    crop: np.ndarray,
    height: int,
    width: int,
    rotate_vertical: bool = True
) -> np.ndarray:
    """
    Resize a line crop to a recognizer's fixed input shape.

    Vertical lines (taller than wide) are rotated 90 degrees
    counter-clockwise so characters run left to right.

    Args:
        crop: Region image
        height: Recognizer input height
        width: Recognizer input width
        rotate_vertical: Rotate tall crops before resizing

    Returns:
        float32 tensor of shape [1, 3, height, width] in [-1, 1]
    """
    import cv2

    rgb = ensure_rgb(crop)
    h, w = rgb.shape[:2]
    if rotate_vertical and h > w:
        rgb = cv2.rotate(rgb, cv2.ROTATE_90_COUNTERCLOCKWISE)

    resized = cv2.resize(rgb, (width, height), interpolation=cv2.INTER_LINEAR)
    return to_nchw_tensor(resized, mean=(127.5, 127.5, 127.5), std=(127.5, 127.5, 127.5))


# ============================================================================
# Debug Visualization
# ============================================================================

def draw_debug_image(
    image: np.ndarray,
    blocks: List[TextRegion],
    color: Tuple[int, int, int] = (255, 0, 0),
    line_width: int = 2
) -> np.ndarray:
    """
    Draw region boxes on an image for debugging.

    Blocks that carry a reading order get it drawn as a label.

    Args:
        image: Input image
        blocks: Regions or blocks to draw
        color: Box color (RGB)
        line_width: Line thickness

    Returns:
        RGB image with drawn boxes
    """
    import cv2

    debug_img = ensure_rgb(image).copy()

    for block in blocks:
        x, y, w, h = block.x, block.y, block.width, block.height
        cv2.rectangle(debug_img, (x, y), (x + w, y + h), color, line_width)

        label: Optional[str] = None
        if isinstance(block, TextBlock) and block.reading_order is not None:
            label = str(block.reading_order)
        if label:
            cv2.putText(
                debug_img,
                label,
                (x, max(y - 5, 10)),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.5,
                color,
                1
            )

    return debug_img

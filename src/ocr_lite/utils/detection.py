"""
Layout detection module.

Provides:
- Decoding of raw detector output into text regions
- Non-maximum suppression
- LayoutDetector: letterbox -> inference -> decode for one image

Two raw output layouts are supported:
- ``{"dets": [1, N, 5], "labels": [1, N]}`` (optionally ``char_count``)
- a single packed output ``[1, N, stride]`` with rows
  ``x1, y1, x2, y2, score, label[, char_count_category]``
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Dict, Any, Callable
import numpy as np

from ..config import DetectionConfig
from .geometry import (
    BoundingBox,
    PreprocessMetadata,
    TextRegion,
    region_iou,
    remap_from_input,
)
from .images import letterbox, to_nchw_tensor

logger = logging.getLogger(__name__)

CHAR_COUNT_KEYS = ("char_count", "char_counts")


class DecodeError(ValueError):
    """Raw detector output did not have the expected keys or shape."""


@dataclass
class LayoutResult:
    """Result of layout detection for one image."""
    regions: List[TextRegion]
    page_width: int
    page_height: int
    decode_error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.decode_error is None


# ============================================================================
# Raw Output Parsing
# ============================================================================

def parse_raw_output(
    raw_output: Any
) -> Tuple[np.ndarray, np.ndarray, Optional[np.ndarray]]:
    """
    Normalise detector output to parallel arrays.

    Returns:
        Tuple of (dets [N, 5] float64, labels [N] int64, char counts [N] or None)

    Raises:
        DecodeError: If neither supported layout is present
    """
    if not isinstance(raw_output, Mapping) or len(raw_output) == 0:
        raise DecodeError("detector returned no outputs")

    if "dets" in raw_output and "labels" in raw_output:
        dets = np.asarray(raw_output["dets"], dtype=np.float64)
        labels = np.asarray(raw_output["labels"]).reshape(-1)
        if dets.size % 5 != 0:
            raise DecodeError(f"dets has {dets.size} values, not a multiple of 5")
        dets = dets.reshape(-1, 5)
        if len(labels) != len(dets):
            raise DecodeError(f"{len(dets)} boxes but {len(labels)} labels")

        char_counts = None
        for key in CHAR_COUNT_KEYS:
            if key in raw_output:
                char_counts = np.asarray(raw_output[key]).reshape(-1)
                if len(char_counts) != len(dets):
                    raise DecodeError(f"{len(dets)} boxes but {len(char_counts)} {key} values")
                break
        return dets, labels.astype(np.int64), char_counts

    # Packed layout: first output, one detection per row
    first_key = next(iter(raw_output))
    packed = np.asarray(raw_output[first_key], dtype=np.float64)
    if packed.ndim == 3:
        if packed.shape[0] != 1:
            raise DecodeError(f"expected batch size 1, got output shape {packed.shape}")
        packed = packed[0]
    if packed.ndim != 2 or packed.shape[-1] < 6:
        raise DecodeError(f"output '{first_key}' has unsupported shape {packed.shape}")

    dets = packed[:, :5]
    labels = np.nan_to_num(packed[:, 5]).astype(np.int64)
    char_counts = packed[:, 6] if packed.shape[1] >= 7 else None
    return dets, labels, char_counts


# ============================================================================
# Region Decoder
# ============================================================================

class RegionDecoder:
    """Turns raw detector output into filtered, de-duplicated text regions."""

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or DetectionConfig()

    def decode(
        self,
        raw_output: Any,
        metadata: PreprocessMetadata,
        strict: bool = False
    ) -> List[TextRegion]:
        """
        Decode detector output into regions in original image coordinates.

        Args:
            raw_output: Mapping of output name to array
            metadata: Letterbox metadata for the image
            strict: Raise DecodeError on malformed output instead of
                returning an empty list

        Returns:
            NMS survivors, highest confidence first
        """
        try:
            dets, labels, char_counts = parse_raw_output(raw_output)
        except DecodeError as e:
            if strict:
                raise
            logger.warning(f"Malformed detector output, no regions decoded: {e}")
            return []

        if len(dets) == 0:
            logger.debug("Detector returned zero detections")
            return []

        cfg = self.config
        regions = []
        for i in range(len(dets)):
            x1, y1, x2, y2, score = dets[i]
            if not np.all(np.isfinite(dets[i])) or score < cfg.score_threshold:
                continue

            box = remap_from_input(BoundingBox(x1, y1, x2, y2), metadata)
            box = box.expand_vertical(cfg.box_expand_ratio)
            box = box.clip(metadata.original_width, metadata.original_height).rounded()

            width = int(box.x2 - box.x1)
            height = int(box.y2 - box.y1)
            if width < cfg.min_box_size or height < cfg.min_box_size:
                continue

            category = None
            if char_counts is not None and np.isfinite(char_counts[i]):
                category = int(char_counts[i])

            regions.append(TextRegion(
                x=int(box.x1),
                y=int(box.y1),
                width=width,
                height=height,
                confidence=float(score),
                class_id=int(labels[i]),
                char_count_category=category,
            ))

        kept = non_max_suppression(regions, cfg.iou_threshold)
        logger.debug(
            f"Decoded {len(dets)} detections -> {len(regions)} after filtering "
            f"-> {len(kept)} after NMS"
        )
        return kept


def non_max_suppression(
    regions: List[TextRegion],
    iou_threshold: float = 0.5
) -> List[TextRegion]:
    """
    Greedy NMS: keep the most confident region of every overlapping group.

    A region is suppressed when its IoU with an already kept region
    exceeds ``iou_threshold``.
    """
    if not regions:
        return []

    ordered = sorted(regions, key=lambda r: r.confidence, reverse=True)
    keep = []
    suppressed = set()

    for i, region in enumerate(ordered):
        if i in suppressed:
            continue
        keep.append(region)

        for j in range(i + 1, len(ordered)):
            if j in suppressed:
                continue
            if region_iou(region, ordered[j]) > iou_threshold:
                suppressed.add(j)

    return keep


# ============================================================================
# Layout Detector
# ============================================================================

class LayoutDetector:
    """
    Detects text regions with a fixed-input-size detection model.

    The session is any object exposing ``run(feeds) -> {name: array}``.
    """

    def __init__(self, session: Any, config: Optional[DetectionConfig] = None):
        self.session = session
        self.config = config or DetectionConfig()
        self.decoder = RegionDecoder(self.config)

        input_names = getattr(session, "input_names", None)
        self.input_name = input_names[0] if input_names else "input"

    def detect(
        self,
        image: np.ndarray,
        on_progress: Optional[Callable[[float], None]] = None
    ) -> LayoutResult:
        """
        Detect text regions in an image.

        Args:
            image: Input image (RGB, RGBA or grayscale)
            on_progress: Optional callback receiving fractions in [0, 1]

        Returns:
            LayoutResult; ``decode_error`` is set when the model output
            could not be parsed
        """
        def report(fraction: float):
            if on_progress is not None:
                on_progress(fraction)

        report(0.1)
        resized, metadata = letterbox(image, self.config.input_size)
        tensor = to_nchw_tensor(resized, self.config.mean, self.config.std)

        report(0.5)
        output = self.session.run({self.input_name: tensor})

        report(0.8)
        decode_error = None
        try:
            regions = self.decoder.decode(output, metadata, strict=True)
        except DecodeError as e:
            logger.warning(f"Layout decode failed: {e}")
            decode_error = str(e)
            regions = []

        report(1.0)
        if decode_error is None:
            logger.info(f"{len(regions)} regions detected")

        return LayoutResult(
            regions=regions,
            page_width=metadata.original_width,
            page_height=metadata.original_height,
            decode_error=decode_error,
        )

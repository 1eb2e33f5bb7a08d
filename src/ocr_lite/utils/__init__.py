"""
Utility modules for the OCR pipeline.
"""

from .geometry import BoundingBox, TextRegion, TextBlock, PreprocessMetadata
from .detection import LayoutDetector, LayoutResult, RegionDecoder, DecodeError, non_max_suppression
from .recognition import (
    CharCountCategory, RecognitionStrategy, RecognitionDispatcher,
    RecognitionError, TextRecognizer, select_strategy,
)
from .reading_order import ReadingOrderProcessor, ReadingDirection, ColumnDirection
from .inference import InferenceSession, ModelInitializationError, load_session
from .pipeline import OCRPipeline, PageResult, BatchResult, ProgressEvent
from .worker import OCRWorker

__all__ = [
    # Geometry
    "BoundingBox", "TextRegion", "TextBlock", "PreprocessMetadata",
    # Detection
    "LayoutDetector", "LayoutResult", "RegionDecoder", "DecodeError", "non_max_suppression",
    # Recognition
    "CharCountCategory", "RecognitionStrategy", "RecognitionDispatcher",
    "RecognitionError", "TextRecognizer", "select_strategy",
    # Reading order
    "ReadingOrderProcessor", "ReadingDirection", "ColumnDirection",
    # Inference
    "InferenceSession", "ModelInitializationError", "load_session",
    # Pipeline
    "OCRPipeline", "PageResult", "BatchResult", "ProgressEvent", "OCRWorker",
]

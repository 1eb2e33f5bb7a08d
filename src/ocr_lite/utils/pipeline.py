"""
Pipeline orchestration.

Provides:
- Page and batch result models
- OCRPipeline: layout detection -> cascade recognition -> reading order,
  one image at a time, with progress events
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Callable, Iterable
import numpy as np

from ..config import PipelineConfig, get_config
from .detection import LayoutDetector
from .geometry import TextBlock
from .images import ensure_rgb
from .inference import ModelInitializationError, load_session
from .reading_order import ReadingOrderProcessor
from .recognition import (
    RecognitionDispatcher,
    RecognitionError,
    RecognitionStrategy,
    TextRecognizer,
    load_charset,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class ProgressEvent:
    """Advisory progress notification."""
    stage: str
    progress: float
    message: str
    image_id: Optional[str] = None


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class PageResult:
    """OCR result for a single image."""
    image_id: str
    page_number: int
    width: int = 0
    height: int = 0
    blocks: List[TextBlock] = field(default_factory=list)
    text: str = ""
    status: str = "success"  # success, decode_error, failed
    error: Optional[str] = None
    regions_detected: int = 0
    failed_regions: int = 0
    processing_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_id": self.image_id,
            "page_number": self.page_number,
            "width": self.width,
            "height": self.height,
            "status": self.status,
            "error": self.error,
            "regions_detected": self.regions_detected,
            "failed_regions": self.failed_regions,
            "processing_time": round(self.processing_time, 3),
            "blocks": [b.to_dict() for b in self.blocks],
            "text": self.text,
        }


@dataclass
class BatchResult:
    """Results for a batch of images, in submission order."""
    pages: List[PageResult] = field(default_factory=list)
    cancelled: bool = False
    processing_time: float = 0.0

    @property
    def full_text(self) -> str:
        return "\n\n".join(p.text for p in self.pages if p.text)

    @property
    def pages_failed(self) -> int:
        return sum(1 for p in self.pages if p.status in ("failed", "decode_error"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pages": [p.to_dict() for p in self.pages],
            "pages_processed": len(self.pages),
            "pages_failed": self.pages_failed,
            "cancelled": self.cancelled,
            "processing_time": round(self.processing_time, 2),
            "text": self.full_text,
        }


def full_text(blocks: List[TextBlock]) -> str:
    """Join non-empty block texts with newlines, in reading order."""
    return "\n".join(b.text for b in blocks if b.text)


# ============================================================================
# Pipeline
# ============================================================================

class OCRPipeline:
    """
    Runs detection, recognition and reading order for each image.

    Components can be injected; otherwise they are built from model files
    by initialize(). The pipeline is not thread-safe: a single caller (or
    the OCRWorker thread) owns it.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        layout_detector: Optional[LayoutDetector] = None,
        dispatcher: Optional[RecognitionDispatcher] = None,
        on_progress: Optional[ProgressCallback] = None
    ):
        self.config = config or get_config()
        self.layout_detector = layout_detector
        self.dispatcher = dispatcher
        self.on_progress = on_progress
        self.reading_order = ReadingOrderProcessor(
            min_confidence=self.config.reading_order.min_confidence
        )

    @property
    def is_initialized(self) -> bool:
        return self.layout_detector is not None and self.dispatcher is not None

    def _emit(
        self,
        stage: str,
        progress: float,
        message: str,
        image_id: Optional[str] = None
    ):
        if self.on_progress is None:
            return
        try:
            self.on_progress(ProgressEvent(stage, min(max(progress, 0.0), 1.0), message, image_id))
        except Exception as e:
            logger.debug(f"Progress callback raised: {e}")

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(self):
        """
        Load any components that were not injected.

        Raises:
            ModelInitializationError: If a model or the charset cannot be loaded
        """
        if self.is_initialized:
            return

        models = self.config.models
        rec_cfg = self.config.recognition
        self._emit("initializing", 0.02, "Initializing...")

        if self.layout_detector is None:
            self._emit("loading_layout_model", 0.05, "Loading layout model...")
            session = load_session(models.path_for(models.layout_model), models.num_threads)
            self.layout_detector = LayoutDetector(session, self.config.detection)

        if self.dispatcher is None:
            charset_path = models.path_for(models.charset_file)
            try:
                charset = load_charset(charset_path)
            except (OSError, UnicodeDecodeError) as e:
                raise ModelInitializationError(f"Failed to load charset {charset_path}: {e}") from e

            if rec_cfg.cascade:
                specs = [
                    (RecognitionStrategy.SHORT, models.short_model, rec_cfg.short_shape, 0.25),
                    (RecognitionStrategy.MEDIUM, models.medium_model, rec_cfg.medium_shape, 0.45),
                    (RecognitionStrategy.LONG, models.long_model, rec_cfg.long_shape, 0.65),
                ]
            else:
                specs = [
                    (RecognitionStrategy.SINGLE, models.single_model, rec_cfg.single_shape, 0.25),
                ]

            recognizers = {}
            for strategy, filename, shape, progress in specs:
                self._emit(
                    "loading_recognition_model",
                    progress,
                    f"Loading recognition model ({strategy.value})..."
                )
                session = load_session(models.path_for(filename), models.num_threads)
                recognizers[strategy] = TextRecognizer(
                    session, shape, charset, rotate_vertical=rec_cfg.rotate_vertical
                )
            self.dispatcher = RecognitionDispatcher(recognizers)

        self._emit("initialized", 1.0, "Ready")

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_image(
        self,
        image: np.ndarray,
        image_id: Optional[str] = None,
        page_number: int = 1
    ) -> PageResult:
        """
        Run the full pipeline on one image.

        Failures are contained: a failing region gets empty text, and any
        other error marks the page as failed instead of raising.
        """
        if not self.is_initialized:
            self.initialize()

        image_id = image_id or str(uuid.uuid4())
        start_time = time.time()
        result = PageResult(image_id=image_id, page_number=page_number)

        try:
            rgb = ensure_rgb(np.asarray(image))
            result.height, result.width = rgb.shape[:2]
            logger.info(f"Processing page {page_number} ({result.width}x{result.height})")

            # 1. Layout detection
            self._emit("layout_detection", 0.1, "Detecting text regions...", image_id)
            layout = self.layout_detector.detect(
                rgb,
                on_progress=lambda p: self._emit(
                    "layout_detection",
                    0.1 + p * 0.3,
                    f"Detecting regions... {round(p * 100)}%",
                    image_id
                )
            )
            if layout.decode_error is not None:
                result.status = "decode_error"
                result.error = layout.decode_error
            regions = layout.regions
            result.regions_detected = len(regions)

            # 2. Cascade recognition
            self._emit(
                "text_recognition",
                0.4,
                f"Recognizing text in {len(regions)} regions...",
                image_id
            )
            recognized = []
            for i, region in enumerate(regions):
                try:
                    text = self.dispatcher.recognize(region, rgb)
                except RecognitionError as e:
                    logger.warning(str(e))
                    result.failed_regions += 1
                    text = ""
                recognized.append(TextBlock.from_region(region, text))
                self._emit(
                    "text_recognition",
                    0.4 + ((i + 1) / len(regions)) * 0.4,
                    f"Recognized {i + 1}/{len(regions)} regions",
                    image_id
                )

            # 3. Reading order
            self._emit("reading_order", 0.8, "Processing reading order...", image_id)
            order_cfg = self.config.reading_order
            result.blocks = self.reading_order.process(
                recognized,
                reading_direction=order_cfg.reading_direction,
                column_direction=order_cfg.column_direction,
                group_threshold=order_cfg.group_threshold,
            )

            # 4. Output
            self._emit("generating_output", 0.9, "Generating output...", image_id)
            result.text = full_text(result.blocks)

        except Exception as e:
            logger.error(f"Page {page_number} failed: {e}")
            result.status = "failed"
            result.error = str(e)
            result.blocks = []
            result.text = ""

        result.processing_time = time.time() - start_time
        if result.failed_regions:
            logger.warning(
                f"Page {page_number}: {result.failed_regions}/{result.regions_detected} "
                f"regions failed recognition"
            )
        logger.info(
            f"Page {page_number} processed in {result.processing_time:.2f}s "
            f"({len(result.blocks)} blocks, status={result.status})"
        )
        self._emit("complete", 1.0, "Done", image_id)
        return result

    def process_batch(
        self,
        images: Iterable[np.ndarray],
        cancel_event: Optional[threading.Event] = None,
        image_ids: Optional[List[str]] = None
    ) -> BatchResult:
        """
        Process images one at a time in submission order.

        Setting ``cancel_event`` stops before the next image starts; the
        image in flight always completes.

        Raises:
            ModelInitializationError: Before any image, if models cannot load
        """
        self.initialize()

        start_time = time.time()
        batch = BatchResult()

        for index, image in enumerate(images):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Batch cancelled after {len(batch.pages)} image(s)")
                batch.cancelled = True
                break

            image_id = image_ids[index] if image_ids and index < len(image_ids) else None
            batch.pages.append(self.process_image(image, image_id=image_id, page_number=index + 1))

        batch.processing_time = time.time() - start_time
        return batch

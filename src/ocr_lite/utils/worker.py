"""
OCR worker.

A dedicated thread that exclusively owns an OCRPipeline (and therefore the
inference sessions, which are not safe for concurrent calls). Callers talk
to it with request messages and receive progress / completion / error
messages in return.

Requests are processed one at a time in submission order. cancel() drops
requests that have not started yet; the image in flight always finishes.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Union, Iterator
import numpy as np

from .geometry import TextBlock
from .inference import ModelInitializationError
from .pipeline import OCRPipeline, ProgressEvent

logger = logging.getLogger(__name__)


# ============================================================================
# Messages
# ============================================================================

@dataclass
class Initialize:
    pass


@dataclass
class ProcessImage:
    id: str
    image: np.ndarray
    sequence: int = 0
    start_time: float = field(default_factory=time.time)


@dataclass
class Terminate:
    pass


WorkerRequest = Union[Initialize, ProcessImage, Terminate]


@dataclass
class ProgressMessage:
    stage: str
    progress: float
    message: str
    id: Optional[str] = None


@dataclass
class CompleteMessage:
    id: str
    text_blocks: List[TextBlock]
    txt: str
    processing_time: float
    status: str = "success"
    failed_regions: int = 0


@dataclass
class ErrorMessage:
    error: str
    id: Optional[str] = None
    stage: Optional[str] = None


WorkerMessage = Union[ProgressMessage, CompleteMessage, ErrorMessage]


# ============================================================================
# Worker
# ============================================================================

class OCRWorker:
    """Runs an OCRPipeline on its own thread behind a message queue."""

    def __init__(self, pipeline: OCRPipeline):
        self.pipeline = pipeline
        self.pipeline.on_progress = self._on_progress

        self._inbox: "queue.Queue[WorkerRequest]" = queue.Queue()
        self._outbox: "queue.Queue[WorkerMessage]" = queue.Queue()
        self._lock = threading.Lock()
        self._submitted = 0
        self._cancelled_through = 0
        self._init_error: Optional[str] = None
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Caller side
    # ------------------------------------------------------------------

    def start(self) -> 'OCRWorker':
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, name="ocr-worker", daemon=True)
            self._thread.start()
        return self

    def initialize(self):
        self._inbox.put(Initialize())

    def submit(self, image_id: str, image: np.ndarray):
        with self._lock:
            self._submitted += 1
            self._inbox.put(ProcessImage(id=image_id, image=image, sequence=self._submitted))

    def cancel(self):
        """Drop requests submitted so far that have not started; the current image completes."""
        with self._lock:
            self._cancelled_through = self._submitted

    def terminate(self, timeout: Optional[float] = None):
        self._inbox.put(Terminate())
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def get_message(self, timeout: Optional[float] = None) -> WorkerMessage:
        """Next outbound message; raises queue.Empty on timeout."""
        return self._outbox.get(timeout=timeout)

    def messages(self, timeout: Optional[float] = None) -> Iterator[WorkerMessage]:
        """Yield outbound messages until none arrives within ``timeout``."""
        while True:
            try:
                yield self._outbox.get(timeout=timeout)
            except queue.Empty:
                return

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.terminate()

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _post(self, message: WorkerMessage):
        self._outbox.put(message)

    def _on_progress(self, event: ProgressEvent):
        self._post(ProgressMessage(event.stage, event.progress, event.message, event.image_id))

    def _run(self):
        while True:
            request = self._inbox.get()

            if isinstance(request, Terminate):
                logger.debug("OCR worker terminating")
                return

            if isinstance(request, Initialize):
                self._initialize()
                continue

            if isinstance(request, ProcessImage):
                if 0 < request.sequence <= self._cancelled_through:
                    self._post(ErrorMessage("Cancelled before processing", request.id, "cancelled"))
                else:
                    self._process(request)

    def _initialize(self) -> bool:
        if self._init_error is not None:
            return False
        try:
            self.pipeline.initialize()
            return True
        except ModelInitializationError as e:
            self._init_error = str(e)
            logger.error(f"OCR worker initialization failed: {e}")
            self._post(ErrorMessage(str(e), stage="initialization"))
            return False

    def _process(self, request: ProcessImage):
        if not self.pipeline.is_initialized and not self._initialize():
            self._post(ErrorMessage(
                f"Worker not initialized: {self._init_error}", request.id, "initialization"
            ))
            return

        page = self.pipeline.process_image(request.image, image_id=request.id)
        if page.status == "failed":
            self._post(ErrorMessage(page.error or "Unknown error", request.id, "processing"))
            return

        self._post(CompleteMessage(
            id=request.id,
            text_blocks=page.blocks,
            txt=page.text,
            processing_time=time.time() - request.start_time,
            status=page.status,
            failed_regions=page.failed_regions,
        ))

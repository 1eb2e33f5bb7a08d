"""
End-to-end tests for the OCR pipeline with stand-in models.
"""

import pytest
import numpy as np
import json
import sys
import threading
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# Rows in 256x256 input space; the test page is 256x256 so coordinates map 1:1
DETECTIONS = [
    [10, 50, 100, 70, 0.9],
    [150, 52, 240, 72, 0.8],
    [20, 150, 200, 170, 0.7],
]
TEXTS = {10: "hello", 150: "world", 20: "next line"}


class FakeSession:
    def __init__(self, output):
        self.output = output
        self.input_names = ["input"]

    def run(self, feeds):
        return self.output


class TextByPosition:
    """Dispatcher stand-in that returns text keyed by region x."""

    def __init__(self, texts, failing=()):
        self.texts = texts
        self.failing = set(failing)

    def recognize(self, region, image):
        from ocr_lite.utils.recognition import RecognitionError

        if region.x in self.failing:
            raise RecognitionError(f"region at {region.x} failed")
        return self.texts.get(region.x, "")


def _raw(rows):
    dets = np.asarray(rows, dtype=np.float32).reshape(1, -1, 5)
    return {"dets": dets, "labels": np.zeros((1, dets.shape[1]), dtype=np.int64)}


def _make_pipeline(output=None, dispatcher=None, on_progress=None):
    from ocr_lite.config import PipelineConfig, DetectionConfig
    from ocr_lite.utils.detection import LayoutDetector
    from ocr_lite.utils.pipeline import OCRPipeline

    config = PipelineConfig(detection=DetectionConfig(input_size=256))
    detector = LayoutDetector(FakeSession(output if output is not None else _raw(DETECTIONS)), config.detection)
    return OCRPipeline(
        config,
        layout_detector=detector,
        dispatcher=dispatcher or TextByPosition(TEXTS),
        on_progress=on_progress,
    )


@pytest.fixture
def page():
    return np.full((256, 256, 3), 255, dtype=np.uint8)


class TestProcessImage:
    """Test OCRPipeline.process_image."""

    def test_full_page(self, page):
        """Test full page."""
        pipeline = _make_pipeline()
        result = pipeline.process_image(page, image_id="p1")

        assert result.ok
        assert result.image_id == "p1"
        assert (result.width, result.height) == (256, 256)
        assert result.regions_detected == 3
        assert [b.text for b in result.blocks] == ["hello", "world", "next line"]
        assert [b.reading_order for b in result.blocks] == [1, 2, 3]
        assert result.text == "hello\nworld\nnext line"

    def test_rgba_input(self):
        """Test rgba input."""
        pipeline = _make_pipeline()
        rgba = np.full((256, 256, 4), 255, dtype=np.uint8)

        assert pipeline.process_image(rgba).text == "hello\nworld\nnext line"

    def test_image_id_generated(self, page):
        """Test image id generated."""
        result = _make_pipeline().process_image(page)

        assert result.image_id

    def test_recognition_failure_contained(self, page):
        """Test recognition failure contained."""
        pipeline = _make_pipeline(dispatcher=TextByPosition(TEXTS, failing=[150]))
        result = pipeline.process_image(page)

        assert result.status == "success"
        assert result.failed_regions == 1
        assert result.text == "hello\nnext line"

    def test_empty_detections(self, page):
        """Test empty detections."""
        raw = {"dets": np.zeros((1, 0, 5), dtype=np.float32), "labels": np.zeros((1, 0))}
        result = _make_pipeline(output=raw).process_image(page)

        assert result.status == "success"
        assert result.blocks == []
        assert result.text == ""

    def test_decode_error_status(self, page):
        """Test decode error status."""
        result = _make_pipeline(output={"output": np.zeros(3)}).process_image(page)

        assert result.status == "decode_error"
        assert result.error
        assert result.blocks == []

    def test_bad_image_marks_page_failed(self):
        """Test bad image marks page failed."""
        result = _make_pipeline().process_image(np.zeros((5, 5, 2), dtype=np.uint8))

        assert result.status == "failed"
        assert result.error
        assert result.text == ""

    def test_to_dict_is_json_serializable(self, page):
        """Test to dict is json serializable."""
        result = _make_pipeline().process_image(page, image_id="p1")
        data = json.loads(json.dumps(result.to_dict()))

        assert data["image_id"] == "p1"
        assert data["blocks"][0]["reading_order"] == 1


class TestProgress:
    """Test progress events."""

    def test_event_sequence(self, page):
        """Test event sequence."""
        events = []
        pipeline = _make_pipeline(on_progress=events.append)
        pipeline.process_image(page, image_id="p1")

        stages = [e.stage for e in events]
        for stage in ("layout_detection", "text_recognition", "reading_order", "generating_output"):
            assert stage in stages
        assert events[-1].stage == "complete"
        assert events[-1].progress == 1.0

        progress = [e.progress for e in events]
        assert all(b >= a - 1e-9 for a, b in zip(progress, progress[1:]))
        assert all(0.0 <= p <= 1.0 for p in progress)
        assert all(e.image_id == "p1" for e in events)

    def test_callback_errors_ignored(self, page):
        """Test callback errors ignored."""
        def broken(event):
            raise RuntimeError("listener crashed")

        result = _make_pipeline(on_progress=broken).process_image(page)

        assert result.ok
        assert result.text


class TestBatch:
    """Test OCRPipeline.process_batch."""

    def test_failed_page_does_not_stop_batch(self, page):
        """Test failed page does not stop batch."""
        pipeline = _make_pipeline()
        batch = pipeline.process_batch(
            [page, np.zeros((5, 5, 2), dtype=np.uint8), page],
            image_ids=["a", "b", "c"]
        )

        assert [p.image_id for p in batch.pages] == ["a", "b", "c"]
        assert [p.status for p in batch.pages] == ["success", "failed", "success"]
        assert [p.page_number for p in batch.pages] == [1, 2, 3]
        assert batch.pages_failed == 1
        assert not batch.cancelled
        assert batch.full_text == "hello\nworld\nnext line\n\nhello\nworld\nnext line"

    def test_cancel_before_start(self, page):
        """Test cancel before start."""
        cancel = threading.Event()
        cancel.set()

        batch = _make_pipeline().process_batch([page, page], cancel_event=cancel)

        assert batch.cancelled
        assert batch.pages == []

    def test_cancel_mid_batch(self, page):
        """The image in flight finishes; later images are skipped."""
        cancel = threading.Event()

        def on_progress(event):
            if event.stage == "complete":
                cancel.set()

        pipeline = _make_pipeline(on_progress=on_progress)
        batch = pipeline.process_batch([page, page, page], cancel_event=cancel)

        assert batch.cancelled
        assert len(batch.pages) == 1
        assert batch.pages[0].ok

    def test_batch_to_dict(self, page):
        """Test batch to dict."""
        batch = _make_pipeline().process_batch([page])
        data = json.loads(json.dumps(batch.to_dict()))

        assert data["pages_processed"] == 1
        assert data["pages_failed"] == 0
        assert data["text"] == "hello\nworld\nnext line"


class TestInitialization:
    """Test model loading failures."""

    def test_missing_models(self, tmp_path):
        """Test missing models."""
        from ocr_lite.config import PipelineConfig
        from ocr_lite.utils.inference import ModelInitializationError
        from ocr_lite.utils.pipeline import OCRPipeline

        config = PipelineConfig()
        config.models.models_dir = tmp_path
        pipeline = OCRPipeline(config)

        with pytest.raises(ModelInitializationError):
            pipeline.initialize()
        assert not pipeline.is_initialized

    def test_batch_raises_before_processing(self, tmp_path, page):
        """Test batch raises before processing."""
        from ocr_lite.config import PipelineConfig
        from ocr_lite.utils.inference import ModelInitializationError
        from ocr_lite.utils.pipeline import OCRPipeline

        config = PipelineConfig()
        config.models.models_dir = tmp_path

        with pytest.raises(ModelInitializationError):
            OCRPipeline(config).process_batch([page])

    def test_injected_components_skip_loading(self):
        """Test injected components skip loading."""
        events = []
        pipeline = _make_pipeline(on_progress=events.append)

        assert pipeline.is_initialized
        pipeline.initialize()
        assert events == []


class TestConfig:
    """Test environment overrides."""

    def test_env_overrides(self, monkeypatch, tmp_path):
        """Test env overrides."""
        from ocr_lite.config import get_config

        monkeypatch.setenv("OCR_LITE_MODELS_DIR", str(tmp_path))
        monkeypatch.setenv("OCR_LITE_NUM_THREADS", "4")
        monkeypatch.setenv("OCR_LITE_SINGLE_RECOGNIZER", "true")
        config = get_config()

        assert config.models.models_dir == tmp_path
        assert config.models.num_threads == 4
        assert config.recognition.cascade is False

    def test_invalid_thread_count_ignored(self, monkeypatch):
        """Test invalid thread count ignored."""
        from ocr_lite.config import get_config

        monkeypatch.setenv("OCR_LITE_NUM_THREADS", "many")

        assert get_config().models.num_threads == 1

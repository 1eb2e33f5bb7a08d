"""
Tests for I/O helpers and the command-line interface.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestIO:
    """Test file helpers."""

    def test_text_output_name(self):
        """Test text output name."""
        from ocr_lite.utils.io import text_output_name

        assert text_output_name("scan_01.png") == "scan_01_ocr.txt"
        assert text_output_name("book_p0003") == "book_p0003_ocr.txt"

    def test_save_text_utf8(self, tmp_path):
        """Test save text utf8."""
        from ocr_lite.utils.io import save_text

        path = save_text("縦書き\nline", tmp_path / "out" / "a_ocr.txt")

        assert path.read_text(encoding="utf-8") == "縦書き\nline"

    def test_json_roundtrip_numpy(self, tmp_path):
        """Test json roundtrip numpy."""
        from ocr_lite.utils.io import save_json, load_json

        path = save_json({"n": np.int64(3), "v": np.float32(0.5), "a": np.arange(3)}, tmp_path / "r.json")

        assert load_json(path) == {"n": 3, "v": 0.5, "a": [0, 1, 2]}

    def test_image_roundtrip(self, tmp_path):
        """Test image roundtrip."""
        from ocr_lite.utils.io import save_image, load_image

        img = np.zeros((10, 20, 3), dtype=np.uint8)
        img[..., 0] = 200
        path = save_image(img, tmp_path / "img.png")

        assert (load_image(path) == img).all()

    def test_load_image_missing(self, tmp_path):
        """Test load image missing."""
        from ocr_lite.utils.io import load_image

        with pytest.raises(FileNotFoundError):
            load_image(tmp_path / "missing.png")

    def test_load_image_undecodable(self, tmp_path):
        """Test load image undecodable."""
        from ocr_lite.utils.io import load_image

        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        with pytest.raises(ValueError):
            load_image(path)

    def test_detect_input_type(self, tmp_path):
        """Test detect input type."""
        from ocr_lite.utils.io import detect_input_type, save_image

        assert detect_input_type(tmp_path) == "unknown"
        image_path = save_image(np.zeros((4, 4, 3), dtype=np.uint8), tmp_path / "a.png")
        assert detect_input_type(tmp_path) == "image_folder"
        assert detect_input_type(image_path) == "image"

        pdf = tmp_path / "doc.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        assert detect_input_type(pdf) == "pdf"
        assert detect_input_type(tmp_path / "nope.png") == "unknown"

    def test_load_images_from_folder_skips_broken(self, tmp_path):
        """Test load images from folder skips broken."""
        from ocr_lite.utils.io import load_images_from_folder, save_image

        save_image(np.zeros((4, 4, 3), dtype=np.uint8), tmp_path / "b.png")
        save_image(np.zeros((4, 4, 3), dtype=np.uint8), tmp_path / "a.png")
        (tmp_path / "c.png").write_bytes(b"garbage")

        loaded = load_images_from_folder(tmp_path)

        assert [p.name for p, _ in loaded] == ["a.png", "b.png"]


class TestCLI:
    """Test command-line helpers."""

    def test_parse_page_range(self):
        """Test parse page range."""
        from ocr_lite.cli import parse_page_range

        assert parse_page_range("1-3", 10) == [1, 2, 3]
        assert parse_page_range("1,3,5", 10) == [1, 3, 5]
        assert parse_page_range("4, 1-2, 4", 10) == [1, 2, 4]
        assert parse_page_range("8-20", 10) == [8, 9, 10]
        assert parse_page_range("0,11", 10) == []

    def test_argument_defaults(self):
        """Test argument defaults."""
        from ocr_lite.cli import setup_argparser

        args = setup_argparser().parse_args(["--input", "a.png", "--output", "out"])

        assert args.format == ["txt"]
        assert args.direction == "auto"
        assert args.column_direction == "auto"
        assert args.min_confidence == 0.1
        assert not args.single_recognizer

    def test_build_config(self, tmp_path):
        """Test build config."""
        from ocr_lite.cli import setup_argparser, build_config

        args = setup_argparser().parse_args([
            "-i", "a.png", "-o", "out",
            "--models-dir", str(tmp_path),
            "--single-recognizer",
            "--direction", "vertical",
            "--column-direction", "ltr",
            "--min-confidence", "0.4",
        ])
        config = build_config(args)

        assert config.models.models_dir == tmp_path
        assert config.recognition.cascade is False
        assert config.reading_order.reading_direction == "vertical"
        assert config.reading_order.column_direction == "left-to-right"
        assert config.reading_order.min_confidence == 0.4

    def test_missing_models_exit_code(self, tmp_path):
        """Test missing models exit code."""
        from ocr_lite.cli import setup_argparser, run_pipeline
        from ocr_lite.utils.io import save_image

        image_path = save_image(np.zeros((32, 32, 3), dtype=np.uint8), tmp_path / "page.png")
        args = setup_argparser().parse_args([
            "-i", str(image_path),
            "-o", str(tmp_path / "out"),
            "--models-dir", str(tmp_path / "models"),
        ])

        assert run_pipeline(args) == 1

    def test_unknown_input_exit_code(self, tmp_path):
        """Test unknown input exit code."""
        from ocr_lite.cli import setup_argparser, run_pipeline

        args = setup_argparser().parse_args([
            "-i", str(tmp_path / "missing.png"),
            "-o", str(tmp_path / "out"),
        ])

        assert run_pipeline(args) == 1


class StaticDetector:
    """Detector stand-in returning one region; can interrupt on a given call."""

    def __init__(self, interrupt_on=None):
        self.interrupt_on = interrupt_on
        self.calls = 0

    def detect(self, image, on_progress=None):
        from ocr_lite.utils.detection import LayoutResult
        from ocr_lite.utils.geometry import TextRegion

        self.calls += 1
        if self.calls == self.interrupt_on:
            raise KeyboardInterrupt
        h, w = image.shape[:2]
        return LayoutResult(
            regions=[TextRegion(x=2, y=2, width=20, height=10, confidence=0.9)],
            page_width=w,
            page_height=h,
        )


class FixedDispatcher:
    def recognize(self, region, image):
        return "hello"


class TestRunPipeline:
    """Test run_pipeline with stand-in models."""

    @pytest.fixture
    def scans(self, tmp_path):
        from ocr_lite.utils.io import save_image

        folder = tmp_path / "scans"
        for name in ("a", "b", "c"):
            save_image(np.full((32, 32, 3), 255, dtype=np.uint8), folder / f"{name}.png")
        return folder

    @pytest.fixture
    def use_detector(self, monkeypatch):
        """Patch OCRPipeline so run_pipeline builds it with stand-in components."""
        from ocr_lite.utils import pipeline as pipeline_module

        def install(detector):
            original = pipeline_module.OCRPipeline

            class StubbedPipeline(original):
                def __init__(self, config=None, **kwargs):
                    super().__init__(config, layout_detector=detector, dispatcher=FixedDispatcher())

            monkeypatch.setattr(pipeline_module, "OCRPipeline", StubbedPipeline)
            return detector

        return install

    def _args(self, scans, out, *extra):
        from ocr_lite.cli import setup_argparser

        return setup_argparser().parse_args(["-i", str(scans), "-o", str(out), "--quiet", *extra])

    def test_writes_text_per_page(self, scans, tmp_path, use_detector):
        """Test that a successful run writes one text file per image and exits 0."""
        from ocr_lite.cli import run_pipeline

        use_detector(StaticDetector())
        out = tmp_path / "out"

        assert run_pipeline(self._args(scans, out)) == 0
        for name in ("a", "b", "c"):
            assert (out / f"{name}_ocr.txt").read_text(encoding="utf-8") == "hello"
        assert not (out / "results.json").exists()

    def test_json_and_debug_output(self, scans, tmp_path, use_detector):
        """Test --format all and --debug outputs."""
        from ocr_lite.cli import run_pipeline
        from ocr_lite.utils.io import load_json

        use_detector(StaticDetector())
        out = tmp_path / "out"

        assert run_pipeline(self._args(scans, out, "--format", "all", "--debug")) == 0

        data = load_json(out / "results.json")
        assert data["pages_processed"] == 3
        assert data["pages_failed"] == 0
        assert [p["image_id"] for p in data["pages"]] == ["a", "b", "c"]
        assert data["pages"][0]["blocks"][0]["text"] == "hello"
        assert (out / "a_ocr.txt").exists()
        assert (out / "debug" / "a_regions.png").exists()

    def test_json_only(self, scans, tmp_path, use_detector):
        """Test that --format json skips the text files."""
        from ocr_lite.cli import run_pipeline

        use_detector(StaticDetector())
        out = tmp_path / "out"

        assert run_pipeline(self._args(scans, out, "--format", "json")) == 0
        assert (out / "results.json").exists()
        assert not (out / "a_ocr.txt").exists()

    def test_page_selection_on_folder(self, scans, tmp_path, use_detector):
        """Test that --pages picks images by their sorted position."""
        from ocr_lite.cli import run_pipeline

        detector = use_detector(StaticDetector())
        out = tmp_path / "out"

        assert run_pipeline(self._args(scans, out, "--pages", "2-3")) == 0
        assert not (out / "a_ocr.txt").exists()
        assert (out / "b_ocr.txt").exists()
        assert (out / "c_ocr.txt").exists()
        assert detector.calls == 2

    def test_interrupt_exit_code(self, scans, tmp_path, use_detector):
        """Test that Ctrl-C keeps finished pages and exits 130."""
        from ocr_lite.cli import run_pipeline
        from ocr_lite.utils.io import load_json

        use_detector(StaticDetector(interrupt_on=2))
        out = tmp_path / "out"

        assert run_pipeline(self._args(scans, out, "--format", "all")) == 130
        assert (out / "a_ocr.txt").exists()
        assert not (out / "b_ocr.txt").exists()
        assert load_json(out / "results.json")["pages_processed"] == 1

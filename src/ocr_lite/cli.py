#!/usr/bin/env python
"""
Command-line interface for OCR Lite.

Usage:
    ocr-lite --input <pdf_image_or_folder> --output <output_dir> [options]

Examples:
    # OCR a single scan
    ocr-lite --input page.png --output ./output

    # Vertical writing, single recognizer, JSON and text output
    ocr-lite --input book.pdf --output ./output --direction vertical --single-recognizer --format all
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import numpy as np

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("ocr_lite")


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        description="OCR Lite - extract ordered text from scanned documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  OCR a folder of scans:
    ocr-lite --input ./scans --output ./output

  Horizontal text read right-to-left:
    ocr-lite --input page.png --output ./output --direction horizontal --column-direction rtl

  Only some PDF pages:
    ocr-lite --input book.pdf --output ./output --pages 1-5
        """
    )

    parser.add_argument(
        "--input", "-i",
        required=True,
        help="Input PDF, image, or folder of images"
    )

    parser.add_argument(
        "--output", "-o",
        required=True,
        help="Output directory for generated files"
    )

    parser.add_argument(
        "--models-dir",
        default=None,
        help="Directory holding the ONNX models and charset (default: $OCR_LITE_MODELS_DIR or ~/.cache/ocr_lite/models)"
    )

    parser.add_argument(
        "--single-recognizer",
        action="store_true",
        help="Use one universal recognizer instead of the 30/50/100 character cascade"
    )

    parser.add_argument(
        "--format", "-f",
        nargs="+",
        default=["txt"],
        choices=["txt", "json", "all"],
        help="Output format(s) (default: txt)"
    )

    parser.add_argument(
        "--direction",
        choices=["auto", "vertical", "horizontal"],
        default="auto",
        help="Writing direction (default: inferred from block shapes)"
    )

    parser.add_argument(
        "--column-direction",
        choices=["auto", "rtl", "ltr"],
        default="auto",
        help="Column/line order (default: rtl for vertical, ltr for horizontal)"
    )

    parser.add_argument(
        "--min-confidence",
        type=float,
        default=0.1,
        help="Drop blocks below this detection confidence (default: 0.1)"
    )

    parser.add_argument(
        "--dpi",
        type=int,
        default=300,
        help="DPI for PDF to image conversion (default: 300)"
    )

    parser.add_argument(
        "--pages",
        type=str,
        default=None,
        help="Page range to process, e.g., '1-5' or '1,3,5' (default: all)"
    )

    parser.add_argument(
        "--threads",
        type=int,
        default=None,
        help="Intra-op threads per model (default: 1)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Save debug images with region boxes and reading order"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress all output except errors"
    )

    return parser


def parse_page_range(page_str: str, max_pages: int) -> List[int]:
    """Parse page range string to list of page numbers."""
    pages = []

    for part in page_str.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, end = part.split("-")
            start = max(int(start), 1)
            end = min(int(end), max_pages)
            pages.extend(range(start, end + 1))
        else:
            page = int(part)
            if 1 <= page <= max_pages:
                pages.append(page)

    return sorted(set(pages))


def check_dependencies() -> bool:
    """Check if required dependencies are available."""
    missing = []

    try:
        import cv2  # noqa: F401
    except ImportError:
        missing.append("opencv-python-headless")

    try:
        import onnxruntime  # noqa: F401
    except ImportError:
        missing.append("onnxruntime")

    if missing:
        logger.error("Missing required dependencies:")
        for dep in missing:
            logger.error(f"  - {dep}")
        logger.error("\nInstall with: pip install ocr-lite")
        return False

    try:
        import pdf2image  # noqa: F401
    except ImportError:
        logger.warning("pdf2image not installed, PDF input is unavailable")

    return True


def iter_inputs(
    input_path: Path,
    input_type: str,
    dpi: int,
    pages: Optional[str]
) -> Iterator[Tuple[str, np.ndarray]]:
    """
    Yield (name, RGB image) one at a time.

    Pages are decoded lazily so only one image is held in memory.
    """
    from .utils.io import load_image, load_pdf, list_images

    if input_type == "pdf":
        from pdf2image import pdfinfo_from_path

        page_count = int(pdfinfo_from_path(str(input_path)).get("Pages", 0))
        page_numbers = parse_page_range(pages, page_count) if pages else range(1, page_count + 1)
        for number in page_numbers:
            for image in load_pdf(input_path, dpi=dpi, first_page=number, last_page=number):
                yield f"{input_path.stem}_p{number:04d}", image

    elif input_type == "image":
        yield input_path.stem, load_image(input_path)

    elif input_type == "image_folder":
        files = list_images(input_path)
        if pages:
            files = [files[i - 1] for i in parse_page_range(pages, len(files))]
        for path in files:
            try:
                image = load_image(path)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping {path}: {e}")
                continue
            yield path.stem, image


def build_config(args):
    from .config import get_config

    config = get_config()
    if args.models_dir:
        config.models.models_dir = Path(args.models_dir)
    if args.threads:
        config.models.num_threads = max(1, args.threads)
    if args.single_recognizer:
        config.recognition.cascade = False
    if args.debug:
        config.debug_mode = True

    order = config.reading_order
    order.min_confidence = args.min_confidence
    if args.direction != "auto":
        order.reading_direction = args.direction
    if args.column_direction != "auto":
        order.column_direction = {"rtl": "right-to-left", "ltr": "left-to-right"}[args.column_direction]

    return config


def run_pipeline(args) -> int:
    """Run OCR over every input image."""
    from .utils.io import detect_input_type, ensure_dir, save_json, save_text, save_image, text_output_name
    from .utils.images import draw_debug_image
    from .utils.inference import ModelInitializationError
    from .utils.pipeline import BatchResult, OCRPipeline

    start_time = time.time()

    output_dir = ensure_dir(Path(args.output))
    input_path = Path(args.input)
    input_type = detect_input_type(input_path)
    logger.info(f"Input type detected: {input_type}")

    if input_type == "unknown":
        logger.error(f"Unsupported input: {input_path}")
        return 1

    config = build_config(args)
    pipeline = OCRPipeline(config)

    try:
        pipeline.initialize()
    except ModelInitializationError as e:
        logger.error(f"Model initialization failed: {e}")
        return 1

    formats = set(args.format)
    if "all" in formats:
        formats = {"txt", "json"}

    batch = BatchResult()
    try:
        for index, (name, image) in enumerate(iter_inputs(input_path, input_type, args.dpi, args.pages), 1):
            page = pipeline.process_image(image, image_id=name, page_number=index)
            batch.pages.append(page)

            if "txt" in formats:
                save_text(page.text, output_dir / text_output_name(name))
            if config.debug_mode:
                save_image(draw_debug_image(image, page.blocks), output_dir / "debug" / f"{name}_regions.png")
    except KeyboardInterrupt:
        # The interrupted image is abandoned; finished pages are still written
        logger.info("Interrupted by user, stopping after completed pages")
        batch.cancelled = True

    batch.processing_time = time.time() - start_time

    if not batch.pages:
        logger.error("No images were processed")
        return 130 if batch.cancelled else 1

    if "json" in formats:
        json_path = save_json(batch.to_dict(), output_dir / "results.json")
        logger.info(f"Saved JSON: {json_path}")

    if not args.quiet:
        print("\n" + "=" * 60)
        print("OCR COMPLETE" if not batch.cancelled else "OCR INTERRUPTED")
        print("=" * 60)
        print(f"Source: {input_path}")
        print(f"Output: {output_dir}")
        print(f"Pages processed: {len(batch.pages)}")
        print(f"Pages failed: {batch.pages_failed}")
        print(f"Text blocks: {sum(len(p.blocks) for p in batch.pages)}")
        print(f"Processing time: {batch.processing_time:.2f}s")
        print("=" * 60)

    if batch.cancelled:
        return 130
    return 0 if batch.pages_failed < len(batch.pages) else 1


def main():
    """Main entry point."""
    parser = setup_argparser()
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    if not check_dependencies():
        sys.exit(1)

    try:
        exit_code = run_pipeline(args)
        sys.exit(exit_code)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.debug:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()

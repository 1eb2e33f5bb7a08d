"""
Configuration and constants for the OCR pipeline.

This module provides:
- Model file locations
- Detection / recognition / reading order parameters
- Environment overrides
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple
from pathlib import Path
import logging

logger = logging.getLogger("ocr_lite")


# ============================================================================
# Directory Paths
# ============================================================================

PACKAGE_DIR = Path(__file__).parent
DEFAULT_MODELS_DIR = Path.home() / ".cache" / "ocr_lite" / "models"


# ============================================================================
# Processing Configuration
# ============================================================================

@dataclass
class DetectionConfig:
    """Layout detection configuration."""
    input_size: int = 1024
    score_threshold: float = 0.3
    box_expand_ratio: float = 0.02  # fraction of box height added above and below
    min_box_size: int = 10
    iou_threshold: float = 0.5
    mean: Tuple[float, float, float] = (123.675, 116.28, 103.53)
    std: Tuple[float, float, float] = (58.395, 57.12, 57.375)


@dataclass
class RecognitionConfig:
    """Text recognition configuration."""
    # Dispatch across the three fixed-width recognizers
    cascade: bool = True
    # (height, width) of each recognizer input
    short_shape: Tuple[int, int] = (16, 256)
    medium_shape: Tuple[int, int] = (16, 384)
    long_shape: Tuple[int, int] = (16, 768)
    single_shape: Tuple[int, int] = (16, 768)
    rotate_vertical: bool = True


@dataclass
class ReadingOrderConfig:
    """Reading order configuration. None = infer from the blocks."""
    min_confidence: float = 0.1
    reading_direction: Optional[str] = None  # vertical, horizontal
    column_direction: Optional[str] = None  # right-to-left, left-to-right
    group_threshold: Optional[float] = None


@dataclass
class ModelConfig:
    """Model file configuration."""
    models_dir: Path = DEFAULT_MODELS_DIR
    layout_model: str = "layout.onnx"
    short_model: str = "recognition30.onnx"
    medium_model: str = "recognition50.onnx"
    long_model: str = "recognition100.onnx"
    single_model: str = "recognition.onnx"
    charset_file: str = "charset.txt"
    num_threads: int = 1

    def path_for(self, name: str) -> Path:
        return Path(self.models_dir) / name


@dataclass
class PipelineConfig:
    """Main pipeline configuration."""
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    recognition: RecognitionConfig = field(default_factory=RecognitionConfig)
    reading_order: ReadingOrderConfig = field(default_factory=ReadingOrderConfig)
    models: ModelConfig = field(default_factory=ModelConfig)

    debug_mode: bool = False


# ============================================================================
# Default Configuration Instance
# ============================================================================

def get_config() -> PipelineConfig:
    """Get the default pipeline configuration with environment overrides."""
    config = PipelineConfig()

    models_dir = os.environ.get("OCR_LITE_MODELS_DIR")
    if models_dir:
        config.models.models_dir = Path(models_dir)

    num_threads = os.environ.get("OCR_LITE_NUM_THREADS")
    if num_threads:
        try:
            config.models.num_threads = max(1, int(num_threads))
        except ValueError:
            logger.warning(f"Ignoring invalid OCR_LITE_NUM_THREADS: {num_threads!r}")

    if os.environ.get("OCR_LITE_SINGLE_RECOGNIZER", "").lower() == "true":
        config.recognition.cascade = False

    if os.environ.get("OCR_LITE_DEBUG", "").lower() == "true":
        config.debug_mode = True

    return config

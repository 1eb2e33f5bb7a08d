"""
Text recognition module.

Provides:
- Character count categories predicted by the layout detector
- Recognition strategies (fixed-width recognizers) and their selection
- TextRecognizer: crop -> tensor -> inference -> greedy decode
- RecognitionDispatcher: per-region strategy selection and invocation

Cascade recognition uses three recognizers sized for lines of up to 30,
50 and 100 characters. A deployment with a single universal recognizer
uses it for every region.
"""

import logging
from enum import Enum, IntEnum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union, Any
import numpy as np

from .geometry import TextRegion
from .images import crop_region, prepare_recognition_input

logger = logging.getLogger(__name__)


class RecognitionError(RuntimeError):
    """A recognition strategy failed for one region."""


# ============================================================================
# Categories and Strategies
# ============================================================================

class CharCountCategory(IntEnum):
    """Line length bucket predicted by the detector."""
    LONG = 1
    MEDIUM = 2
    SHORT = 3


class RecognitionStrategy(Enum):
    """Fixed-width recognizers, by maximum characters per line."""
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"
    SINGLE = "single"

    @property
    def capacity(self) -> Optional[int]:
        return _CAPACITY[self]


_CAPACITY = {
    RecognitionStrategy.SHORT: 30,
    RecognitionStrategy.MEDIUM: 50,
    RecognitionStrategy.LONG: 100,
    RecognitionStrategy.SINGLE: None,
}


def select_strategy(
    category: Optional[int],
    cascade: bool = True
) -> RecognitionStrategy:
    """
    Pick the narrowest recognizer that covers a predicted category.

    Unknown and missing categories go to the LONG recognizer. Without a
    cascade the SINGLE recognizer is always used.
    """
    if not cascade:
        return RecognitionStrategy.SINGLE
    if category == CharCountCategory.SHORT:
        return RecognitionStrategy.SHORT
    if category == CharCountCategory.MEDIUM:
        return RecognitionStrategy.MEDIUM
    return RecognitionStrategy.LONG


# ============================================================================
# Charset
# ============================================================================

def load_charset(path: Union[str, Path]) -> List[str]:
    """
    Load recognizer output characters.

    Accepts one character per line, or a single line holding all
    characters.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Charset file not found: {path}")

    text = path.read_text(encoding="utf-8")
    lines = [line for line in text.splitlines() if line != ""]
    if len(lines) == 1:
        return list(lines[0])
    return lines


# ============================================================================
# Text Recognizer
# ============================================================================

class TextRecognizer:
    """One fixed-input-shape recognition model."""

    EOS_INDEX = 0

    def __init__(
        self,
        session: Any,
        input_shape: Tuple[int, int],
        charset: Sequence[str],
        rotate_vertical: bool = True
    ):
        self.session = session
        self.height, self.width = input_shape
        self.charset = list(charset)
        self.rotate_vertical = rotate_vertical

        input_names = getattr(session, "input_names", None)
        self.input_name = input_names[0] if input_names else "input"

    def recognize(self, crop: np.ndarray) -> str:
        """Recognize the text in a single line crop."""
        tensor = prepare_recognition_input(
            crop, self.height, self.width, rotate_vertical=self.rotate_vertical
        )
        outputs = self.session.run({self.input_name: tensor})
        logits = np.asarray(next(iter(outputs.values())))
        return self.decode(logits)

    def decode(self, logits: np.ndarray) -> str:
        """
        Greedy decode of [1, T, C] (or [T, C]) scores.

        Index 0 ends the sequence; index k maps to ``charset[k - 1]``.
        """
        if logits.ndim == 3:
            logits = logits[0]
        if logits.ndim != 2:
            raise ValueError(f"Unexpected recognizer output shape: {logits.shape}")

        chars = []
        for index in np.argmax(logits, axis=-1):
            index = int(index)
            if index == self.EOS_INDEX:
                break
            if 0 < index <= len(self.charset):
                chars.append(self.charset[index - 1])
        return "".join(chars)


# ============================================================================
# Dispatcher
# ============================================================================

class RecognitionDispatcher:
    """
    Routes each region to a recognition strategy.

    Args:
        recognizers: Mapping of strategy to an object exposing
            ``recognize(crop) -> str``. Either SINGLE alone, or the
            cascade (LONG is required as the fallback).
    """

    def __init__(self, recognizers: Dict[RecognitionStrategy, Any]):
        if not recognizers:
            raise ValueError("At least one recognizer is required")

        self.recognizers = dict(recognizers)
        self.cascade = RecognitionStrategy.SINGLE not in self.recognizers
        if self.cascade and RecognitionStrategy.LONG not in self.recognizers:
            raise ValueError("Cascade recognition requires a LONG recognizer")

    def strategy_for(self, region: TextRegion) -> RecognitionStrategy:
        strategy = select_strategy(region.char_count_category, cascade=self.cascade)
        if strategy not in self.recognizers:
            logger.debug(f"No {strategy.value} recognizer configured, using long")
            strategy = RecognitionStrategy.LONG
        return strategy

    def recognize(self, region: TextRegion, image: np.ndarray) -> str:
        """
        Crop a region from the image and recognize it.

        Raises:
            RecognitionError: If cropping or recognition fails
        """
        strategy = self.strategy_for(region)
        try:
            crop = crop_region(image, region)
            return self.recognizers[strategy].recognize(crop)
        except Exception as e:
            raise RecognitionError(
                f"{strategy.value} recognizer failed for region "
                f"({region.x}, {region.y}, {region.width}x{region.height}): {e}"
            ) from e

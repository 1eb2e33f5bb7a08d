"""
OCR Lite
========

Text extraction from scanned document images.

Main components:
- Layout detection (detector output decoding, NMS)
- Cascade text recognition (short / medium / long line recognizers)
- Reading order reconstruction (vertical and horizontal writing)
- Sequential batch orchestration with progress reporting
"""

__version__ = "1.0.0"
__author__ = "OCR Lite Team"

"""
Reading order reconstruction.

Orders recognized text blocks the way a person reads the page, using
geometry alone:

1. Drop low-confidence and empty blocks.
2. Infer vertical or horizontal writing from block aspect ratios.
3. Group blocks into columns (vertical) or lines (horizontal) by center
   distance, with a threshold scaled to the median block size.
4. Order the groups, then the blocks inside each group.

Grouping is greedy first-fit: a block joins the first group, in creation
order, whose running mean center is within the threshold. Results can
therefore depend on input order.
"""

import logging
from enum import Enum
from typing import List, Optional, Union

from .geometry import TextBlock

logger = logging.getLogger(__name__)


class ReadingDirection(str, Enum):
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"


class ColumnDirection(str, Enum):
    RIGHT_TO_LEFT = "right-to-left"
    LEFT_TO_RIGHT = "left-to-right"


class _Group:
    """A column or line with a running sum of member centers."""

    __slots__ = ("blocks", "total")

    def __init__(self, block: TextBlock, center: float):
        self.blocks = [block]
        self.total = center

    @property
    def mean(self) -> float:
        return self.total / len(self.blocks)

    def add(self, block: TextBlock, center: float):
        self.blocks.append(block)
        self.total += center


def _center_x(block: TextBlock) -> float:
    return block.x + block.width / 2


def _center_y(block: TextBlock) -> float:
    return block.y + block.height / 2


class ReadingOrderProcessor:
    """Assigns 1-based reading order to the text blocks of one image."""

    def __init__(
        self,
        min_confidence: float = 0.1,
        vertical_column_direction: ColumnDirection = ColumnDirection.RIGHT_TO_LEFT
    ):
        self.min_confidence = min_confidence
        self.vertical_column_direction = ColumnDirection(vertical_column_direction)

    @staticmethod
    def detect_is_vertical(blocks: List[TextBlock]) -> bool:
        """Vertical when at least half of the blocks are taller than wide."""
        vertical_count = sum(1 for b in blocks if b.width < b.height)
        return vertical_count * 2 >= len(blocks)

    @staticmethod
    def calc_threshold(blocks: List[TextBlock], is_vertical: bool) -> float:
        """30% of the median block width (vertical) or height (horizontal), at least 1."""
        sizes = sorted(b.width if is_vertical else b.height for b in blocks)
        median = sizes[len(sizes) // 2]
        return max(median * 0.3, 1)

    def process(
        self,
        blocks: List[TextBlock],
        reading_direction: Optional[Union[str, ReadingDirection]] = None,
        column_direction: Optional[Union[str, ColumnDirection]] = None,
        group_threshold: Optional[float] = None,
        min_confidence: Optional[float] = None
    ) -> List[TextBlock]:
        """
        Order blocks and stamp ``reading_order`` 1..N.

        Args:
            blocks: Recognized blocks of a single image
            reading_direction: Skip direction inference
            column_direction: Override the default column/line order
            group_threshold: Skip the median-based threshold
            min_confidence: Override the confidence cut-off

        Returns:
            New blocks in reading order; input blocks are not modified
        """
        if not blocks:
            return []

        if min_confidence is None:
            min_confidence = self.min_confidence

        valid = [
            b for b in blocks
            if b.confidence >= min_confidence and b.text and b.text.strip()
        ]
        if not valid:
            logger.debug(f"No blocks left after filtering {len(blocks)} blocks")
            return []

        if reading_direction is not None:
            is_vertical = ReadingDirection(reading_direction) == ReadingDirection.VERTICAL
        else:
            is_vertical = self.detect_is_vertical(valid)

        if group_threshold is not None:
            threshold = group_threshold
        else:
            threshold = self.calc_threshold(valid, is_vertical)

        if column_direction is not None:
            col_dir = ColumnDirection(column_direction)
        elif is_vertical:
            col_dir = self.vertical_column_direction
        else:
            col_dir = ColumnDirection.LEFT_TO_RIGHT

        if is_vertical:
            ordered = self._process_vertical(valid, col_dir, threshold)
        else:
            ordered = self._process_horizontal(valid, col_dir, threshold)

        logger.debug(
            f"Ordered {len(ordered)} blocks "
            f"({'vertical' if is_vertical else 'horizontal'}, {col_dir.value}, "
            f"threshold={threshold:.1f})"
        )
        return [block.with_reading_order(i + 1) for i, block in enumerate(ordered)]

    def _process_vertical(
        self,
        blocks: List[TextBlock],
        column_direction: ColumnDirection,
        threshold: float
    ) -> List[TextBlock]:
        columns = self._group(blocks, _center_x, threshold)
        columns.sort(
            key=lambda c: c.mean,
            reverse=column_direction == ColumnDirection.RIGHT_TO_LEFT
        )
        ordered = []
        for column in columns:
            ordered.extend(sorted(column.blocks, key=lambda b: b.y))
        return ordered

    def _process_horizontal(
        self,
        blocks: List[TextBlock],
        column_direction: ColumnDirection,
        threshold: float
    ) -> List[TextBlock]:
        lines = self._group(blocks, _center_y, threshold)
        lines.sort(key=lambda line: line.mean)
        ordered = []
        for line in lines:
            ordered.extend(sorted(
                line.blocks,
                key=lambda b: b.x,
                reverse=column_direction == ColumnDirection.RIGHT_TO_LEFT
            ))
        return ordered

    @staticmethod
    def _group(blocks, center_of, threshold: float) -> List[_Group]:
        groups: List[_Group] = []
        for block in blocks:
            center = center_of(block)
            for group in groups:
                if abs(center - group.mean) <= threshold:
                    group.add(block, center)
                    break
            else:
                groups.append(_Group(block, center))
        return groups


def reconstruct(blocks: List[TextBlock], **options) -> List[TextBlock]:
    """Order blocks with a default processor."""
    return ReadingOrderProcessor().process(blocks, **options)

"""
Row layout for compacted children: one horizontal row, centered on the
parent, sitting RANK_SEP above it. Children share the same top y, computed
from the tallest child.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from .models import Box

NODE_SEP = 20
RANK_SEP = 40


@dataclass(frozen=True)
class ChildNode:
    id: str
    width: float
    height: float


def compute_row_layout(parent: Box, children: Sequence[ChildNode]) -> Dict[str, Tuple[float, float]]:
    """Top-left (x, y) per child id, left to right in input order."""
    if not children:
        return {}

    total_width = sum(c.width for c in children) + NODE_SEP * (len(children) - 1)
    max_height = max(c.height for c in children)
    start_x = parent.x + parent.w / 2 - total_width / 2
    row_y = parent.y - RANK_SEP - max_height

    positions: Dict[str, Tuple[float, float]] = {}
    x = start_x
    for child in children:
        positions[child.id] = (x, row_y)
        x += child.width + NODE_SEP
    return positions

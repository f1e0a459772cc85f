"""Strategies selecting which cells a tick needs to visit.

FullScan visits every mask cell. ActiveSet only visits cells within
``radius`` of a non-zero cell of the tracked grid, which lets
neighborhood rules convolve a bounding window instead of the whole grid.
ActiveSet is exact as long as its radius is at least the largest kernel
radius in the pipeline; the ruleset checks this at build time.
"""

from typing import Optional, Tuple
import logging

import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)

Window = Tuple[slice, slice]


def bounding_window(active: np.ndarray) -> Optional[Window]:
    """Smallest (row, col) slices containing every True cell, or None."""
    rows = np.flatnonzero(active.any(axis=1))
    if rows.size == 0:
        return None
    cols = np.flatnonzero(active.any(axis=0))
    return slice(int(rows[0]), int(rows[-1]) + 1), slice(int(cols[0]), int(cols[-1]) + 1)


class FullScan:
    """Every mask cell is active on every tick."""

    radius: Optional[int] = None

    def select(self, values, mask: np.ndarray) -> np.ndarray:
        return mask

    def __repr__(self) -> str:
        return "FullScan()"


class ActiveSet:
    """Cells within ``radius`` of a non-zero cell of ``grid``.

    Attributes:
        grid: Name of the grid whose occupied cells seed activity
        radius: Dilation radius in cells (None: use the largest kernel radius)
    """

    def __init__(self, grid: str = 'population', radius: Optional[int] = None):
        self.grid = grid
        self.radius = radius

    def with_radius(self, radius: int) -> 'ActiveSet':
        return ActiveSet(self.grid, radius)

    def select(self, values, mask: np.ndarray) -> np.ndarray:
        occupied = (values[self.grid] != 0) & mask
        if self.radius and occupied.any():
            structure = np.ones((2 * self.radius + 1, 2 * self.radius + 1), dtype=bool)
            occupied = ndimage.binary_dilation(occupied, structure=structure)
        return occupied & mask

    def __repr__(self) -> str:
        return f"ActiveSet(grid={self.grid!r}, radius={self.radius})"

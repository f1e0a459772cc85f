"""Named, co-registered grids sharing one validity mask.

The GridSet is the unit of state the engine reads and writes. Every grid is
a 2D numpy array with the same shape as the mask; cells where the mask is
False are frozen and always hold zero/false.
"""

import numpy as np
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple
import logging

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class GridSet:
    """Collection of equal-shaped named grids plus a boolean mask.

    Attributes:
        shape: (rows, cols) shared by all grids
        mask: 2D boolean array, True where cells are simulated
    """

    def __init__(self, grids: Mapping[str, np.ndarray],
                 mask: Optional[np.ndarray] = None,
                 missingval: Optional[float] = None):
        """Initialize grid set from named arrays.

        Args:
            grids: Mapping of grid name to initial 2D array
            mask: Optional boolean validity mask (all True if None)
            missingval: No-data sentinel that must not appear in any grid

        Raises:
            ConfigurationError: If shapes differ, the mask is not boolean,
                or a grid holds non-finite or sentinel values
        """
        if not grids:
            raise ConfigurationError("GridSet needs at least one grid")

        arrays: Dict[str, np.ndarray] = {}
        shape: Optional[Tuple[int, int]] = None
        for name, values in grids.items():
            arr = np.array(values, copy=True)
            if arr.ndim != 2:
                raise ConfigurationError(f"Grid '{name}' must be 2D, got {arr.ndim}D")
            if shape is None:
                shape = arr.shape
            elif arr.shape != shape:
                raise ConfigurationError(
                    f"Grid '{name}' shape {arr.shape} doesn't match {shape}"
                )
            if arr.dtype != bool:
                if not np.issubdtype(arr.dtype, np.number):
                    raise ConfigurationError(f"Grid '{name}' must be numeric or boolean")
                arr = arr.astype(np.float64)
                if missingval is not None and np.any(arr == missingval):
                    raise ConfigurationError(
                        f"Grid '{name}' contains missing value {missingval}; "
                        "replace it before building the GridSet"
                    )
                if not np.all(np.isfinite(arr)):
                    raise ConfigurationError(f"Grid '{name}' contains non-finite values")
            arrays[name] = arr

        if mask is None:
            mask = np.ones(shape, dtype=bool)
        mask = np.asarray(mask)
        if mask.dtype != bool:
            raise ConfigurationError("Mask must be boolean array")
        if mask.shape != shape:
            raise ConfigurationError(f"Mask shape {mask.shape} doesn't match grid shape {shape}")

        self.shape: Tuple[int, int] = shape
        self.mask = mask.copy()
        self.mask.setflags(write=False)

        # Frozen cells read as inert zero/false
        for arr in arrays.values():
            arr[~self.mask] = 0
        self._grids = arrays

        logger.debug(f"Created GridSet {shape} with grids {sorted(arrays)}")

    @property
    def names(self) -> Tuple[str, ...]:
        """Grid names in insertion order."""
        return tuple(self._grids)

    def get(self, name: str) -> np.ndarray:
        """Get the array for a named grid.

        Raises:
            KeyError: If no grid has that name
        """
        if name not in self._grids:
            raise KeyError(f"No grid named '{name}' (have {sorted(self._grids)})")
        return self._grids[name]

    def set(self, name: str, values: np.ndarray) -> None:
        """Replace a named grid, keeping masked cells at zero.

        Raises:
            ConfigurationError: If the array shape doesn't match
        """
        arr = np.array(values, copy=True)
        if arr.shape != self.shape:
            raise ConfigurationError(f"Grid '{name}' shape {arr.shape} doesn't match {self.shape}")
        if arr.dtype != bool:
            arr = arr.astype(np.float64)
        arr[~self.mask] = 0
        self._grids[name] = arr

    def seed(self, name: str, cells: Iterable[Tuple[int, int]], value: float) -> None:
        """Set a value at a list of (row, col) cells, e.g. an incursion point.

        Raises:
            IndexError: If a cell lies outside the grid
            ConfigurationError: If a cell is masked out
        """
        arr = self.get(name)
        rows, cols = self.shape
        for row, col in cells:
            if not (0 <= row < rows and 0 <= col < cols):
                raise IndexError(f"Cell ({row}, {col}) out of bounds for {rows}x{cols} grid")
            if not self.mask[row, col]:
                raise ConfigurationError(f"Cell ({row}, {col}) is outside the mask")
            arr[row, col] = value

    def arrays(self) -> Dict[str, np.ndarray]:
        """Copies of all grids keyed by name."""
        return {name: arr.copy() for name, arr in self._grids.items()}

    def copy(self) -> 'GridSet':
        """Create a deep copy of the grid set."""
        return GridSet(self._grids, self.mask)

    def with_grids(self, **grids: np.ndarray) -> 'GridSet':
        """Return a new GridSet with extra or replaced grids."""
        merged = dict(self._grids)
        merged.update(grids)
        return GridSet(merged, self.mask)

    def __getitem__(self, name: str) -> np.ndarray:
        return self.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._grids

    def __iter__(self) -> Iterator[str]:
        return iter(self._grids)

    def __len__(self) -> int:
        return len(self._grids)

    def __eq__(self, other: object) -> bool:
        """Check equality with another grid set."""
        if not isinstance(other, GridSet):
            return False
        return (self.shape == other.shape and
                self.names == other.names and
                np.array_equal(self.mask, other.mask) and
                all(np.array_equal(self._grids[n], other._grids[n]) for n in self.names))

    def __repr__(self) -> str:
        active = int(self.mask.sum())
        return f"GridSet({self.shape[0]}x{self.shape[1]}, grids={list(self.names)}, active={active})"

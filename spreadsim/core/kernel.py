"""Precomputed neighborhood weight tables.

Kernels are built once when a ruleset is assembled and reused unchanged for
every timestep. They are square (2R+1)x(2R+1) tables centred on the focal
cell, symmetric and non-negative.
"""

import numpy as np
from typing import Callable, Dict, Iterator, Optional, Tuple
import logging

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


def exponential_decay(distance: np.ndarray, scale: float) -> np.ndarray:
    """Exponential decay: exp(-d/scale)."""
    return np.exp(-distance / scale)


def gaussian_decay(distance: np.ndarray, scale: float) -> np.ndarray:
    """Gaussian decay with sigma equal to scale."""
    return np.exp(-distance**2 / (2 * scale**2))


def inverse_power_decay(distance: np.ndarray, scale: float) -> np.ndarray:
    """Inverse power decay (1 + d)^-scale."""
    return (1.0 + distance) ** (-scale)


DECAY_FORMULATIONS: Dict[str, Callable[[np.ndarray, float], np.ndarray]] = {
    'exponential': exponential_decay,
    'gaussian': gaussian_decay,
    'inverse_power': inverse_power_decay,
}

NEIGHBORHOOD_SHAPES = ('moore', 'vonneumann', 'circle')


def _window_footprint(radius: int, shape: str) -> np.ndarray:
    """Boolean footprint of the cells included in a radius window."""
    y_coords, x_coords = np.ogrid[-radius:radius + 1, -radius:radius + 1]
    if shape == 'moore':
        return np.ones((2 * radius + 1, 2 * radius + 1), dtype=bool)
    if shape == 'vonneumann':
        return (np.abs(y_coords) + np.abs(x_coords)) <= radius
    if shape == 'circle':
        return (y_coords**2 + x_coords**2) <= radius**2
    raise ConfigurationError(f"Unknown neighborhood shape: {shape}")


class Kernel:
    """Immutable symmetric weight table over a fixed radius.

    Attributes:
        radius: Window radius R in cells
        weights: Read-only (2R+1)x(2R+1) float array
    """

    def __init__(self, weights: np.ndarray):
        """Wrap an explicit weight table.

        Args:
            weights: Square array with odd side length

        Raises:
            ConfigurationError: If the table is not square and odd sized,
                has negative or non-finite weights, or is not symmetric
        """
        w = np.array(weights, dtype=np.float64, copy=True)
        if w.ndim != 2 or w.shape[0] != w.shape[1] or w.shape[0] % 2 != 1:
            raise ConfigurationError(f"Kernel must be square with odd side, got shape {w.shape}")
        if not np.all(np.isfinite(w)) or np.any(w < 0):
            raise ConfigurationError("Kernel weights must be finite and non-negative")
        if not (np.allclose(w, w[::-1, :]) and np.allclose(w, w[:, ::-1])):
            raise ConfigurationError("Kernel weights must be symmetric")

        w.setflags(write=False)
        self.weights = w
        self.radius = w.shape[0] // 2

    @classmethod
    def from_decay(cls, radius: int, decay: str = 'exponential', scale: float = 1.0,
                   cellsize: float = 1.0, shape: str = 'moore',
                   retained: Optional[float] = None) -> 'Kernel':
        """Build a normalized kernel from a distance-decay formulation.

        Weights are normalized so they sum to 1, so the mass leaving a cell
        plus the mass it keeps equals its original mass.

        Args:
            radius: Window radius in cells
            decay: Name of the decay formulation
            scale: Decay scale in the same units as cellsize
            cellsize: Width of a cell, used to convert offsets to distance
            shape: 'moore', 'vonneumann' or 'circle' window
            retained: If given, the fraction kept in the focal cell; the
                remaining 1 - retained is split over the neighbors by decay

        Returns:
            Kernel with weights summing to 1

        Raises:
            ConfigurationError: If arguments are out of range
        """
        if radius < 0:
            raise ConfigurationError("Kernel radius must be non-negative")
        if scale <= 0 or cellsize <= 0:
            raise ConfigurationError("Kernel scale and cellsize must be positive")
        if decay not in DECAY_FORMULATIONS:
            raise ConfigurationError(
                f"Unknown decay formulation '{decay}' (have {sorted(DECAY_FORMULATIONS)})"
            )
        if retained is not None and not (0.0 <= retained <= 1.0):
            raise ConfigurationError("Retained fraction must be in [0, 1]")

        footprint = _window_footprint(radius, shape)
        y_coords, x_coords = np.ogrid[-radius:radius + 1, -radius:radius + 1]
        distances = np.sqrt(y_coords**2 + x_coords**2) * cellsize
        weights = DECAY_FORMULATIONS[decay](distances, scale) * footprint

        if retained is None:
            weights = weights / weights.sum()
        else:
            weights[radius, radius] = 0.0
            outer = weights.sum()
            if outer > 0:
                weights = weights * (1.0 - retained) / outer
            elif retained < 1.0:
                raise ConfigurationError("Radius 0 kernel can't disperse a non-zero fraction")
            weights[radius, radius] = retained

        kernel = cls(weights)
        logger.debug(f"Built {decay} {shape} kernel radius={radius} scale={scale}")
        return kernel

    @classmethod
    def from_fractions(cls, retained: float, orthogonal: float,
                       diagonal: float = 0.0) -> 'Kernel':
        """Radius 1 kernel from a retained fraction and per-neighbor fractions."""
        w = np.array([
            [diagonal, orthogonal, diagonal],
            [orthogonal, retained, orthogonal],
            [diagonal, orthogonal, diagonal],
        ])
        return cls(w)

    @property
    def size(self) -> int:
        """Side length of the weight table."""
        return self.weights.shape[0]

    @property
    def total(self) -> float:
        """Sum of all weights."""
        return float(self.weights.sum())

    def profile(self) -> np.ndarray:
        """Weights rescaled so the largest weight is 1."""
        peak = self.weights.max()
        if peak == 0:
            return np.zeros_like(self.weights)
        return self.weights / peak

    def offsets(self) -> Iterator[Tuple[int, int, float]]:
        """Iterate over (drow, dcol, weight) for non-zero weights."""
        r = self.radius
        for i, j in zip(*np.nonzero(self.weights)):
            yield int(i) - r, int(j) - r, float(self.weights[i, j])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Kernel):
            return False
        return self.weights.shape == other.weights.shape and np.allclose(self.weights, other.weights)

    def __repr__(self) -> str:
        return f"Kernel(radius={self.radius}, total={self.total:.4f})"

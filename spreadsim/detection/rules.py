"""Detection and trapping rules.

Detection is latched: once a cell is detected it stays detected for the
rest of the run. Threshold detection models passive reporting of heavy
infestations; trap detection is a Bernoulli draw per trapped cell; trap
placement surrounds each newly detected cell with Poisson trap counts.
"""

from typing import Dict, Mapping
import logging

import numpy as np
from scipy import signal

from ..core.kernel import Kernel
from ..errors import ConfigurationError
from ..rules.base import CellRule, NeighborhoodRule, ParamSpec, TickContext

logger = logging.getLogger(__name__)


class ThresholdDetection(CellRule):
    """detected ← detected OR population ≥ threshold."""

    PARAMETERS = (
        ParamSpec('threshold', (0.0, 1e12), "population at which an incursion is reported"),
    )

    def __init__(self, threshold: float = 50.0, population: str = 'population',
                 detected: str = 'detected'):
        super().__init__([population, detected], [detected])
        self.threshold = threshold
        self.population = population
        self.detected = detected

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        detected = values[self.detected].astype(bool)
        return {self.detected: detected | (values[self.population] >= self.threshold)}


class TrapDetection(CellRule):
    """Probabilistic detection by traps.

    Where population > 0 and traps > 0 a cell is detected with probability
    trap_coverage·(1 - (1 - detection_rate)^traps), drawn from the run's
    generator.
    """

    PARAMETERS = (
        ParamSpec('detection_rate', (0.0, 1.0), "probability one trap catches the pest"),
        ParamSpec('trap_coverage', (0.0, 1.0), "fraction of a cell covered by its traps"),
    )

    def __init__(self, detection_rate: float = 0.1, trap_coverage: float = 1.0,
                 population: str = 'population', traps: str = 'traps',
                 detected: str = 'detected'):
        super().__init__([population, traps, detected], [detected])
        self.detection_rate = detection_rate
        self.trap_coverage = trap_coverage
        self.population = population
        self.traps = traps
        self.detected = detected

    def detection_probability(self, traps: np.ndarray) -> np.ndarray:
        """Per-cell detection probability for the given trap counts."""
        return self.trap_coverage * (1.0 - (1.0 - self.detection_rate) ** traps)

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        detected = values[self.detected].astype(bool)
        traps = values[self.traps]
        eligible = (values[self.population] > 0) & (traps > 0) & ctx.mask & ~detected

        # Draw for every cell so the stream doesn't depend on where traps are
        draws = ctx.rng.random(traps.shape)
        hits = eligible & (draws < self.detection_probability(traps))
        if hits.any():
            logger.debug(f"Tick {ctx.tick}: traps detected {int(hits.sum())} cells")
        return {self.detected: detected | hits}


class TrapPlacement(NeighborhoodRule):
    """Place traps around newly detected cells.

    A cell counts as newly detected while it is detected but not yet marked
    in the ``trapped`` grid. Every cell within the kernel radius of it gets
    Poisson(trap_density·cell_area·profile) new traps, where profile is the
    kernel rescaled to 1 at its peak. Traps are only ever added.
    """

    PARAMETERS = (
        ParamSpec('trap_density', (0.0, 1e6), "traps per unit area"),
        ParamSpec('cell_area', (1e-12, 1e12), "area of one cell"),
    )

    def __init__(self, kernel: Kernel, trap_density: float = 0.0, cell_area: float = 1.0,
                 detected: str = 'detected', traps: str = 'traps', trapped: str = 'trapped'):
        if trapped in (detected, traps):
            raise ConfigurationError("Trap placement needs a separate 'trapped' marker grid")
        super().__init__(kernel, [detected, traps, trapped], [traps, trapped])
        self.trap_density = trap_density
        self.cell_area = cell_area
        self.detected = detected
        self.traps = traps
        self.trapped = trapped

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        traps = values[self.traps]
        trapped = values[self.trapped].astype(bool)
        new = values[self.detected].astype(bool) & ~trapped & ctx.mask
        if not new.any():
            return {self.traps: traps.copy(), self.trapped: trapped}

        intensity = signal.convolve2d(
            new.astype(np.float64),
            self.kernel.profile(),
            mode='same',
            boundary='fill',
            fillvalue=0.0
        )
        mean = self.trap_density * self.cell_area * intensity * ctx.mask
        placed = ctx.rng.poisson(mean)
        logger.debug(f"Tick {ctx.tick}: placed {int(placed.sum())} traps around {int(new.sum())} cells")
        return {self.traps: traps + placed, self.trapped: trapped | new}

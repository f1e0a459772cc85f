"""Local and human-mediated dispersal rules.

Local dispersal convolves the population with a precomputed kernel.
Human-mediated dispersal moves individuals from each source cell to a
shortlist of likely destinations chosen once at build time from a human
population layer and distance decay.
"""

from typing import Dict, Mapping, Optional
import logging

import numpy as np
from scipy import signal

from ..core.gridset import GridSet
from ..core.kernel import Kernel
from ..errors import ConfigurationError
from .base import GlobalRule, NeighborhoodRule, ParamSpec, TickContext

logger = logging.getLogger(__name__)


class LocalDispersal(NeighborhoodRule):
    """Kernel dispersal: next[c] = Σ kernel[n→c]·current[n] over the window.

    Mass sent outside the grid or onto masked cells is lost (the kernel is
    truncated, not renormalized, at boundaries).
    """

    def __init__(self, kernel: Kernel, population: str = 'population'):
        super().__init__(kernel, [population], [population])
        self.population = population

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        N = values[self.population]
        out = N.copy()
        if ctx.window is None:
            return {self.population: out}

        rows, cols = ctx.window
        height, width = N.shape
        r = self.kernel.radius

        # Sources may sit up to one radius outside the written window
        r0, r1 = max(rows.start - r, 0), min(rows.stop + r, height)
        c0, c1 = max(cols.start - r, 0), min(cols.stop + r, width)
        source = np.where(ctx.mask, N, 0.0)[r0:r1, c0:c1]

        dispersed = signal.convolve2d(
            source,
            self.kernel.weights,
            mode='same',
            boundary='fill',
            fillvalue=0.0
        )
        out[rows, cols] = dispersed[rows.start - r0:rows.stop - r0, cols.start - c0:cols.stop - c0]
        return {self.population: out}


class HumanDispersal(GlobalRule):
    """Long-distance dispersal along human movement.

    At build time each source cell gets a shortlist of the ``n_destinations``
    highest-scoring destination cells, where

        score = human_pop[d]^human_exponent · (distance / distancescale)^-dist_exponent

    Each tick a source sends floor(min(max_dispersers, dispersalperpop·N))
    individuals, split multinomially over its shortlist by score. Quarantine
    attenuates the flow: local quarantine multiplies by (1 - local_effect)
    when the source or destination cell is detected, regional quarantine by
    (1 - regional_effect) when the source or destination region holds any
    detected cell.
    """

    PARAMETERS = (
        ParamSpec('dispersalperpop', (0.0, 1.0), "fraction of the population dispersing"),
        ParamSpec('max_dispersers', (0.0, 1e9), "cap on dispersers per source cell"),
        ParamSpec('human_exponent', (0.0, 10.0), "exponent on destination human population"),
        ParamSpec('dist_exponent', (0.0, 10.0), "exponent on distance decay"),
        ParamSpec('distancescale', (1e-9, 1e9), "distance normalization"),
        ParamSpec('local_effect', (0.0, 1.0), "flow reduction under local quarantine"),
        ParamSpec('regional_effect', (0.0, 1.0), "flow reduction under regional quarantine"),
    )

    def __init__(self, human_pop: str = 'human_pop', dispersalperpop: float = 0.01,
                 max_dispersers: float = 100.0, n_destinations: int = 50,
                 human_exponent: float = 1.0, dist_exponent: float = 1.0,
                 distancescale: float = 1.0, cellsize: float = 1.0,
                 local_quarantine: bool = False, local_effect: float = 0.0,
                 regional_quarantine: bool = False, regional_effect: float = 0.0,
                 region: Optional[str] = None,
                 population: str = 'population', detected: str = 'detected'):
        """Initialize human-mediated dispersal.

        Args:
            human_pop: Name of the human population grid used as destination weight
            dispersalperpop: Fraction of a cell's population that disperses per tick
            max_dispersers: Maximum dispersers leaving one cell per tick
            n_destinations: Shortlist length per source cell
            human_exponent: Exponent applied to destination human population
            dist_exponent: Exponent of the distance decay
            distancescale: Distance normalization (same units as cellsize)
            cellsize: Width of one cell
            local_quarantine: Attenuate flows touching detected cells
            local_effect: Fractional flow reduction under local quarantine
            regional_quarantine: Attenuate flows touching detected regions
            regional_effect: Fractional flow reduction under regional quarantine
            region: Name of an integer region-id grid (needed for regional quarantine)
            population: Name of the population grid
            detected: Name of the detected grid

        Raises:
            ConfigurationError: If arguments are inconsistent
        """
        if n_destinations < 1:
            raise ConfigurationError("n_destinations must be at least 1")
        if cellsize <= 0:
            raise ConfigurationError("cellsize must be positive")
        if regional_quarantine and region is None:
            raise ConfigurationError("Regional quarantine needs a region grid")

        reads = [population, human_pop]
        if local_quarantine or regional_quarantine:
            reads.append(detected)
        if regional_quarantine:
            reads.append(region)
        super().__init__(reads, [population])

        self.human_pop = human_pop
        self.dispersalperpop = dispersalperpop
        self.max_dispersers = max_dispersers
        self.n_destinations = int(n_destinations)
        self.human_exponent = human_exponent
        self.dist_exponent = dist_exponent
        self.distancescale = distancescale
        self.cellsize = cellsize
        self.local_quarantine = local_quarantine
        self.local_effect = local_effect
        self.regional_quarantine = regional_quarantine
        self.regional_effect = regional_effect
        self.region = region
        self.population = population
        self.detected = detected

        # Filled by prepare()
        self.sources: Optional[np.ndarray] = None
        self.destinations: Optional[np.ndarray] = None
        self.probabilities: Optional[np.ndarray] = None

    def prepare(self, gridset: GridSet) -> None:
        """Precompute the destination shortlist for every mask cell."""
        mask = gridset.mask
        human = gridset[self.human_pop]
        if np.any(human < 0):
            raise ConfigurationError(f"Grid '{self.human_pop}' must be non-negative")

        cells = np.argwhere(mask)
        flat = np.ravel_multi_index((cells[:, 0], cells[:, 1]), mask.shape)
        weights = human[mask] ** self.human_exponent
        n_cells = len(cells)
        k = min(self.n_destinations, max(n_cells - 1, 0))

        destinations = np.zeros((n_cells, k), dtype=np.intp)
        probabilities = np.zeros((n_cells, k), dtype=np.float64)

        if k > 0:
            for i, (row, col) in enumerate(cells):
                distance = np.hypot(cells[:, 0] - row, cells[:, 1] - col) * self.cellsize
                with np.errstate(divide='ignore'):
                    decay = np.where(distance > 0, (distance / self.distancescale) ** -self.dist_exponent, 0.0)
                score = weights * decay
                top = np.argpartition(-score, k - 1)[:k]
                top = top[np.argsort(-score[top], kind='stable')]
                total = score[top].sum()
                destinations[i] = flat[top]
                if total > 0:
                    probabilities[i] = score[top] / total

        self.sources = flat
        self.destinations = destinations
        self.probabilities = probabilities
        logger.info(f"Human dispersal shortlist: {n_cells} sources x {k} destinations")

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        if self.sources is None:
            raise ConfigurationError("HumanDispersal.prepare() must run before apply()")

        N = values[self.population]
        out = N.copy()
        if self.destinations.shape[1] == 0:
            return {self.population: out}

        flat_pop = N.ravel()
        dispersers = np.minimum(self.max_dispersers, self.dispersalperpop * flat_pop[self.sources])
        counts = np.floor(dispersers).astype(np.int64)
        moving = (counts > 0) & (self.probabilities.sum(axis=1) > 0) & ctx.active.ravel()[self.sources]
        if not moving.any():
            return {self.population: out}

        src = self.sources[moving]
        dest = self.destinations[moving]
        pvals = self.probabilities[moving]
        pvals = pvals / pvals.sum(axis=1, keepdims=True)

        moved = ctx.rng.multinomial(counts[moving], pvals).astype(np.float64)
        moved *= self._attenuation(values, src, dest)

        # Scatter-then-reduce so several sources can feed one destination
        outflow = moved.sum(axis=1)
        inflow = np.zeros(N.size, dtype=np.float64)
        np.add.at(inflow, dest.ravel(), moved.ravel())

        flat_out = out.ravel()
        flat_out[src] -= outflow
        flat_out += inflow

        logger.debug(f"Tick {ctx.tick}: human dispersal moved {outflow.sum():.1f} from {len(src)} cells")
        return {self.population: flat_out.reshape(N.shape)}

    def _attenuation(self, values: Mapping[str, np.ndarray],
                     src: np.ndarray, dest: np.ndarray) -> np.ndarray:
        """Quarantine multipliers with the shape of ``dest``."""
        factor = np.ones(dest.shape, dtype=np.float64)
        if self.local_quarantine:
            detected = values[self.detected].ravel().astype(bool)
            touched = detected[src][:, None] | detected[dest]
            factor *= np.where(touched, 1.0 - self.local_effect, 1.0)
        if self.regional_quarantine:
            detected = values[self.detected].astype(bool)
            region = values[self.region]
            quarantined = np.isin(region, np.unique(region[detected])).ravel()
            touched = quarantined[src][:, None] | quarantined[dest]
            factor *= np.where(touched, 1.0 - self.regional_effect, 1.0)
        return factor

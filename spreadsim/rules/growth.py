"""Population growth and extinction rules."""

from typing import Dict, Mapping
import logging

import numpy as np

from .base import CellRule, GridOrValue, ParamSpec, TickContext, resolve

logger = logging.getLogger(__name__)


class LogisticGrowth(CellRule):
    """Exact solution of logistic growth over one timestep.

    N' = K / (1 + (K/N - 1)·e^{-rΔt}), algebraically the same as
    K·N·e^{rΔt} / (K + N·(e^{rΔt} - 1)), written so that a cell at carrying
    capacity stays exactly at K. Cells with N = 0 or K <= 0 end at zero.
    """

    PARAMETERS = (
        ParamSpec('rate', (-10.0, 10.0), "intrinsic growth rate per year"),
        ParamSpec('carrycap', (0.0, 1e12), "carrying capacity per cell"),
    )

    def __init__(self, rate: GridOrValue = 'growthrate', carrycap: GridOrValue = 100.0,
                 population: str = 'population'):
        """Initialize growth rule.

        Args:
            rate: Intrinsic rate per year, or name of a per-cell rate grid
            carrycap: Carrying capacity, or name of a per-cell grid
            population: Name of the population grid
        """
        reads = [population]
        reads += [g for g in (rate, carrycap) if isinstance(g, str)]
        super().__init__(reads, [population])
        self.rate = rate
        self.carrycap = carrycap
        self.population = population

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        N = values[self.population]
        r = resolve(values, self.rate)
        K = np.broadcast_to(resolve(values, self.carrycap), N.shape)

        growing = (N > 0) & (K > 0)
        out = np.zeros_like(N)
        with np.errstate(over='ignore'):
            decay = np.broadcast_to(np.exp(-np.asarray(r, dtype=float) * ctx.timestep), N.shape)
        Ng, Kg = N[growing], K[growing]
        out[growing] = Kg / (1.0 + (Kg / Ng - 1.0) * decay[growing])
        return {self.population: out}


class AlleeExtinction(CellRule):
    """Populations below a founder threshold go extinct: N' = 0 if N < minfounders."""

    PARAMETERS = (
        ParamSpec('minfounders', (0.0, 1e9), "minimum viable population per cell"),
    )

    def __init__(self, minfounders: float = 5.0, population: str = 'population'):
        super().__init__([population], [population])
        self.minfounders = minfounders
        self.population = population

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        N = values[self.population]
        return {self.population: np.where(N < self.minfounders, 0.0, N)}

"""Management interventions applied to the population."""

from typing import Dict, Mapping

import numpy as np

from .base import CellRule, GridOrValue, ParamSpec, TickContext, resolve


class EradicationCap(CellRule):
    """Cap population in detected, trapped cells at (1 - effect)·K.

    N' = min(N, (1 - eradication_effect)·K) where detected AND traps > 0,
    N' = N elsewhere. This is a cap, so it never increases a population.
    """

    PARAMETERS = (
        ParamSpec('eradication_effect', (0.0, 1.0), "fraction of carrying capacity removed"),
        ParamSpec('carrycap', (0.0, 1e12), "carrying capacity per cell"),
    )

    def __init__(self, eradication_effect: float = 0.5, carrycap: GridOrValue = 100.0,
                 population: str = 'population', detected: str = 'detected',
                 traps: str = 'traps'):
        reads = [population, detected, traps]
        if isinstance(carrycap, str):
            reads.append(carrycap)
        super().__init__(reads, [population])
        self.eradication_effect = eradication_effect
        self.carrycap = carrycap
        self.population = population
        self.detected = detected
        self.traps = traps

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        N = values[self.population]
        K = resolve(values, self.carrycap)
        treated = values[self.detected].astype(bool) & (values[self.traps] > 0)
        cap = (1.0 - self.eradication_effect) * K
        return {self.population: np.where(treated, np.minimum(N, cap), N)}

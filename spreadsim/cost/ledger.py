"""Additive per-cell cost ledger.

Four independent contributions accrue into the ``cost`` grid. Every rate
is annual and is multiplied by the calendar timestep, so a monthly run
with timestep 1/12 adds one twelfth of the annual cost per tick. All
constants are non-negative, so no contribution can lower the ledger.
"""

from typing import Dict, Mapping, Optional
import logging

import numpy as np

from ..rules.base import CellRule, Chain, GridOrValue, ParamSpec, TickContext, resolve

logger = logging.getLogger(__name__)


class CostContribution(CellRule):
    """Base class for one additive cost term.

    Subclasses implement ``amount`` returning the annual cost per cell.
    When ``component`` names a grid, the same amount is also accrued there
    so each cost term can be reported separately.
    """

    def __init__(self, reads, cost: str = 'cost', component: Optional[str] = None):
        writes = [cost] if component is None else [cost, component]
        super().__init__(list(reads) + writes, writes)
        self.cost = cost
        self.component = component

    def amount(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        raise NotImplementedError

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        added = np.broadcast_to(self.amount(values), ctx.mask.shape) * ctx.timestep
        out = {self.cost: values[self.cost] + added}
        if self.component is not None:
            out[self.component] = values[self.component] + added
        return out


class TrapCost(CostContribution):
    """Operating cost of traps: traps·per_trap_cost where traps > 0."""

    PARAMETERS = (
        ParamSpec('per_trap_cost', (0.0, 1e12), "annual cost of running one trap"),
    )

    def __init__(self, per_trap_cost: float = 0.0, traps: str = 'traps',
                 cost: str = 'cost', component: Optional[str] = None):
        super().__init__([traps], cost, component)
        self.per_trap_cost = per_trap_cost
        self.traps = traps

    def amount(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        traps = values[self.traps]
        return np.where(traps > 0, traps * self.per_trap_cost, 0.0)


class EradicationCost(CostContribution):
    """detected·cell_area·cost_per_area·eradication_effect."""

    PARAMETERS = (
        ParamSpec('cost_per_area', (0.0, 1e12), "annual eradication cost per unit area"),
        ParamSpec('cell_area', (1e-12, 1e12), "area of one cell"),
        ParamSpec('eradication_effect', (0.0, 1.0), "eradication effort level"),
    )

    def __init__(self, cost_per_area: float = 0.0, cell_area: float = 1.0,
                 eradication_effect: float = 0.0, detected: str = 'detected',
                 cost: str = 'cost', component: Optional[str] = None):
        super().__init__([detected], cost, component)
        self.cost_per_area = cost_per_area
        self.cell_area = cell_area
        self.eradication_effect = eradication_effect
        self.detected = detected

    def amount(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        detected = values[self.detected].astype(np.float64)
        return detected * self.cell_area * self.cost_per_area * self.eradication_effect


class LocalQuarantineCost(CostContribution):
    """detected·local_crop_value·local_effect (crop value scalar or grid)."""

    PARAMETERS = (
        ParamSpec('local_crop_value', (0.0, 1e12), "annual crop value affected by quarantine"),
        ParamSpec('local_effect', (0.0, 1.0), "fraction of trade lost under quarantine"),
    )

    def __init__(self, local_crop_value: GridOrValue = 0.0, local_effect: float = 0.0,
                 detected: str = 'detected', cost: str = 'cost',
                 component: Optional[str] = None):
        reads = [detected]
        if isinstance(local_crop_value, str):
            reads.append(local_crop_value)
        super().__init__(reads, cost, component)
        self.local_crop_value = local_crop_value
        self.local_effect = local_effect
        self.detected = detected

    def amount(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        detected = values[self.detected].astype(np.float64)
        return detected * resolve(values, self.local_crop_value) * self.local_effect


class CropLossCost(CostContribution):
    """crop_value·croploss_fraction where 0 < population and population ≥ damage_threshold."""

    PARAMETERS = (
        ParamSpec('crop_value', (0.0, 1e12), "annual crop value per cell"),
        ParamSpec('croploss_fraction', (0.0, 1.0), "fraction of crop lost when damaged"),
        ParamSpec('damage_threshold', (0.0, 1e12), "population causing crop damage"),
    )

    def __init__(self, crop_value: GridOrValue = 0.0, croploss_fraction: float = 0.0,
                 damage_threshold: float = 0.0, population: str = 'population',
                 cost: str = 'cost', component: Optional[str] = None):
        reads = [population]
        if isinstance(crop_value, str):
            reads.append(crop_value)
        super().__init__(reads, cost, component)
        self.crop_value = crop_value
        self.croploss_fraction = croploss_fraction
        self.damage_threshold = damage_threshold
        self.population = population

    def amount(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        N = values[self.population]
        damaged = (N > 0) & (N >= self.damage_threshold)
        return np.where(damaged, resolve(values, self.crop_value) * self.croploss_fraction, 0.0)


COMPONENT_GRIDS = ('cost_traps', 'cost_eradication', 'cost_quarantine', 'cost_croploss')


def cost_ledger(per_trap_cost: float = 0.0, cost_per_area: float = 0.0,
                cell_area: float = 1.0, eradication_effect: float = 0.0,
                local_crop_value: GridOrValue = 0.0, local_effect: float = 0.0,
                crop_value: GridOrValue = 0.0, croploss_fraction: float = 0.0,
                damage_threshold: float = 0.0, components: bool = False) -> Chain:
    """Build the four cost contributions as one fused chain.

    Args:
        components: Also accrue each term into its own grid
            (names in COMPONENT_GRIDS), which must exist in the GridSet

    Returns:
        Chain of TrapCost, EradicationCost, LocalQuarantineCost, CropLossCost
    """
    names = COMPONENT_GRIDS if components else (None,) * 4
    return Chain(
        TrapCost(per_trap_cost, component=names[0]),
        EradicationCost(cost_per_area, cell_area, eradication_effect, component=names[1]),
        LocalQuarantineCost(local_crop_value, local_effect, component=names[2]),
        CropLossCost(crop_value, croploss_fraction, damage_threshold, component=names[3]),
    )

"""Assemble the standard incursion-management pipeline from a config.

Rule order:

1. logistic growth
2. Allee extinction
3. local dispersal
4. human-mediated dispersal
5. threshold detection
6. trap detection
7. trap placement
8. eradication cap
9. cost ledger (one fused chain)

Disabled stages are left out.
"""

from typing import List, Optional
import logging

import numpy as np

from .config import SimulationConfig, validate_config
from .core.gridset import GridSet
from .core.kernel import Kernel
from .cost.ledger import COMPONENT_GRIDS, cost_ledger
from .detection.rules import ThresholdDetection, TrapDetection, TrapPlacement
from .engine.scheduler import Scheduler
from .engine.sink import OutputSink
from .rules.base import Rule
from .rules.dispersal import HumanDispersal, LocalDispersal
from .rules.growth import AlleeExtinction, LogisticGrowth
from .rules.intervention import EradicationCap

logger = logging.getLogger(__name__)


def management_pipeline(config: SimulationConfig) -> List[Rule]:
    """Build the ordered rule list for a configuration.

    Raises:
        ConfigurationError: If the configuration is inconsistent
    """
    validate_config(config)
    g, d, m = config.growth, config.dispersal, config.management
    rules: List[Rule] = []

    if g.enabled:
        rules.append(LogisticGrowth(rate=g.rate, carrycap=g.carrycap))
    if g.minfounders > 0:
        rules.append(AlleeExtinction(g.minfounders))

    if d.local:
        kernel = Kernel.from_decay(d.radius, decay=d.decay, scale=d.scale,
                                   cellsize=d.cellsize, shape=d.shape, retained=d.retained)
        rules.append(LocalDispersal(kernel))
    if d.human:
        rules.append(HumanDispersal(
            human_pop=d.human_pop,
            dispersalperpop=d.dispersalperpop,
            max_dispersers=d.max_dispersers,
            n_destinations=d.n_destinations,
            human_exponent=d.human_exponent,
            dist_exponent=d.dist_exponent,
            distancescale=d.distancescale,
            cellsize=d.cellsize,
            local_quarantine=m.local_quarantine,
            local_effect=m.local_effect,
            regional_quarantine=m.regional_quarantine,
            regional_effect=m.regional_effect,
            region=m.region,
        ))

    if m.reporting_threshold is not None:
        rules.append(ThresholdDetection(m.reporting_threshold))
    if m.trap_detection:
        rules.append(TrapDetection(m.detection_rate, m.trap_coverage))
    if m.trap_density > 0:
        trap_kernel = Kernel.from_decay(int(m.trap_radius), decay=d.decay, scale=d.scale,
                                        cellsize=d.cellsize, shape='circle')
        rules.append(TrapPlacement(trap_kernel, m.trap_density, m.cell_area))
    if m.eradication_effect > 0:
        rules.append(EradicationCap(m.eradication_effect, g.carrycap))

    rules.append(cost_ledger(
        per_trap_cost=m.per_trap_cost,
        cost_per_area=m.eradication_cost_per_area,
        cell_area=m.cell_area,
        eradication_effect=m.eradication_effect,
        local_crop_value=m.local_crop_value,
        local_effect=m.local_effect if m.local_quarantine else 0.0,
        crop_value=m.crop_value,
        croploss_fraction=m.croploss_fraction,
        damage_threshold=m.damage_threshold,
        components=m.cost_components,
    ))

    logger.info(f"Management pipeline: {[type(r).__name__ for r in rules]}")
    return rules


def initial_grids(population: np.ndarray, mask: Optional[np.ndarray] = None,
                  cost_components: bool = False, **layers: np.ndarray) -> GridSet:
    """GridSet with the state grids every management pipeline needs.

    Adds zeroed ``detected``, ``trapped`` (bool), ``traps`` and ``cost``
    grids, plus the cost component grids when requested, next to the
    population and any extra layers (growth rate, human population, ...).
    """
    population = np.asarray(population, dtype=np.float64)
    grids = {
        'population': population,
        'detected': np.zeros(population.shape, dtype=bool),
        'trapped': np.zeros(population.shape, dtype=bool),
        'traps': np.zeros(population.shape),
        'cost': np.zeros(population.shape),
    }
    if cost_components:
        for name in COMPONENT_GRIDS:
            grids[name] = np.zeros(population.shape)
    grids.update(layers)
    return GridSet(grids, mask)


def build_scheduler(config: SimulationConfig, init: GridSet,
                    sink: Optional[OutputSink] = None, replicate: int = 0) -> Scheduler:
    """Build the pipeline, ruleset and scheduler for one replicate."""
    return Scheduler.build(
        management_pipeline(config),
        init,
        timestep=config.timestep,
        start_time=config.start_time,
        sparse=config.sparse,
        sink=sink,
        seed=config.seed,
        replicate=replicate,
    )

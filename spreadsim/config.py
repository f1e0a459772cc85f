"""
Configuration for incursion management simulations
===================================================

Scalar parameters grouped by concern:

- GrowthConfig: logistic growth and Allee extinction
- DispersalConfig: local kernel and human-mediated dispersal
- ManagementConfig: detection, trapping, eradication, quarantine and costs
- SimulationConfig: the groups plus calendar, seed and run length

All rates are annual; ``timestep`` is the calendar length of one tick in
years (1/12 for a monthly step).
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import ConfigurationError


@dataclass
class GrowthConfig:
    """Population growth parameters."""

    enabled: bool = True

    rate: Union[float, str] = 'growthrate'
    """Intrinsic growth rate per year, or the name of a per-cell rate grid"""

    carrycap: Union[float, str] = 100.0
    """Carrying capacity per cell, or the name of a per-cell grid"""

    minfounders: float = 0.0
    """Populations below this go extinct each tick (0 disables the Allee rule)"""


@dataclass
class DispersalConfig:
    """Local and human-mediated dispersal parameters."""

    local: bool = True
    radius: int = 1
    decay: str = 'exponential'
    scale: float = 1.0
    """Decay scale in the same units as cellsize"""
    shape: str = 'moore'
    retained: Optional[float] = None
    """Fraction kept in the source cell (None: set by the decay alone)"""
    cellsize: float = 1.0

    human: bool = False
    human_pop: str = 'human_pop'
    dispersalperpop: float = 0.01
    max_dispersers: float = 100.0
    n_destinations: int = 50
    human_exponent: float = 1.0
    dist_exponent: float = 1.0
    distancescale: float = 1.0


@dataclass
class ManagementConfig:
    """Detection, trapping, eradication, quarantine and cost parameters."""

    # Detection
    reporting_threshold: Optional[float] = 50.0
    """Population at which an incursion is reported (None disables)"""
    detection_rate: float = 0.1
    trap_coverage: float = 1.0
    trap_detection: bool = True

    # Trapping
    trap_density: float = 0.0
    """Traps placed per unit area around each new detection"""
    trap_radius: int = 1

    # Interventions
    eradication_effect: float = 0.0
    local_quarantine: bool = False
    local_effect: float = 0.0
    regional_quarantine: bool = False
    regional_effect: float = 0.0
    region: Optional[str] = None

    # Costs (annual)
    cell_area: float = 1.0
    per_trap_cost: float = 0.0
    eradication_cost_per_area: float = 0.0
    local_crop_value: Union[float, str] = 0.0
    crop_value: Union[float, str] = 0.0
    croploss_fraction: float = 0.0
    damage_threshold: float = 0.0
    """Population at which crop loss starts; empty cells never count, even at 0"""
    cost_components: bool = False
    """Accrue each cost term into its own grid as well"""


@dataclass
class SimulationConfig:
    """Complete configuration combining all parameter groups."""

    growth: GrowthConfig = field(default_factory=GrowthConfig)
    dispersal: DispersalConfig = field(default_factory=DispersalConfig)
    management: ManagementConfig = field(default_factory=ManagementConfig)

    timestep: float = 1.0 / 12
    start_time: float = 0.0
    nsteps: int = 12
    seed: int = 0
    sparse: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationConfig':
        """Build a config from nested dicts, rejecting unknown keys.

        Raises:
            ConfigurationError: On unknown keys
        """
        groups = {'growth': GrowthConfig, 'dispersal': DispersalConfig,
                  'management': ManagementConfig}
        top = {f.name for f in fields(cls)}
        unknown = set(data) - top
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in groups:
                group = groups[key]
                allowed = {f.name for f in fields(group)}
                bad = set(value) - allowed
                if bad:
                    raise ConfigurationError(f"Unknown {key} config keys: {sorted(bad)}")
                kwargs[key] = group(**value)
            else:
                kwargs[key] = value
        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> 'SimulationConfig':
        """Load a config from a JSON file."""
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _check_unit(errors: List[str], name: str, value: float) -> None:
    if not (0.0 <= value <= 1.0):
        errors.append(f"{name} must be in [0, 1], got {value}")


def _check_nonneg(errors: List[str], name: str, value: Any) -> None:
    if isinstance(value, str):
        return
    if not (value >= 0):
        errors.append(f"{name} must be non-negative, got {value}")


def validate_config(config: SimulationConfig) -> None:
    """Check configuration for consistency.

    Raises:
        ConfigurationError: Listing every problem found
    """
    errors: List[str] = []
    g, d, m = config.growth, config.dispersal, config.management

    if not (config.timestep > 0):
        errors.append("timestep must be positive")
    if config.nsteps < 0:
        errors.append("nsteps must be non-negative")

    _check_nonneg(errors, "carrycap", g.carrycap)
    _check_nonneg(errors, "minfounders", g.minfounders)

    if d.radius < 0:
        errors.append("dispersal radius must be non-negative")
    if d.scale <= 0 or d.cellsize <= 0:
        errors.append("dispersal scale and cellsize must be positive")
    if d.retained is not None:
        _check_unit(errors, "retained", d.retained)
    _check_unit(errors, "dispersalperpop", d.dispersalperpop)
    _check_nonneg(errors, "max_dispersers", d.max_dispersers)
    if d.n_destinations < 1:
        errors.append("n_destinations must be at least 1")

    for name in ('eradication_effect', 'local_effect', 'regional_effect',
                 'detection_rate', 'trap_coverage', 'croploss_fraction'):
        _check_unit(errors, name, getattr(m, name))
    for name in ('trap_density', 'per_trap_cost', 'eradication_cost_per_area',
                 'local_crop_value', 'crop_value', 'damage_threshold'):
        _check_nonneg(errors, name, getattr(m, name))
    if m.reporting_threshold is not None:
        _check_nonneg(errors, "reporting_threshold", m.reporting_threshold)
    if m.trap_radius < 0 or int(m.trap_radius) != m.trap_radius:
        errors.append("trap_radius must be a non-negative integer")
    if not (m.cell_area > 0):
        errors.append("cell_area must be positive")
    if m.regional_quarantine and m.region is None:
        errors.append("regional_quarantine needs a region grid name")

    if errors:
        raise ConfigurationError("; ".join(errors))

"""Rule abstraction for per-timestep grid transformations.

A rule reads a complete snapshot of named grids and returns new arrays for
the grids it writes. The scheduler copies those arrays into its "next"
buffer at mask cells and swaps, so no rule ever sees another rule's partial
writes. Rules come in four variants:

- CellRule: elementwise, no neighbor access
- NeighborhoodRule: weighted window through a precomputed Kernel
- GlobalRule: arbitrary source-to-destination transfers
- Chain: several rules fused into one pipeline stage

Each rule declares its tunable scalar parameters and their bounds as data
(PARAMETERS), so optimizers can enumerate them without introspection.
"""

import copy
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union
import logging

import numpy as np
from numpy.random import Generator

from ..core.gridset import GridSet
from ..core.kernel import Kernel
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

Window = Tuple[slice, slice]
GridOrValue = Union[str, float]


@dataclass(frozen=True)
class ParamSpec:
    """Declared tunable parameter of a rule class."""
    name: str
    bounds: Tuple[float, float]
    description: str = ""


@dataclass(frozen=True)
class Param:
    """Current value of a tunable parameter on a rule instance."""
    name: str
    value: float
    bounds: Tuple[float, float]


@dataclass
class TickContext:
    """Per-tick information passed to every rule.

    Attributes:
        mask: Boolean validity mask
        active: Boolean array of cells selected by the activity strategy
        window: Bounding (row, col) slices of the active cells, or None if
            no cell is active
        timestep: Calendar length of one tick (years)
        tick: Index of the tick being computed (1 for the first)
        time: Calendar time at the end of the tick
        rng: Generator owned by this run or replicate
    """
    mask: np.ndarray
    active: np.ndarray
    window: Optional[Window]
    timestep: float
    tick: int
    time: float
    rng: Generator


def merge_masked(current: np.ndarray, new: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Take new values inside the mask and current values outside it."""
    return np.where(mask, new, current).astype(current.dtype, copy=False)


def resolve(values: Mapping[str, np.ndarray], source: GridOrValue) -> Union[np.ndarray, float]:
    """Look up a grid by name, or pass a scalar through."""
    if isinstance(source, str):
        return values[source]
    return source


class Rule:
    """Base class for all rules.

    Subclasses set ``reads``/``writes`` and implement ``apply``.
    """

    PARAMETERS: Tuple[ParamSpec, ...] = ()

    def __init__(self, reads: Sequence[str], writes: Sequence[str]):
        if not writes:
            raise ConfigurationError(f"{type(self).__name__} must write at least one grid")
        self.reads: Tuple[str, ...] = tuple(dict.fromkeys(reads))
        self.writes: Tuple[str, ...] = tuple(dict.fromkeys(writes))

    def parameters(self) -> Dict[str, Param]:
        """Tunable parameters with their current values and bounds."""
        return {
            spec.name: Param(spec.name, getattr(self, spec.name), spec.bounds)
            for spec in self.PARAMETERS
        }

    def with_parameters(self, **values: GridOrValue) -> 'Rule':
        """Return a copy of this rule with some parameters replaced.

        A parameter may switch between a scalar and a grid name; ``reads``
        follows, so the Ruleset checks the new grids at build time.

        Raises:
            ConfigurationError: If a name is not a declared parameter
        """
        declared = {spec.name for spec in self.PARAMETERS}
        unknown = set(values) - declared
        if unknown:
            raise ConfigurationError(
                f"{type(self).__name__} has no parameters {sorted(unknown)} (have {sorted(declared)})"
            )
        rule = copy.deepcopy(self)
        for name, value in values.items():
            setattr(rule, name, value)

        # Grids written by the rule are never dropped from reads
        old_grids = set(self._grid_parameters()) - set(self.writes)
        fixed = [name for name in self.reads if name not in old_grids]
        rule.reads = tuple(dict.fromkeys(fixed + rule._grid_parameters()))
        return rule

    def _grid_parameters(self) -> list:
        """Names of grids currently bound to parameters."""
        return [
            value for value in (getattr(self, spec.name) for spec in self.PARAMETERS)
            if isinstance(value, str)
        ]

    def validate(self) -> None:
        """Check every numeric parameter lies within its declared bounds.

        Grid-valued parameters (given as a grid name) are checked against
        the GridSet by the ruleset instead.

        Raises:
            ConfigurationError: If a value is out of bounds
        """
        for param in self.parameters().values():
            value = param.value
            if isinstance(value, str) or isinstance(value, bool):
                continue
            low, high = param.bounds
            if not (np.isfinite(value) and low <= value <= high):
                raise ConfigurationError(
                    f"{type(self).__name__}.{param.name}={value} outside bounds [{low}, {high}]"
                )

    def kernels(self) -> Tuple[Kernel, ...]:
        """Kernels used by this rule (for activity radius checks)."""
        return ()

    def prepare(self, gridset: GridSet) -> None:
        """Build-time precomputation against the initial grids."""

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        """Compute new full-grid arrays for every grid in ``writes``."""
        raise NotImplementedError

    def __repr__(self) -> str:
        params = ", ".join(f"{p.name}={p.value!r}" for p in self.parameters().values())
        return f"{type(self).__name__}({params})"


class CellRule(Rule):
    """Rule whose output at a cell depends only on inputs at that cell."""


class NeighborhoodRule(Rule):
    """Rule reading a kernel-weighted window around each cell.

    Attributes:
        kernel: Precomputed weight table
    """

    def __init__(self, kernel: Kernel, reads: Sequence[str], writes: Sequence[str]):
        super().__init__(reads, writes)
        if not isinstance(kernel, Kernel):
            raise ConfigurationError(f"{type(self).__name__} needs a Kernel, got {type(kernel).__name__}")
        self.kernel = kernel

    def kernels(self) -> Tuple[Kernel, ...]:
        return (self.kernel,)


class GlobalRule(Rule):
    """Rule that may move values between arbitrary cells."""


class Chain(Rule):
    """Ordered rules fused into one pass over the grids.

    The first member may be a NeighborhoodRule; every other member must be
    a CellRule. Applying a chain gives the same result as applying its
    members one after another with a buffer swap in between, but with one
    mask merge, one domain check and one swap per written grid instead of
    one per member.
    """

    def __init__(self, *rules: Rule):
        if not rules:
            raise ConfigurationError("Chain needs at least one rule")
        for position, rule in enumerate(rules):
            if isinstance(rule, CellRule):
                continue
            if position == 0 and isinstance(rule, NeighborhoodRule):
                continue
            raise ConfigurationError(
                f"Chain member {position} ({type(rule).__name__}) must be a CellRule"
                + ("" if position else " or NeighborhoodRule")
            )
        reads = [name for rule in rules for name in rule.reads]
        writes = [name for rule in rules for name in rule.writes]
        super().__init__(reads, writes)
        self.rules: Tuple[Rule, ...] = tuple(rules)

    def parameters(self) -> Dict[str, Param]:
        """Member parameters, prefixed with the member position."""
        params = {}
        for position, rule in enumerate(self.rules):
            for name, param in rule.parameters().items():
                key = f"{position}.{name}"
                params[key] = Param(key, param.value, param.bounds)
        return params

    def with_parameters(self, **values: float) -> 'Chain':
        """Replace member parameters addressed as ``"<position>.<name>"``."""
        per_member: Dict[int, Dict[str, float]] = {}
        for key, value in values.items():
            position, _, name = key.partition(".")
            if not position.isdigit() or int(position) >= len(self.rules) or not name:
                raise ConfigurationError(f"Chain parameter '{key}' must look like '<position>.<name>'")
            per_member.setdefault(int(position), {})[name] = value
        rules = [
            rule.with_parameters(**per_member[i]) if i in per_member else copy.deepcopy(rule)
            for i, rule in enumerate(self.rules)
        ]
        return Chain(*rules)

    def validate(self) -> None:
        for rule in self.rules:
            rule.validate()

    def kernels(self) -> Tuple[Kernel, ...]:
        return tuple(k for rule in self.rules for k in rule.kernels())

    def prepare(self, gridset: GridSet) -> None:
        for rule in self.rules:
            rule.prepare(gridset)

    def apply(self, values: Mapping[str, np.ndarray], ctx: TickContext) -> Dict[str, np.ndarray]:
        """Apply the members in order with a single mask merge at the end.

        Only the first member reads neighbors, and it reads the unmodified
        input. Later members are CellRules, so whatever an earlier member
        left at a masked cell only reaches that same masked cell, which is
        restored from the input once per written grid.
        """
        view = dict(values)
        for rule in self.rules:
            view.update(rule.apply(view, ctx))
        return {name: merge_masked(values[name], view[name], ctx.mask) for name in self.writes}

    def __repr__(self) -> str:
        return f"Chain({', '.join(repr(r) for r in self.rules)})"

"""Immutable pipeline of rules plus the grids and settings for a run."""

import copy
from typing import Iterable, Optional, Tuple, Union
import logging

from ..core.gridset import GridSet
from ..errors import ConfigurationError
from ..rules.base import Rule
from .activity import ActiveSet, FullScan

logger = logging.getLogger(__name__)

Activity = Union[FullScan, ActiveSet]


class Ruleset:
    """Ordered rules, initial grids and calendar settings for one configuration.

    Build with ``Ruleset.build``; the result is never mutated, so several
    schedulers (replicates) can share it.
    """

    def __init__(self, rules: Tuple[Rule, ...], init: GridSet, timestep: float,
                 start_time: float, activity: Activity):
        self._rules = rules
        self._init = init
        self._timestep = timestep
        self._start_time = start_time
        self._activity = activity

    @classmethod
    def build(cls, rules: Iterable[Rule], init: GridSet, timestep: float = 1.0,
              start_time: float = 0.0, sparse: Union[bool, ActiveSet] = False) -> 'Ruleset':
        """Validate rules against the initial grids and freeze the pipeline.

        Args:
            rules: Rules in application order
            init: Initial grids and mask
            timestep: Calendar length of one tick in years (1/12 for monthly)
            start_time: Calendar time of the initial snapshot
            sparse: False for full scans, True for an ActiveSet tracking
                'population', or an explicit ActiveSet

        Returns:
            Validated Ruleset

        Raises:
            ConfigurationError: On unknown grid names, out-of-range
                parameters, a bad timestep, or an activity radius smaller
                than the largest kernel radius
        """
        if not isinstance(init, GridSet):
            raise ConfigurationError(f"Initial state must be a GridSet, got {type(init).__name__}")
        if not (timestep > 0):
            raise ConfigurationError(f"Timestep must be positive, got {timestep}")

        rules = tuple(copy.deepcopy(rule) for rule in rules)
        if not rules:
            raise ConfigurationError("Ruleset needs at least one rule")

        for position, rule in enumerate(rules):
            if not isinstance(rule, Rule):
                raise ConfigurationError(f"Item {position} is not a Rule: {rule!r}")
            missing = [name for name in rule.reads + rule.writes if name not in init]
            if missing:
                raise ConfigurationError(
                    f"{type(rule).__name__} at position {position} uses grids {missing} "
                    f"not in GridSet {list(init.names)}"
                )
            rule.validate()

        max_radius = max((k.radius for rule in rules for k in rule.kernels()), default=0)
        if sparse is True:
            activity = ActiveSet('population', max_radius)
        elif isinstance(sparse, ActiveSet):
            activity = sparse if sparse.radius is not None else sparse.with_radius(max_radius)
        else:
            activity = FullScan()
        if isinstance(activity, ActiveSet):
            if activity.grid not in init:
                raise ConfigurationError(f"Activity grid '{activity.grid}' not in GridSet")
            if activity.radius < max_radius:
                raise ConfigurationError(
                    f"Activity radius {activity.radius} is smaller than kernel radius {max_radius}"
                )

        init = init.copy()
        for rule in rules:
            rule.prepare(init)

        logger.info(f"Built ruleset with {len(rules)} rules on {init.shape} grid, "
                    f"timestep={timestep}, activity={activity!r}")
        return cls(rules, init, float(timestep), float(start_time), activity)

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return self._rules

    @property
    def init(self) -> GridSet:
        return self._init

    @property
    def timestep(self) -> float:
        return self._timestep

    @property
    def start_time(self) -> float:
        return self._start_time

    @property
    def activity(self) -> Activity:
        return self._activity

    @property
    def mask(self):
        return self._init.mask

    def __repr__(self) -> str:
        return (f"Ruleset({len(self._rules)} rules, shape={self._init.shape}, "
                f"timestep={self._timestep})")

"""
spreadsim: rule-based multi-grid simulation of pest incursions

Advances named, co-registered grids (population, detected, traps, cost)
through discrete timesteps with an ordered pipeline of growth, dispersal,
detection, intervention and cost rules.
"""

from .core.gridset import GridSet
from .core.kernel import Kernel
from .engine.ruleset import Ruleset
from .engine.scheduler import RunResult, RunState, Scheduler
from .engine.sink import CallbackSink, ListSink, OutputSink, QueuedSink, Snapshot
from .errors import ConfigurationError, RuntimeDomainError, SchedulerStateError

__version__ = "0.1.0"

__all__ = [
    'GridSet',
    'Kernel',
    'Ruleset',
    'Scheduler',
    'RunResult',
    'RunState',
    'OutputSink',
    'ListSink',
    'CallbackSink',
    'QueuedSink',
    'Snapshot',
    'ConfigurationError',
    'RuntimeDomainError',
    'SchedulerStateError',
]

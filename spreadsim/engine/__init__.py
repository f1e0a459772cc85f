"""Ruleset, scheduler, activity strategies and output sinks."""

from .activity import ActiveSet, FullScan
from .ruleset import Ruleset
from .scheduler import RunResult, RunState, Scheduler
from .sink import CallbackSink, ListSink, OutputSink, QueuedSink, Snapshot

__all__ = [
    'ActiveSet',
    'FullScan',
    'Ruleset',
    'Scheduler',
    'RunResult',
    'RunState',
    'OutputSink',
    'ListSink',
    'CallbackSink',
    'QueuedSink',
    'Snapshot',
]

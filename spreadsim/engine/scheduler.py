"""Timestep scheduler driving a Ruleset over double-buffered grids.

The scheduler is a small state machine:

    UNINITIALIZED -> RUNNING <-> PAUSED -> COMPLETED | CANCELLED | FAILED

Each tick applies every rule in order. A rule reads the complete "current"
grids and its outputs are written into the "next" buffers at mask cells;
the written grids are then swapped, so the following rule sees the result.
After the last rule the clock advances and a snapshot goes to the sink.
Pause and cancel requests are only honoured between ticks.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Optional, Union
import logging

import numpy as np

from ..core.gridset import GridSet
from ..core.rng import make_rng
from ..errors import ConfigurationError, RuntimeDomainError, SchedulerStateError
from ..rules.base import Rule, TickContext
from .activity import ActiveSet, bounding_window
from .ruleset import Ruleset
from .sink import ListSink, OutputSink, Snapshot

logger = logging.getLogger(__name__)


class RunState(Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = (RunState.COMPLETED, RunState.CANCELLED, RunState.FAILED)


@dataclass
class RunResult:
    """Outcome of one run or replicate."""
    status: RunState
    ticks: int
    replicate: int = 0
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RunState.COMPLETED


class Scheduler:
    """Advances one realization of a Ruleset through time.

    Attributes:
        ruleset: Shared, read-only pipeline and initial grids
        sink: Receiver of one snapshot per tick
        replicate: Replicate index, also the generator stream id
        tick: Number of ticks completed
    """

    def __init__(self, ruleset: Ruleset, sink: Optional[OutputSink] = None,
                 seed: int = 0, replicate: int = 0):
        """Initialize scheduler in the UNINITIALIZED state.

        Args:
            ruleset: Built Ruleset (may be shared with other schedulers)
            sink: Snapshot receiver (a new ListSink if None)
            seed: Seed shared by all replicates of a configuration
            replicate: Replicate index selecting an independent stream
        """
        if not isinstance(ruleset, Ruleset):
            raise ConfigurationError(f"Scheduler needs a built Ruleset, got {type(ruleset).__name__}")
        self.ruleset = ruleset
        self.sink = sink if sink is not None else ListSink()
        self.seed = seed
        self.replicate = replicate
        self.rng = make_rng(seed, replicate)

        self.tick = 0
        self.stop_tick: Optional[int] = None
        self.error: Optional[Exception] = None

        self._state = RunState.UNINITIALIZED
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._resume = threading.Event()
        self._resume.set()
        self._in_run = False
        self._sink_closed = False
        self._current: Optional[Dict[str, np.ndarray]] = None
        self._next: Optional[Dict[str, np.ndarray]] = None

    @classmethod
    def build(cls, rules: Iterable[Rule], init: GridSet, timestep: float = 1.0,
              start_time: float = 0.0, sparse: Union[bool, ActiveSet] = False,
              sink: Optional[OutputSink] = None, seed: int = 0,
              replicate: int = 0) -> 'Scheduler':
        """Build a Ruleset and wrap it in a new scheduler.

        Raises:
            ConfigurationError: If the rules don't fit the grids
        """
        ruleset = Ruleset.build(rules, init, timestep=timestep,
                                start_time=start_time, sparse=sparse)
        return cls(ruleset, sink=sink, seed=seed, replicate=replicate)

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def time(self) -> float:
        """Calendar time of the latest completed tick."""
        return self.ruleset.start_time + self.tick * self.ruleset.timestep

    @property
    def result(self) -> RunResult:
        return RunResult(self._state, self.tick, self.replicate, self.error)

    def current(self) -> GridSet:
        """Copy of the live grids as a GridSet.

        Raises:
            SchedulerStateError: If the run has not started or has ended
        """
        if self._current is None:
            raise SchedulerStateError(f"No live grids in state {self._state.value}")
        return GridSet(self._current, self.ruleset.mask)

    def start(self, nsteps: int) -> None:
        """Allocate buffers, emit the initial snapshot and enter RUNNING.

        Args:
            nsteps: Number of ticks until the run completes

        Raises:
            SchedulerStateError: If the scheduler was already started
            ConfigurationError: If nsteps is negative
        """
        with self._lock:
            if self._state is not RunState.UNINITIALIZED:
                raise SchedulerStateError(f"Can't start from state {self._state.value}")
            if nsteps < 0:
                raise ConfigurationError(f"nsteps must be non-negative, got {nsteps}")
            self._current = self.ruleset.init.arrays()
            self._next = {name: arr.copy() for name, arr in self._current.items()}
            self.tick = 0
            self.stop_tick = int(nsteps)
            self._state = RunState.RUNNING

        logger.info(f"Replicate {self.replicate}: starting {nsteps} ticks (seed={self.seed})")
        self._emit()

    def step(self) -> bool:
        """Advance exactly one tick.

        Returns:
            True if the run can continue, False once it has ended

        Raises:
            SchedulerStateError: If not RUNNING
            RuntimeDomainError: If a rule produced an invalid value
            Exception: Whatever a rule raised. Either way the run is
                marked FAILED first
        """
        if self._state is not RunState.RUNNING:
            raise SchedulerStateError(f"Can't step in state {self._state.value}")
        return self._tick()

    def _tick(self) -> bool:
        if self._cancel.is_set():
            self._finish(RunState.CANCELLED)
            return False
        if self.tick >= self.stop_tick:
            self._finish(RunState.COMPLETED)
            return False

        try:
            self._advance()
        except Exception as exc:
            self.error = exc
            logger.error(f"Replicate {self.replicate}: run failed at tick {self.tick + 1}: "
                         f"{type(exc).__name__}: {exc}")
            self._finish(RunState.FAILED)
            raise

        self._emit()
        if self.tick >= self.stop_tick:
            self._finish(RunState.COMPLETED)
            return False
        return True

    def run(self, nsteps: Optional[int] = None) -> RunResult:
        """Tick until the stop time, a cancellation or a failure.

        Starts the run first when it is still UNINITIALIZED. Blocks while
        paused. An error raised while applying the rules (a
        RuntimeDomainError or anything a rule raises) ends the run as
        FAILED and is returned in the result rather than raised.

        Args:
            nsteps: Number of ticks, required if the run isn't started yet

        Returns:
            RunResult describing how the run ended
        """
        if self._state is RunState.UNINITIALIZED:
            if nsteps is None:
                raise ConfigurationError("nsteps is required to start a run")
            self.start(nsteps)
        elif self._state in TERMINAL_STATES:
            raise SchedulerStateError(f"Run already ended ({self._state.value})")

        self._in_run = True
        try:
            while self._state not in TERMINAL_STATES:
                self._resume.wait()
                if self._cancel.is_set():
                    self._finish(RunState.CANCELLED)
                    break
                if self._state is RunState.PAUSED:
                    continue
                try:
                    # A pause landing here takes effect after this tick
                    self._tick()
                except Exception:
                    # Already recorded on self.error and marked FAILED
                    break
        finally:
            self._in_run = False
            self._close_sink()
        return self.result

    def pause(self) -> None:
        """Stop ticking after the current tick; buffers are kept."""
        with self._lock:
            if self._state is not RunState.RUNNING:
                raise SchedulerStateError(f"Can't pause in state {self._state.value}")
            self._state = RunState.PAUSED
            self._resume.clear()
        logger.info(f"Replicate {self.replicate}: paused at tick {self.tick}")

    def resume(self) -> None:
        """Continue ticking after a pause."""
        with self._lock:
            if self._state is not RunState.PAUSED:
                raise SchedulerStateError(f"Can't resume in state {self._state.value}")
            self._state = RunState.RUNNING
            self._resume.set()
        logger.info(f"Replicate {self.replicate}: resumed at tick {self.tick}")

    def cancel(self) -> None:
        """Request a clean stop at the next tick boundary.

        Snapshots already emitted are kept; the live buffers are dropped.
        Cancelling an ended run does nothing.
        """
        if self._state in TERMINAL_STATES:
            return
        self._cancel.set()
        if self._state is RunState.PAUSED:
            with self._lock:
                self._state = RunState.RUNNING
        self._resume.set()
        if not self._in_run:
            self._finish(RunState.CANCELLED)

    def _advance(self) -> None:
        """Apply every rule once and move the clock forward."""
        ruleset = self.ruleset
        mask = ruleset.mask
        tick = self.tick + 1
        time = ruleset.start_time + tick * ruleset.timestep

        for rule in ruleset.rules:
            active = ruleset.activity.select(self._current, mask)
            ctx = TickContext(
                mask=mask,
                active=active,
                window=bounding_window(active),
                timestep=ruleset.timestep,
                tick=tick,
                time=time,
                rng=self.rng,
            )
            outputs = rule.apply(MappingProxyType(self._current), ctx)
            for name in rule.writes:
                current = self._current[name]
                target = self._next[name]
                np.copyto(target, np.where(mask, outputs[name], current), casting='unsafe')
                self._check_domain(name, target, tick)
                self._current[name], self._next[name] = target, current

        self.tick = tick
        logger.debug(f"Replicate {self.replicate}: tick {tick} done (t={time:.4f})")

    def _check_domain(self, name: str, values: np.ndarray, tick: int) -> None:
        if values.dtype == bool:
            return
        bad = ~(np.isfinite(values) & (values >= 0)) & self.ruleset.mask
        if bad.any():
            row, col = (int(i) for i in np.argwhere(bad)[0])
            raise RuntimeDomainError(name, (row, col), tick, float(values[row, col]))

    def _emit(self) -> None:
        snapshot = Snapshot(
            tick=self.tick,
            time=self.time,
            grids={name: arr.copy() for name, arr in self._current.items()},
            replicate=self.replicate,
            mask=self.ruleset.mask,
        )
        self.sink.emit(snapshot)

    def _finish(self, state: RunState) -> None:
        with self._lock:
            if self._state in TERMINAL_STATES:
                return
            self._state = state
            self._current = None
            self._next = None
            self._resume.set()
        logger.info(f"Replicate {self.replicate}: {state.value} after {self.tick} ticks")
        if not self._in_run:
            self._close_sink()

    def _close_sink(self) -> None:
        if self._sink_closed or self._state not in TERMINAL_STATES:
            return
        self._sink_closed = True
        self.sink.close()

"""Snapshots and the sinks that receive them.

The scheduler hands each sink one Snapshot per timestep. A snapshot owns
copies of the grids, so consumers may keep or modify it freely. Slow
consumers (live viewers, exporters) should sit behind a QueuedSink so the
scheduler never waits on them inside a tick.
"""

import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import logging

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """State of every grid at the end of one tick (tick 0 is the initial state)."""
    tick: int
    time: float
    grids: Dict[str, np.ndarray]
    replicate: int = 0
    mask: Optional[np.ndarray] = field(default=None, repr=False)

    def __getitem__(self, name: str) -> np.ndarray:
        return self.grids[name]

    def __contains__(self, name: object) -> bool:
        return name in self.grids


class OutputSink:
    """Receiver of the snapshot stream."""

    def emit(self, snapshot: Snapshot) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Called once when the run ends, whatever the outcome."""


class ListSink(OutputSink):
    """Keeps every snapshot in memory for batch analysis."""

    def __init__(self):
        self.snapshots: List[Snapshot] = []
        self.closed = False

    def emit(self, snapshot: Snapshot) -> None:
        self.snapshots.append(snapshot)

    def close(self) -> None:
        self.closed = True

    def grid_series(self, name: str) -> np.ndarray:
        """Stack one grid across all snapshots into a (T, rows, cols) array."""
        return np.stack([s.grids[name] for s in self.snapshots])

    def __len__(self) -> int:
        return len(self.snapshots)

    def __getitem__(self, index: int) -> Snapshot:
        return self.snapshots[index]


class CallbackSink(OutputSink):
    """Calls a function with each snapshot on the scheduler's thread."""

    def __init__(self, callback: Callable[[Snapshot], None]):
        self.callback = callback

    def emit(self, snapshot: Snapshot) -> None:
        self.callback(snapshot)


class QueuedSink(OutputSink):
    """Forwards snapshots to another sink from a background thread.

    ``emit`` only enqueues. If the queue is full the snapshot is dropped
    (with a warning) when ``drop_when_full`` is set, otherwise emit blocks
    until the consumer catches up.
    """

    _STOP = object()

    def __init__(self, target: OutputSink, maxsize: int = 64, drop_when_full: bool = False):
        self.target = target
        self.drop_when_full = drop_when_full
        self.dropped = 0
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._error: Optional[BaseException] = None
        self._thread = threading.Thread(target=self._consume, name="spreadsim-sink", daemon=True)
        self._thread.start()

    def _consume(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                if self._error is None:
                    self.target.emit(item)
            except Exception as exc:
                logger.error(f"Queued sink consumer failed: {exc}")
                self._error = exc
            finally:
                self._queue.task_done()

    def emit(self, snapshot: Snapshot) -> None:
        if self.drop_when_full:
            try:
                self._queue.put_nowait(snapshot)
            except queue.Full:
                self.dropped += 1
                logger.warning(f"Sink queue full, dropped snapshot at tick {snapshot.tick}")
        else:
            self._queue.put(snapshot)

    def close(self) -> None:
        """Drain the queue, stop the consumer thread and close the target.

        Raises:
            Exception: The first error raised by the target sink, if any
        """
        self._queue.put(self._STOP)
        self._thread.join()
        self.target.close()
        if self._error is not None:
            raise self._error

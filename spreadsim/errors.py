"""Exception types raised by the spreadsim engine.

Configuration problems surface at build time as ConfigurationError. Bad
values produced while ticking surface as RuntimeDomainError and abort only
the run that produced them.
"""

from typing import Optional, Tuple


class ConfigurationError(ValueError):
    """Invalid grids, mask, rule parameters or pipeline composition."""


class RuntimeDomainError(ArithmeticError):
    """A rule wrote a negative, NaN or infinite value into a grid.

    Attributes:
        grid: Name of the offending grid
        cell: (row, col) of the first offending cell
        tick: Timestep at which the value was produced
        value: The offending value
    """

    def __init__(self, grid: str, cell: Tuple[int, int], tick: int,
                 value: Optional[float] = None):
        self.grid = grid
        self.cell = cell
        self.tick = tick
        self.value = value
        super().__init__(
            f"Grid '{grid}' has invalid value {value!r} at cell {cell} on tick {tick}"
        )


class SchedulerStateError(RuntimeError):
    """Operation not allowed in the scheduler's current state."""

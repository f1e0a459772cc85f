"""Grid state, kernels and random streams."""

from .gridset import GridSet
from .kernel import Kernel
from .rng import make_rng

__all__ = ['GridSet', 'Kernel', 'make_rng']

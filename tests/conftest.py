"""Shared fixtures for rule-level tests."""

import pytest
import numpy as np
from spreadsim.core.rng import make_rng
from spreadsim.engine.activity import bounding_window
from spreadsim.rules.base import TickContext


@pytest.fixture
def make_context():
    """Factory for a TickContext over a mask, every mask cell active."""
    def factory(mask, timestep=1.0, tick=1, seed=0, active=None):
        mask = np.asarray(mask, dtype=bool)
        active = mask if active is None else active
        return TickContext(
            mask=mask,
            active=active,
            window=bounding_window(active),
            timestep=timestep,
            tick=tick,
            time=tick * timestep,
            rng=make_rng(seed),
        )
    return factory

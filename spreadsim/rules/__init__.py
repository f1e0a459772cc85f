"""Rule variants and the population rules built on them."""

from .base import CellRule, Chain, GlobalRule, NeighborhoodRule, Param, ParamSpec, Rule, TickContext
from .dispersal import HumanDispersal, LocalDispersal
from .growth import AlleeExtinction, LogisticGrowth
from .intervention import EradicationCap

__all__ = [
    'Rule',
    'CellRule',
    'NeighborhoodRule',
    'GlobalRule',
    'Chain',
    'Param',
    'ParamSpec',
    'TickContext',
    'LogisticGrowth',
    'AlleeExtinction',
    'LocalDispersal',
    'HumanDispersal',
    'EradicationCap',
]

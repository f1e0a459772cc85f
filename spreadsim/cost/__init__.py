"""Additive per-cell cost ledger."""

from .ledger import (
    COMPONENT_GRIDS, CostContribution, CropLossCost, EradicationCost,
    LocalQuarantineCost, TrapCost, cost_ledger
)

__all__ = [
    'COMPONENT_GRIDS',
    'CostContribution',
    'TrapCost',
    'EradicationCost',
    'LocalQuarantineCost',
    'CropLossCost',
    'cost_ledger',
]

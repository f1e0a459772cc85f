"""Unit tests for the additive cost ledger."""

import pytest
import numpy as np
from spreadsim.cost.ledger import (
    COMPONENT_GRIDS, CropLossCost, EradicationCost, LocalQuarantineCost, TrapCost, cost_ledger
)
from spreadsim.rules.base import Chain


@pytest.fixture
def ledger_values():
    """3x3 state: one detected cell, one trapped cell, a population gradient."""
    detected = np.zeros((3, 3), dtype=bool)
    detected[1, 1] = True
    traps = np.zeros((3, 3))
    traps[0, 0] = 4.0
    population = np.array([[0.0, 5.0, 10.0], [20.0, 40.0, 0.0], [0.0, 0.0, 80.0]])
    values = {
        'population': population,
        'detected': detected,
        'traps': traps,
        'cost': np.zeros((3, 3)),
    }
    for name in COMPONENT_GRIDS:
        values[name] = np.zeros((3, 3))
    return values


@pytest.fixture
def mask():
    return np.ones((3, 3), dtype=bool)


class TestCostTerms:
    """Test each cost contribution on its own."""

    def test_trap_cost(self, ledger_values, mask, make_context):
        out = TrapCost(per_trap_cost=25.0).apply(ledger_values, make_context(mask))
        assert out['cost'][0, 0] == 100.0
        assert out['cost'].sum() == 100.0

    def test_eradication_cost(self, ledger_values, mask, make_context):
        rule = EradicationCost(cost_per_area=1000.0, cell_area=2.0, eradication_effect=0.5)
        out = rule.apply(ledger_values, make_context(mask))
        assert out['cost'][1, 1] == 1000.0
        assert out['cost'].sum() == 1000.0

    def test_local_quarantine_cost(self, ledger_values, mask, make_context):
        rule = LocalQuarantineCost(local_crop_value=300.0, local_effect=0.1)
        out = rule.apply(ledger_values, make_context(mask))
        assert out['cost'][1, 1] == pytest.approx(30.0)
        assert out['cost'].sum() == pytest.approx(30.0)

    def test_local_quarantine_crop_value_grid(self, ledger_values, mask, make_context):
        ledger_values['crop'] = np.full((3, 3), 50.0)
        rule = LocalQuarantineCost(local_crop_value='crop', local_effect=1.0)
        assert 'crop' in rule.reads
        out = rule.apply(ledger_values, make_context(mask))
        assert out['cost'][1, 1] == 50.0

    def test_crop_loss_threshold(self, ledger_values, mask, make_context):
        rule = CropLossCost(crop_value=200.0, croploss_fraction=0.25, damage_threshold=20.0)
        out = rule.apply(ledger_values, make_context(mask))['cost']
        damaged = ledger_values['population'] >= 20.0
        assert np.all(out[damaged] == 50.0)
        assert np.all(out[~damaged] == 0.0)

    def test_crop_loss_ignores_empty_cells(self, ledger_values, mask, make_context):
        """A zero damage threshold still charges only occupied cells."""
        rule = CropLossCost(crop_value=10.0, croploss_fraction=1.0, damage_threshold=0.0)
        out = rule.apply(ledger_values, make_context(mask))['cost']
        assert out.sum() == 10.0 * np.count_nonzero(ledger_values['population'])

    def test_timestep_scales_annual_cost(self, ledger_values, mask, make_context):
        """A monthly tick adds one twelfth of the annual cost."""
        rule = TrapCost(per_trap_cost=120.0)
        out = rule.apply(ledger_values, make_context(mask, timestep=1.0 / 12))
        assert out['cost'][0, 0] == pytest.approx(40.0)

    def test_component_grid(self, ledger_values, mask, make_context):
        rule = TrapCost(per_trap_cost=1.0, component='cost_traps')
        assert rule.writes == ('cost', 'cost_traps')
        out = rule.apply(ledger_values, make_context(mask))
        assert np.array_equal(out['cost'], out['cost_traps'])


class TestCostLedger:
    """Test the fused ledger chain."""

    def test_ledger_is_chain_of_four(self):
        ledger = cost_ledger()
        assert isinstance(ledger, Chain)
        assert [type(r) for r in ledger.rules] == [
            TrapCost, EradicationCost, LocalQuarantineCost, CropLossCost
        ]

    def test_terms_add_up(self, ledger_values, mask, make_context):
        ledger = cost_ledger(per_trap_cost=25.0, cost_per_area=1000.0, cell_area=2.0,
                             eradication_effect=0.5, local_crop_value=300.0, local_effect=0.1,
                             crop_value=200.0, croploss_fraction=0.25, damage_threshold=20.0,
                             components=True)
        out = ledger.apply(ledger_values, make_context(mask))

        assert out['cost_traps'].sum() == 100.0
        assert out['cost_eradication'].sum() == 1000.0
        assert out['cost_quarantine'].sum() == pytest.approx(30.0)
        assert out['cost_croploss'].sum() == 150.0
        total = sum(out[name].sum() for name in COMPONENT_GRIDS)
        assert out['cost'].sum() == pytest.approx(total)

    def test_cost_never_decreases(self, ledger_values, mask, make_context):
        """Accruing over many ticks only ever raises the ledger."""
        ledger = cost_ledger(per_trap_cost=3.0, cost_per_area=10.0, eradication_effect=0.2,
                             local_crop_value=5.0, local_effect=0.5, crop_value=7.0,
                             croploss_fraction=0.1, damage_threshold=10.0)
        values = dict(ledger_values)
        previous = values['cost'].copy()
        for tick in range(1, 13):
            values.update(ledger.apply(values, make_context(mask, timestep=1.0 / 12, tick=tick)))
            assert np.all(values['cost'] >= previous)
            previous = values['cost'].copy()

    def test_zero_constants_add_nothing(self, ledger_values, mask, make_context):
        out = cost_ledger().apply(ledger_values, make_context(mask))
        assert out['cost'].sum() == 0.0

    def test_chain_parameters_enumerable(self):
        params = cost_ledger(per_trap_cost=2.0).parameters()
        assert params['0.per_trap_cost'].value == 2.0
        assert params['3.croploss_fraction'].bounds == (0.0, 1.0)

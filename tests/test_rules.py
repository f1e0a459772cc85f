"""
Rule abstraction validation

Validates:
- Parameter descriptors, bounds checking and with_parameters copies
- Chain composition rules
- A chain gives the same result as its members applied in sequence
"""

import pytest
import numpy as np
from spreadsim.core.gridset import GridSet
from spreadsim.core.kernel import Kernel
from spreadsim.engine.scheduler import Scheduler
from spreadsim.errors import ConfigurationError
from spreadsim.rules.base import CellRule, Chain, GlobalRule, Rule, merge_masked
from spreadsim.rules.dispersal import HumanDispersal, LocalDispersal
from spreadsim.rules.growth import AlleeExtinction, LogisticGrowth


class Doubling(CellRule):
    """Test rule multiplying a grid by two."""

    def __init__(self, grid='population'):
        super().__init__([grid], [grid])
        self.grid = grid

    def apply(self, values, ctx):
        return {self.grid: values[self.grid] * 2.0}


class TestParameters:
    """Test declared tunable parameters."""

    def test_enumerate(self):
        rule = AlleeExtinction(minfounders=3.0)
        params = rule.parameters()
        assert list(params) == ['minfounders']
        assert params['minfounders'].value == 3.0
        assert params['minfounders'].bounds == (0.0, 1e9)

    def test_with_parameters_returns_copy(self):
        rule = LogisticGrowth(rate=0.5, carrycap=100.0)
        tuned = rule.with_parameters(rate=1.5)
        assert tuned.rate == 1.5
        assert rule.rate == 0.5
        assert tuned is not rule

    def test_unknown_parameter(self):
        with pytest.raises(ConfigurationError, match="no parameters"):
            AlleeExtinction().with_parameters(growth=1.0)

    def test_out_of_bounds(self):
        with pytest.raises(ConfigurationError, match="outside bounds"):
            AlleeExtinction(minfounders=-1.0).validate()

    def test_grid_valued_parameter_skipped(self):
        LogisticGrowth(rate='growthrate', carrycap='carrycap').validate()

    def test_switch_to_grid_checked_at_build(self):
        """A parameter rebound to a grid name must exist when the ruleset is built."""
        rule = LogisticGrowth(rate=1.0, carrycap=100.0).with_parameters(rate='missing')
        assert rule.reads == ('population', 'missing')
        with pytest.raises(ConfigurationError, match="missing"):
            Scheduler.build([rule], GridSet({'population': np.ones((3, 3))}))

    def test_switch_to_scalar_drops_grid(self):
        rule = LogisticGrowth(rate='growthrate', carrycap=100.0).with_parameters(rate=1.0)
        assert rule.reads == ('population',)
        scheduler = Scheduler.build([rule], GridSet({'population': np.ones((3, 3))}))
        assert scheduler.run(2).succeeded

    def test_untouched_grid_parameter_kept(self):
        rule = LogisticGrowth(rate='growthrate', carrycap='carrycap').with_parameters(rate=0.5)
        assert rule.reads == ('population', 'carrycap')

    def test_rule_needs_writes(self):
        with pytest.raises(ConfigurationError, match="at least one grid"):
            Rule(['population'], [])

    def test_repr_lists_parameters(self):
        assert "minfounders=5.0" in repr(AlleeExtinction(5.0))


class TestChainComposition:
    """Test which rules may be fused."""

    def test_cell_rules(self):
        chain = Chain(LogisticGrowth(rate=1.0), AlleeExtinction())
        assert chain.writes == ('population',)
        assert set(chain.reads) == {'population'}

    def test_neighborhood_first(self):
        Chain(LocalDispersal(Kernel.from_decay(1)), AlleeExtinction())

    def test_neighborhood_later_rejected(self):
        with pytest.raises(ConfigurationError, match="member 1"):
            Chain(AlleeExtinction(), LocalDispersal(Kernel.from_decay(1)))

    def test_global_rule_rejected(self):
        with pytest.raises(ConfigurationError, match="CellRule or NeighborhoodRule"):
            Chain(HumanDispersal(), AlleeExtinction())

    def test_empty_rejected(self):
        with pytest.raises(ConfigurationError, match="at least one rule"):
            Chain()

    def test_kernels_collected(self):
        kernel = Kernel.from_decay(2)
        chain = Chain(LocalDispersal(kernel), AlleeExtinction())
        assert chain.kernels() == (kernel,)

    def test_positional_parameters(self):
        chain = Chain(LogisticGrowth(rate=1.0), AlleeExtinction(minfounders=2.0))
        params = chain.parameters()
        assert set(params) == {'0.rate', '0.carrycap', '1.minfounders'}

        tuned = chain.with_parameters(**{'1.minfounders': 7.0})
        assert tuned.rules[1].minfounders == 7.0
        assert chain.rules[1].minfounders == 2.0

    def test_bad_positional_key(self):
        chain = Chain(AlleeExtinction())
        with pytest.raises(ConfigurationError, match="<position>.<name>"):
            chain.with_parameters(minfounders=1.0)
        with pytest.raises(ConfigurationError, match="<position>.<name>"):
            chain.with_parameters(**{'4.minfounders': 1.0})

    def test_validate_members(self):
        with pytest.raises(ConfigurationError, match="outside bounds"):
            Chain(AlleeExtinction(minfounders=-2.0)).validate()


class TestChainEquivalence:
    """A chain equals its members run one after another."""

    @pytest.fixture
    def masked_grids(self):
        mask = np.ones((12, 12), dtype=bool)
        mask[:, 9:] = False
        mask[3, 3] = False
        population = np.zeros((12, 12))
        population[5, 5] = 60.0
        population[2, 7] = 8.0
        return GridSet({'population': population}, mask=mask)

    def test_fused_matches_sequential(self, masked_grids):
        kernel = Kernel.from_decay(1, decay='gaussian', scale=1.0)
        members = [LocalDispersal(kernel), LogisticGrowth(rate=0.7, carrycap=50.0),
                   AlleeExtinction(minfounders=2.0)]

        sequential = Scheduler.build(members, masked_grids, seed=4)
        sequential.run(6)
        fused = Scheduler.build([Chain(*members)], masked_grids, seed=4)
        fused.run(6)

        for a, b in zip(sequential.sink.snapshots, fused.sink.snapshots):
            np.testing.assert_allclose(a['population'], b['population'], rtol=1e-12, atol=1e-12)

    def test_chain_respects_mask(self, masked_grids, make_context):
        """Masked cells keep their input value in the chain output."""
        chain = Chain(LocalDispersal(Kernel.from_decay(1)), Doubling())
        values = masked_grids.arrays()
        out = chain.apply(values, make_context(masked_grids.mask))['population']
        assert np.all(out[~masked_grids.mask] == 0.0)

    def test_masked_cells_restored_once(self, make_context):
        """Members may scribble on masked cells; the chain output restores them."""
        mask = np.array([[True, False]])
        values = {'population': np.array([[1.0, 3.0]])}
        out = Chain(Doubling(), Doubling()).apply(values, make_context(mask))['population']
        assert out.tolist() == [[4.0, 3.0]]
        assert values['population'].tolist() == [[1.0, 3.0]]


class TestHelpers:
    def test_merge_masked(self):
        mask = np.array([[True, False]])
        merged = merge_masked(np.array([[1.0, 2.0]]), np.array([[5.0, 6.0]]), mask)
        assert merged.tolist() == [[5.0, 2.0]]

    def test_merge_masked_keeps_dtype(self):
        mask = np.array([[True, True]])
        merged = merge_masked(np.array([[False, True]]), np.array([[1.0, 0.0]]), mask)
        assert merged.dtype == bool

    def test_global_rule_is_rule(self):
        assert issubclass(GlobalRule, Rule)

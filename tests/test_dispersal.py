"""
Local and human-mediated dispersal validation

Validates:
- Kernel dispersal of a single seeded cell (80 retained, 5 to each neighbor)
- Mass conservation away from the mask boundary
- Truncation (mass loss) at grid and mask edges
- Human dispersal shortlist, conservation and quarantine attenuation
- Reproducibility of stochastic dispersal from the run seed
"""

import pytest
import numpy as np
from spreadsim.core.gridset import GridSet
from spreadsim.core.kernel import Kernel
from spreadsim.engine.scheduler import Scheduler
from spreadsim.errors import ConfigurationError
from spreadsim.rules.dispersal import HumanDispersal, LocalDispersal


@pytest.fixture
def cross_kernel():
    """Radius 1 kernel keeping 0.8 and sending 0.05 to each orthogonal neighbor."""
    return Kernel.from_fractions(retained=0.8, orthogonal=0.05)


class TestLocalDispersal:
    """Test kernel convolution dispersal."""

    def test_single_seeded_cell(self, cross_kernel):
        """Seeded cell at K=100 keeps 80 and sends 5 to each orthogonal neighbor."""
        population = np.zeros((10, 10))
        population[5, 5] = 100.0
        scheduler = Scheduler.build([LocalDispersal(cross_kernel)], GridSet({'population': population}))
        scheduler.run(1)

        after = scheduler.sink[1]['population']
        assert after[5, 5] == pytest.approx(80.0, abs=1e-9)
        for row, col in [(4, 5), (6, 5), (5, 4), (5, 6)]:
            assert after[row, col] == pytest.approx(5.0, abs=1e-9)
        assert after[4, 4] == 0.0
        assert abs(after.sum() - 100.0) < 1e-9

    def test_interior_mass_conserved(self, make_context):
        """Away from the boundary, dispersal moves mass without creating or losing it."""
        kernel = Kernel.from_decay(2, decay='gaussian', scale=1.0)
        population = np.zeros((20, 20))
        population[8:12, 8:12] = np.arange(16, dtype=float).reshape(4, 4)
        mask = np.ones((20, 20), dtype=bool)

        out = LocalDispersal(kernel).apply({'population': population}, make_context(mask))
        assert out['population'].sum() == pytest.approx(population.sum(), rel=1e-12)

    def test_truncated_at_grid_edge(self, cross_kernel, make_context):
        """Mass sent off the grid is lost, not reflected or renormalized."""
        population = np.zeros((5, 5))
        population[0, 0] = 100.0
        out = LocalDispersal(cross_kernel).apply({'population': population},
                                                 make_context(np.ones((5, 5), dtype=bool)))
        assert out['population'].sum() == pytest.approx(90.0)
        assert out['population'][0, 0] == pytest.approx(80.0)

    def test_masked_cells_receive_nothing(self, cross_kernel):
        """Mass sent onto masked cells is lost through the scheduler merge."""
        mask = np.ones((5, 5), dtype=bool)
        mask[2, 3] = False
        population = np.zeros((5, 5))
        population[2, 2] = 100.0
        scheduler = Scheduler.build([LocalDispersal(cross_kernel)],
                                    GridSet({'population': population}, mask=mask))
        scheduler.run(1)

        after = scheduler.sink[1]['population']
        assert after[2, 3] == 0.0
        assert after.sum() == pytest.approx(95.0)

    def test_window_restricts_writes(self, cross_kernel, make_context):
        """Only cells inside the active window are recomputed."""
        population = np.zeros((9, 9))
        population[4, 4] = 100.0
        mask = np.ones((9, 9), dtype=bool)
        active = np.zeros((9, 9), dtype=bool)
        active[3:6, 3:6] = True

        out = LocalDispersal(cross_kernel).apply({'population': population},
                                                 make_context(mask, active=active))
        assert out['population'][4, 4] == pytest.approx(80.0)
        assert out['population'].sum() == pytest.approx(100.0)

    def test_no_active_cells(self, cross_kernel, make_context):
        population = np.zeros((5, 5))
        ctx = make_context(np.ones((5, 5), dtype=bool), active=np.zeros((5, 5), dtype=bool))
        out = LocalDispersal(cross_kernel).apply({'population': population}, ctx)
        assert np.array_equal(out['population'], population)

    def test_needs_kernel(self):
        with pytest.raises(ConfigurationError, match="needs a Kernel"):
            LocalDispersal(np.ones((3, 3)))


@pytest.fixture
def human_grids():
    """Population seeded in one corner, a large town in the opposite corner."""
    population = np.zeros((8, 8))
    population[0, 0] = 1000.0
    human = np.ones((8, 8))
    human[7, 7] = 500.0
    return GridSet({
        'population': population,
        'human_pop': human,
        'detected': np.zeros((8, 8), dtype=bool),
    })


class TestHumanDispersal:
    """Test long-distance dispersal along human movement."""

    def test_shortlist_prepared(self, human_grids):
        rule = HumanDispersal(n_destinations=5, dist_exponent=0.5)
        rule.prepare(human_grids)

        assert rule.sources.shape == (64,)
        assert rule.destinations.shape == (64, 5)
        np.testing.assert_allclose(rule.probabilities.sum(axis=1), 1.0)
        # The town outranks nearer cells for the corner source
        assert rule.destinations[0, 0] == np.ravel_multi_index((7, 7), (8, 8))

    def test_source_excluded_from_own_shortlist(self, human_grids):
        rule = HumanDispersal(n_destinations=10)
        rule.prepare(human_grids)
        for i, source in enumerate(rule.sources):
            assert source not in rule.destinations[i]

    def test_mass_conserved(self, human_grids, make_context):
        rule = HumanDispersal(dispersalperpop=0.1, max_dispersers=50.0, n_destinations=10)
        rule.prepare(human_grids)
        values = human_grids.arrays()
        out = rule.apply(values, make_context(human_grids.mask))['population']

        assert out.sum() == pytest.approx(1000.0)
        assert out[0, 0] == pytest.approx(950.0)
        assert np.all(out >= 0)

    def test_disperser_count_floored(self, human_grids, make_context):
        """A source with fewer than one disperser sends nothing."""
        values = human_grids.arrays()
        values['population'][0, 0] = 5.0
        rule = HumanDispersal(dispersalperpop=0.1)
        rule.prepare(human_grids)
        out = rule.apply(values, make_context(human_grids.mask))['population']
        assert out[0, 0] == 5.0

    def test_same_seed_same_result(self, human_grids, make_context):
        rule = HumanDispersal(dispersalperpop=0.1, n_destinations=10)
        rule.prepare(human_grids)
        values = human_grids.arrays()
        a = rule.apply(values, make_context(human_grids.mask, seed=7))['population']
        b = rule.apply(values, make_context(human_grids.mask, seed=7))['population']
        assert np.array_equal(a, b)

    def test_local_quarantine_attenuates(self, human_grids, make_context):
        """A full local effect keeps every disperser in a detected source cell."""
        values = human_grids.arrays()
        values['detected'][0, 0] = True
        rule = HumanDispersal(dispersalperpop=0.1, max_dispersers=100.0, n_destinations=10,
                              local_quarantine=True, local_effect=1.0)
        rule.prepare(human_grids)
        out = rule.apply(values, make_context(human_grids.mask))['population']

        assert out[0, 0] == pytest.approx(1000.0)
        assert out.sum() == pytest.approx(1000.0)

    def test_regional_quarantine_attenuates(self, human_grids, make_context):
        region = np.zeros((8, 8), dtype=int)
        region[4:, 4:] = 1
        grids = human_grids.with_grids(region=region)
        values = grids.arrays()
        values['detected'][0, 0] = True

        rule = HumanDispersal(dispersalperpop=0.1, max_dispersers=100.0, n_destinations=10,
                              regional_quarantine=True, regional_effect=0.5, region='region')
        rule.prepare(grids)
        out = rule.apply(values, make_context(grids.mask))['population']

        # Everything leaving region 0 is halved on the way out
        assert out[0, 0] == pytest.approx(1000.0 - 100.0 * 0.5)

    def test_regional_quarantine_needs_region(self):
        with pytest.raises(ConfigurationError, match="region grid"):
            HumanDispersal(regional_quarantine=True)

    def test_apply_before_prepare(self, human_grids, make_context):
        with pytest.raises(ConfigurationError, match="prepare"):
            HumanDispersal().apply(human_grids.arrays(), make_context(human_grids.mask))

    def test_reads_declared(self):
        rule = HumanDispersal(local_quarantine=True, regional_quarantine=True, region='region')
        assert set(rule.reads) == {'population', 'human_pop', 'detected', 'region'}
        assert rule.writes == ('population',)

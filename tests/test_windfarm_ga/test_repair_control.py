"""
Tests for the repair operator and the adaptive controller.
"""

import unittest
import numpy as np

from windfarm_ga.data_models import LayoutEvaluation
from windfarm_ga.errors import ConfigurationError
from windfarm_ga.fuzzy_control import AdaptiveController, FuzzyControlSettings
from windfarm_ga.repair import cell_contributions, repair, repair_genome


def make_evaluation(run, fitness, indices, turbine_energy=None, n_cells=30):
    genome = np.zeros(n_cells, dtype=np.uint8)
    genome[list(indices)] = 1
    if turbine_energy is None:
        turbine_energy = [fitness / len(indices)] * len(indices)
    return LayoutEvaluation(
        run=run,
        genome=genome,
        turbine_indices=np.flatnonzero(genome),
        turbine_ids=tuple(int(i) for i in np.flatnonzero(genome)),
        energy=fitness,
        potential_energy=fitness * 1.2,
        efficiency=100.0 / 1.2,
        fitness=fitness,
        turbine_energy=turbine_energy,
        turbine_wake_loss=[0.0] * len(indices),
    )


def population(values, start_run=1):
    return [
        make_evaluation(start_run + i, float(value), [i % 30])
        for i, value in enumerate(values)
    ]


class TestRepair(unittest.TestCase):
    """Test the repair (trimton) operator."""

    def setUp(self):
        self.rng = np.random.default_rng(11)

    def test_exact_count_after_repair(self):
        """Every repaired genome holds exactly n turbines."""
        genomes = [self.rng.integers(0, 2, 30).astype(np.uint8) for _ in range(50)]
        genomes.append(np.zeros(30, dtype=np.uint8))
        genomes.append(np.ones(30, dtype=np.uint8))

        for genome in repair(genomes, 5, rng=self.rng):
            self.assertEqual(int(genome.sum()), 5)
            self.assertTrue(set(np.unique(genome)).issubset({0, 1}))

    def test_valid_genome_untouched(self):
        """Genomes with exactly n turbines are unchanged."""
        genome = np.zeros(30, dtype=np.uint8)
        genome[[1, 7, 20]] = 1
        np.testing.assert_array_equal(repair_genome(genome, 3, rng=self.rng), genome)

    def test_full_grid_is_noop(self):
        """n equal to the grid size keeps the all-ones genome."""
        genome = np.ones(12, dtype=np.uint8)
        np.testing.assert_array_equal(repair_genome(genome, 12, rng=self.rng), genome)

    def test_n_larger_than_grid_raises(self):
        with self.assertRaises(ConfigurationError):
            repair_genome(np.zeros(5, dtype=np.uint8), 6, rng=self.rng)

    def test_cell_contributions(self):
        """Mean turbine energy per cell; unseen cells get the observed mean."""
        evaluations = [
            make_evaluation(1, 30.0, [0, 1], turbine_energy=[10.0, 20.0]),
            make_evaluation(2, 40.0, [0, 2], turbine_energy=[30.0, 10.0]),
            make_evaluation(2, 40.0, [0, 2], turbine_energy=[30.0, 10.0]),
        ]
        contributions = cell_contributions(evaluations, 4)

        self.assertAlmostEqual(contributions[0], 20.0)
        self.assertAlmostEqual(contributions[1], 20.0)
        self.assertAlmostEqual(contributions[2], 10.0)
        self.assertAlmostEqual(contributions[3], 50.0 / 3.0)

    def test_trim_force_prefers_strong_cells(self):
        """Weighted removal keeps the best cells far more often than not."""
        evaluations = [
            make_evaluation(1, 100.0, [0, 1, 2, 3],
                            turbine_energy=[100.0, 1.0, 1.0, 1.0], n_cells=4),
        ]
        genomes = [np.ones(4, dtype=np.uint8) for _ in range(200)]
        repaired = repair(genomes, 1, evaluations, trim_force=True, rng=self.rng)

        kept_best = sum(int(g[0]) for g in repaired)
        self.assertGreater(kept_best, 150)
        for genome in repaired:
            self.assertEqual(int(genome.sum()), 1)

    def test_trim_force_uniform_contributions(self):
        """Equal contributions fall back to an unbiased choice."""
        evaluations = [make_evaluation(1, 4.0, [0, 1, 2, 3], n_cells=6)]
        genomes = [np.zeros(6, dtype=np.uint8) for _ in range(20)]
        for genome in repair(genomes, 3, evaluations, trim_force=True, rng=self.rng):
            self.assertEqual(int(genome.sum()), 3)


class TestFuzzyControlSettings(unittest.TestCase):
    """Test controller settings."""

    def test_defaults(self):
        settings = FuzzyControlSettings()
        self.assertEqual(settings.weights, (0.8, 0.2, 0.0))
        self.assertAlmostEqual(settings.divisor_floor, 4 / 3)
        self.assertEqual(settings.stagnation_window, 6)

    def test_from_dict(self):
        settings = FuzzyControlSettings.from_dict({'weights': [0.6, 0.4, 0.0]})
        self.assertEqual(settings.weights, (0.6, 0.4, 0.0))

    def test_invalid_settings(self):
        with self.assertRaises(ConfigurationError):
            FuzzyControlSettings.from_dict({'unknown': 1})
        with self.assertRaises(ConfigurationError):
            FuzzyControlSettings(weights=(1.0, 0.0))
        with self.assertRaises(ConfigurationError):
            FuzzyControlSettings(divisor_floor=0.5)


class TestAdaptiveController(unittest.TestCase):
    """Test the adaptive (fuzzy) controller."""

    def setUp(self):
        self.rng = np.random.default_rng(5)

    def test_initial_state(self):
        """First generation only records the fitness."""
        controller = AdaptiveController("VAR", rng=self.rng)
        state = controller.update(1, population(range(1, 26)))

        self.assertEqual(state.trend, "initial")
        self.assertEqual(state.selection_divisor, 1.35)
        self.assertEqual(controller.crossover_points, 2)
        self.assertAlmostEqual(controller.selection_fraction(), 1 / 1.35)

    def test_improved_relaxes(self):
        """An improving generation raises divisor and crossover rate."""
        controller = AdaptiveController("VAR", rng=self.rng)
        controller.update(1, population(range(1, 26)))
        state = controller.update(2, population(range(2, 27)))

        self.assertEqual(state.trend, "improved")
        self.assertAlmostEqual(state.weighted_delta, 1.0)
        self.assertAlmostEqual(state.selection_divisor, 1.367)
        self.assertAlmostEqual(state.crossover_rate, 1.13)
        self.assertEqual(state.crossover_points, 2)
        self.assertFalse(state.select_all)

    def test_deteriorated_tightens_to_floor(self):
        """A stagnating generation lowers the divisor, never below its floor."""
        controller = AdaptiveController("VAR", rng=self.rng)
        values = range(1, 26)
        controller.update(1, population(values))

        for generation in range(2, 30):
            state = controller.update(generation, population(values))
            self.assertEqual(state.trend, "deteriorated")
            self.assertGreaterEqual(state.selection_divisor, controller.settings.divisor_floor)

        self.assertTrue(state.floor_hit)
        self.assertEqual(state.crossover_points, 1)

    def test_small_population_selects_all(self):
        """Twenty or fewer unique layouts are all selected and crossover is boosted."""
        controller = AdaptiveController("VAR", rng=self.rng)
        controller.update(1, population(range(1, 26)))
        state = controller.update(2, population(range(1, 6)))

        self.assertTrue(state.select_all)
        self.assertEqual(controller.selection_fraction(), 1.0)
        self.assertAlmostEqual(state.crossover_rate, 1.14)

    def test_fixed_mode(self):
        """FIX mode selects half, or everything for a small population."""
        controller = AdaptiveController("FIX", rng=self.rng)
        controller.update(1, population(range(1, 26)))
        self.assertEqual(controller.selection_fraction(), 0.5)

        state = controller.update(2, population(range(2, 27)))
        self.assertEqual(state.selection_divisor, 2.0)
        self.assertEqual(controller.selection_fraction(), 0.5)

        controller.update(3, population(range(1, 4)))
        self.assertEqual(controller.selection_fraction(), 1.0)

    def test_invalid_method(self):
        with self.assertRaises(ConfigurationError):
            AdaptiveController("ABC")

    def test_stagnation_recovery(self):
        """Stale best energy re-injects the best layout as two new Runs."""
        settings = FuzzyControlSettings(stagnation_start=2, stagnation_window=2)
        controller = AdaptiveController("VAR", settings, rng=self.rng)
        best = make_evaluation(3, 10.0, [4])

        controller.track_best(best)
        self.assertEqual(controller.stagnation_recovery(1, 10), [])
        controller.track_best(make_evaluation(1, 5.0, [5]))
        self.assertEqual(controller.stagnation_recovery(2, 10), [])
        controller.track_best(make_evaluation(2, 5.0, [6]))
        injected = controller.stagnation_recovery(3, 26)

        self.assertEqual([e.run for e in injected], [26, 27])
        for evaluation in injected:
            np.testing.assert_array_equal(evaluation.genome, best.genome)
            self.assertEqual(evaluation.energy, 10.0)
        self.assertEqual(best.run, 3)

        state = controller.update(3, population(range(1, 26)), population_size=27)
        self.assertTrue(state.reinjected)

    def test_trend_ignores_pool_size(self):
        """Only the generation's own fitness drives the trend; the pool size
        only decides whether everything is selected."""
        controller = AdaptiveController("VAR", rng=self.rng)
        controller.update(1, population(range(1, 26)))
        state = controller.update(2, population(range(1, 26)), population_size=27)

        self.assertEqual(state.trend, "deteriorated")
        self.assertEqual(state.fitness.max, 25.0)
        self.assertFalse(state.select_all)

        small = AdaptiveController("VAR", rng=self.rng)
        small.update(1, population(range(1, 20)))
        state = small.update(2, population(range(1, 20)), population_size=21)
        self.assertFalse(state.select_all)
        state = small.update(3, population(range(1, 20)))
        self.assertTrue(state.select_all)

    def test_no_recovery_when_best_is_recent(self):
        settings = FuzzyControlSettings(stagnation_start=1, stagnation_window=2)
        controller = AdaptiveController("VAR", settings, rng=self.rng)
        for generation, energy in enumerate([5.0, 6.0, 7.0], start=1):
            controller.track_best(make_evaluation(generation, energy, [generation]))
            self.assertEqual(controller.stagnation_recovery(generation, 50), [])

    def test_mutation_rate(self):
        """Base rate unless more than two layouts share the best energy."""
        controller = AdaptiveController("VAR", rng=self.rng)
        self.assertEqual(controller.mutation_rate(0.008, 2, 1, 20), 0.008)
        self.assertEqual(controller.mutation_rate(0.008, 9, 1, 20, variable=False), 0.008)
        self.assertGreater(controller.mutation_rate(0.008, 9, 1, 20), 0.03)


if __name__ == '__main__':
    unittest.main()

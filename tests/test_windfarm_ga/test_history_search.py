"""
Tests for the generation history and the post-optimization random search.
"""

import typing
import unittest
from dataclasses import replace
import numpy as np

from windfarm_ga.config_loader import GAConfig
from windfarm_ga.data_models import (
    GridCell,
    LayoutEvaluation,
    OptimizationHistory,
    TerrainContext,
    WindScenario,
)
from windfarm_ga.fitness import FitnessEvaluator
from windfarm_ga.orchestration import run_optimization
from windfarm_ga.random_search import random_search


def lattice(rows=6, cols=6, spacing=60.0):
    return [
        GridCell(id=r * cols + c + 1, x=c * spacing, y=r * spacing)
        for r in range(rows)
        for c in range(cols)
    ]


class TestOptimizationHistory(unittest.TestCase):
    """Test the append-only history."""

    @classmethod
    def setUpClass(cls):
        cls.grid = lattice()
        cls.wind = WindScenario.from_records([(15.0, 10.0, 70.0), (200.0, 9.0, 30.0)])
        cls.config = GAConfig(
            n_turbines=5, rotor_radius=30.0, hub_height=80.0,
            max_iterations=3, initial_population=30
        )
        cls.history = run_optimization(
            cls.grid, cls.wind, cls.config, rng=np.random.default_rng(21)
        )

    def test_generations_in_order(self):
        self.assertEqual([r.generation for r in self.history], list(range(1, len(self.history) + 1)))

    def test_append_out_of_order_rejected(self):
        history = OptimizationHistory()
        with self.assertRaises(ValueError):
            history.append(replace(self.history[0], generation=2))
        history.append(self.history[0])
        self.assertEqual(len(history), 1)

    def test_records_are_immutable(self):
        record = self.history[0]
        with self.assertRaises(AttributeError):
            record.generation = 10
        self.assertIsInstance(self.history.records, tuple)

    def test_best_over_run(self):
        best = self.history.best_by_energy()
        self.assertEqual(best.energy, max(r.energy.max for r in self.history))
        best_eff = self.history.best_by_efficiency()
        self.assertEqual(best_eff.efficiency, max(r.efficiency.max for r in self.history))

    def test_annotations_resolve(self):
        hints = typing.get_type_hints(TerrainContext)
        self.assertEqual(hints["roughness"], typing.Optional[typing.Dict[int, float]])
        hints = typing.get_type_hints(LayoutEvaluation)
        self.assertEqual(hints["turbine_ids"], typing.Tuple[int, ...])
        self.assertIn("metadata", typing.get_type_hints(OptimizationHistory))

    def test_empty_history(self):
        with self.assertRaises(ValueError):
            OptimizationHistory().best_by_energy()

    def test_summary_rows(self):
        rows = self.history.summary_rows()
        self.assertEqual(len(rows), len(self.history))
        for key in ("generation", "max_energy", "mean_efficiency", "selection_divisor",
                    "crossover_points", "mutation_rate", "n_selected", "n_repaired", "trend"):
            self.assertIn(key, rows[0])
        self.assertEqual(rows[0]["trend"], "initial")


class TestRandomSearch(unittest.TestCase):
    """Test random search around the best layout."""

    def setUp(self):
        self.grid = lattice()
        self.wind = WindScenario.from_records([(0.0, 10.0, 100.0)])
        config = GAConfig(n_turbines=4, rotor_radius=30.0, hub_height=80.0)
        self.evaluator = FitnessEvaluator(self.grid, self.wind, config.build_wake_model())
        self.rng = np.random.default_rng(8)

    def test_improvements_only(self):
        """Every returned layout beats the start and keeps the turbine count."""
        genome = np.zeros(36, dtype=np.uint8)
        genome[[0, 6, 12, 18]] = 1  # one column, fully waked
        start = self.evaluator.evaluate_layout(genome)

        results = random_search(start, self.grid, self.evaluator, n_trials=40, rng=self.rng)

        self.assertGreater(len(results), 0)
        energies = [r.energy for r in results]
        self.assertEqual(energies, sorted(energies, reverse=True))
        for result in results:
            self.assertGreater(result.energy, start.energy)
            self.assertEqual(int(result.genome.sum()), 4)

    def test_no_candidates_nearby(self):
        """A radius smaller than the grid spacing finds nothing."""
        genome = np.zeros(36, dtype=np.uint8)
        genome[[0, 6, 12, 18]] = 1
        start = self.evaluator.evaluate_layout(genome)

        results = random_search(
            start, self.grid, self.evaluator, n_trials=10, max_distance=1.0, rng=self.rng
        )
        self.assertEqual(results, [])


if __name__ == '__main__':
    unittest.main()

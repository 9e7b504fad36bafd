"""
Fitness evaluation for layout populations.

Each genome is evaluated over every wind direction of the scenario with the
wake model; directional energies are weighted by their probabilities and
summed. Evaluations are independent of each other, so unique genomes can be
dispatched to a process pool.
"""

import math
import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import List, Optional, Sequence

import numpy as np

from .data_models import (
    GridCell,
    WindScenario,
    TerrainContext,
    LayoutEvaluation,
    genome_key,
)
from .errors import EvaluationError
from .wake_model import WakeEnergyModel

logger = logging.getLogger(__name__)

_WORKER_EVALUATOR = None


def _init_worker(evaluator: "FitnessEvaluator") -> None:
    global _WORKER_EVALUATOR
    _WORKER_EVALUATOR = evaluator


def _evaluate_in_worker(genome: np.ndarray, run: int) -> LayoutEvaluation:
    """Worker entry point; runs in a separate process with its own evaluator copy."""
    return _WORKER_EVALUATOR.evaluate_layout(genome, run)


class FitnessEvaluator:
    """
    Evaluates genomes against a fixed grid, wind scenario and terrain context.

    Thread Safety:
    - evaluate_layout is a pure function of its inputs
    - Worker processes receive their own copy of the evaluator
    - open_pool() keeps one worker pool alive across evaluate() calls until
      close(); the evaluator is also a context manager doing both
    """

    def __init__(
        self,
        grid: Sequence[GridCell],
        wind_scenario: WindScenario,
        wake_model: WakeEnergyModel,
        terrain: Optional[TerrainContext] = None,
        n_workers: int = 1,
        min_population_for_parallel: int = 8
    ):
        """
        Args:
            grid: Ordered candidate cells; genome position i refers to grid[i]
            wind_scenario: Normalized wind scenario
            wake_model: Wake/energy model for one direction
            terrain: Optional per-cell terrain/resource data
            n_workers: Worker processes (1 = sequential)
            min_population_for_parallel: Minimum unique genomes to use the pool
        """
        self.grid = tuple(grid)
        self.wind_scenario = wind_scenario
        self.wake_model = wake_model
        self.terrain = terrain if terrain is not None and not terrain.is_empty() else None
        self.n_workers = max(1, int(n_workers))
        self.min_population_for_parallel = min_population_for_parallel
        self._executor: Optional[ProcessPoolExecutor] = None

    def __getstate__(self):
        state = self.__dict__.copy()
        state["_executor"] = None
        return state

    def __enter__(self) -> "FitnessEvaluator":
        self.open_pool()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open_pool(self) -> None:
        """Start the worker pool (no-op for sequential evaluators or an open pool)."""
        if self.n_workers > 1 and self._executor is None:
            logger.debug("Starting pool with %d workers", self.n_workers)
            self._executor = ProcessPoolExecutor(
                max_workers=self.n_workers,
                initializer=_init_worker,
                initargs=(self,)
            )

    def close(self) -> None:
        """Shut down the worker pool, if any."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def evaluate_layout(self, genome: np.ndarray, run: int = 1) -> LayoutEvaluation:
        """
        Evaluate one genome over all wind directions.

        Args:
            genome: Binary vector over the grid
            run: Run id to assign

        Returns:
            LayoutEvaluation of the genome

        Raises:
            EvaluationError: If the genome does not match the grid or holds no turbine
        """
        genome = np.asarray(genome, dtype=np.uint8)
        if genome.shape != (len(self.grid),):
            raise EvaluationError(
                f"Genome length {genome.size} does not match grid size {len(self.grid)}"
            )

        indices = np.flatnonzero(genome)
        if indices.size == 0:
            raise EvaluationError(f"Run {run}: layout has no turbines")

        cells = [self.grid[i] for i in indices]

        directional = []
        weighted_energy = []
        weighted_potential = []
        weighted_power = []
        weighted_loss = []
        for wind in self.wind_scenario:
            result = self.wake_model.evaluate(cells, wind.direction, wind.speed, self.terrain)
            weight = wind.probability / 100.0
            directional.append(result)
            weighted_energy.append(result.energy * weight)
            weighted_potential.append(result.potential_energy * weight)
            weighted_power.append(result.power * weight)
            weighted_loss.append(result.deficits * 100.0 * weight)

        # fsum keeps the totals independent of the order of the directions
        energy = math.fsum(weighted_energy)
        potential = math.fsum(weighted_potential)
        turbine_energy = [math.fsum(column) for column in np.stack(weighted_power).T]
        turbine_wake_loss = [math.fsum(column) for column in np.stack(weighted_loss).T]

        efficiency = energy / potential * 100.0 if potential > 0 else 100.0

        return LayoutEvaluation(
            run=run,
            genome=genome,
            turbine_indices=indices,
            turbine_ids=tuple(cell.id for cell in cells),
            energy=energy,
            potential_energy=potential,
            efficiency=efficiency,
            fitness=energy,
            turbine_energy=turbine_energy,
            turbine_wake_loss=turbine_wake_loss,
            directions=tuple(directional),
        )

    def evaluate(self, population: Sequence[np.ndarray]) -> List[LayoutEvaluation]:
        """
        Evaluate a population.

        Identical genomes collapse into one Run and share its evaluation.
        Runs are numbered from 1 in order of first appearance.

        Args:
            population: Genomes of one generation

        Returns:
            One LayoutEvaluation per genome (same order as population)

        Raises:
            EvaluationError: If any genome cannot be evaluated
        """
        run_of_key = {}
        unique_genomes = []
        runs_in_order = []
        for genome in population:
            key = genome_key(genome)
            if key not in run_of_key:
                unique_genomes.append(np.asarray(genome, dtype=np.uint8))
                run_of_key[key] = len(unique_genomes)
            runs_in_order.append(run_of_key[key])

        if self.n_workers > 1 and len(unique_genomes) >= self.min_population_for_parallel:
            logger.debug(
                "Evaluating %d unique layouts with %d workers", len(unique_genomes), self.n_workers
            )
            evaluations = self._evaluate_parallel(unique_genomes)
        else:
            logger.debug("Evaluating %d unique layouts sequentially", len(unique_genomes))
            evaluations = [
                self.evaluate_layout(genome, run)
                for run, genome in enumerate(unique_genomes, start=1)
            ]

        return [evaluations[run - 1] for run in runs_in_order]

    def _evaluate_parallel(self, genomes: List[np.ndarray]) -> List[LayoutEvaluation]:
        """Dispatch unique genomes to a process pool; results are slotted back by Run."""
        if self._executor is not None:
            return self._collect(self._executor, genomes)

        with ProcessPoolExecutor(
            max_workers=self.n_workers,
            initializer=_init_worker,
            initargs=(self,)
        ) as executor:
            return self._collect(executor, genomes)

    @staticmethod
    def _collect(
        executor: ProcessPoolExecutor,
        genomes: List[np.ndarray]
    ) -> List[LayoutEvaluation]:
        results = [None] * len(genomes)
        future_to_index = {
            executor.submit(_evaluate_in_worker, genome, index + 1): index
            for index, genome in enumerate(genomes)
        }
        for future in as_completed(future_to_index):
            results[future_to_index[future]] = future.result()
        return results

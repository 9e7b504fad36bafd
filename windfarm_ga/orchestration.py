"""
Orchestration module for the wind farm GA.

Builds the initial population and runs the generation loop:
evaluate -> record -> adapt -> select -> crossover -> mutate -> repair.
"""

import math
import logging
from enum import Enum
from typing import List, Optional, Sequence, Any

import numpy as np

from .config_loader import GAConfig, check_inputs, resolve_config
from .crossover import recombine
from .data_models import (
    GridCell,
    WindScenario,
    TerrainContext,
    LayoutEvaluation,
    SummaryStats,
    PopulationSizes,
    GenerationRecord,
    OptimizationHistory,
)
from .fitness import FitnessEvaluator
from .fuzzy_control import AdaptiveController
from .mutation import mutate
from .repair import repair
from .selection import select, unique_runs

logger = logging.getLogger(__name__)

MIN_INITIAL_POPULATION = 100
MAX_INITIAL_POPULATION = 300
FULL_EFFICIENCY = 100.0


class LoopState(Enum):
    INIT = "init"
    ITERATE = "iterate"
    TERMINATED = "terminated"


def default_population_size(n_cells: int, n: int, max_iterations: int) -> int:
    """Initial population size: n_cells * n / max_iterations, clamped to [100, 300]."""
    size = n_cells * n / max_iterations
    size = min(max(size, MIN_INITIAL_POPULATION), MAX_INITIAL_POPULATION)
    return math.ceil(size)


def init_population(
    n_cells: int,
    n: int,
    size: int,
    rng: np.random.Generator
) -> List[np.ndarray]:
    """
    Random genomes with exactly n turbines each.

    Args:
        n_cells: Grid size
        n: Turbines per layout
        size: Number of genomes
        rng: Random number generator

    Returns:
        List of binary genomes
    """
    population = []
    for _ in range(size):
        genome = np.zeros(n_cells, dtype=np.uint8)
        genome[rng.choice(n_cells, size=n, replace=False)] = 1
        population.append(genome)
    return population


def _best(evaluations: Sequence[LayoutEvaluation], key: str) -> LayoutEvaluation:
    """Highest value of key, lowest Run on ties."""
    return max(evaluations, key=lambda e: (getattr(e, key), -e.run))


class GenerationLoop:
    """
    Runs the GA for one grid, wind scenario and configuration.

    State machine: INIT -> ITERATE -> TERMINATED. The loop stops after
    max_iterations generations, or earlier once a layout reaches 100%
    efficiency.
    """

    def __init__(
        self,
        grid: Sequence[GridCell],
        wind_scenario: WindScenario,
        config: GAConfig,
        terrain: Optional[TerrainContext] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Args:
            grid: Ordered candidate cells
            wind_scenario: Normalized wind scenario
            config: GA configuration
            terrain: Terrain/resource data per cell (collected from the grid
                cells when None)
            rng: Random number generator (seeded from config.random_seed when None)

        Raises:
            ConfigurationError: If the inputs are invalid
        """
        check_inputs(grid, wind_scenario, config)

        self.grid = tuple(grid)
        self.wind_scenario = wind_scenario
        self.config = config
        if terrain is None:
            terrain = TerrainContext.from_grid(self.grid)
        self.terrain = terrain
        self.rng = rng if rng is not None else np.random.default_rng(config.random_seed)

        self.evaluator = FitnessEvaluator(
            self.grid,
            wind_scenario,
            config.build_wake_model(),
            terrain=terrain,
            n_workers=config.n_workers,
        )
        self.controller = AdaptiveController(config.selection_method, config.fuzzy, self.rng)

        self.history = OptimizationHistory(metadata={
            "n_cells": len(self.grid),
            "n_turbines": config.n_turbines,
            "n_directions": len(wind_scenario),
            "random_seed": config.random_seed,
        })
        self.state = LoopState.INIT
        self.population: List[np.ndarray] = []

    def run(self) -> OptimizationHistory:
        """
        Run all generations.

        Returns:
            The ordered history of GenerationRecords
        """
        if self.state is not LoopState.INIT:
            raise RuntimeError(f"GenerationLoop already ran (state: {self.state.value})")

        config = self.config
        size = config.initial_population or default_population_size(
            len(self.grid), config.n_turbines, config.max_iterations
        )
        self.population = init_population(len(self.grid), config.n_turbines, size, self.rng)
        logger.info(
            "Starting GA: %d cells, %d turbines, %d initial layouts, %d iterations",
            len(self.grid), config.n_turbines, size, config.max_iterations
        )

        self.state = LoopState.ITERATE
        reason = "max_iterations"
        with self.evaluator:
            for generation in range(1, config.max_iterations + 1):
                record = self.step(generation)
                if record.efficiency.max >= FULL_EFFICIENCY:
                    reason = "full_efficiency"
                    logger.info("Generation %d reached 100%% efficiency, stopping", generation)
                    break

        self.state = LoopState.TERMINATED
        self.history.metadata["termination"] = reason
        self.history.metadata["generations"] = len(self.history)
        return self.history

    def step(self, generation: int) -> GenerationRecord:
        """Run one generation and append its record to the history."""
        config = self.config
        controller = self.controller

        evaluations = self.evaluator.evaluate(self.population)
        unique = unique_runs(evaluations)

        fitness = SummaryStats.from_values([e.fitness for e in unique])
        energy = SummaryStats.from_values([e.energy for e in unique])
        efficiency = SummaryStats.from_values([e.efficiency for e in unique])
        best_by_energy = _best(unique, "energy")
        best_by_efficiency = _best(unique, "efficiency")
        local_optimum_count = sum(1 for e in evaluations if e.energy == energy.max)

        controller.track_best(best_by_energy)
        next_run = max(e.run for e in unique) + 1
        pool = list(evaluations) + controller.stagnation_recovery(generation, next_run)

        controller_state = controller.update(
            generation, evaluations, population_size=len(unique_runs(pool))
        )
        fraction = controller.selection_fraction()
        selected = select(pool, fraction, config.elitism, config.elite_count)

        cross_points = controller.crossover_points
        crossed = recombine(
            selected.genomes, cross_points, config.crossover_method,
            config.max_population, self.rng
        )

        mutation_rate = controller.mutation_rate(
            config.mutation_rate, local_optimum_count, generation,
            config.max_iterations, config.variable_mutation
        )
        mutated = mutate(crossed, mutation_rate, self.rng)
        repaired = repair(mutated, config.n_turbines, pool, config.trim_force, self.rng)

        record = GenerationRecord(
            generation=generation,
            fitness=fitness,
            energy=energy,
            efficiency=efficiency,
            best_by_energy=best_by_energy,
            best_by_efficiency=best_by_efficiency,
            controller=controller_state,
            selection_fraction=fraction,
            crossover_points=cross_points,
            mutation_rate=mutation_rate,
            population_sizes=PopulationSizes(
                evaluated=len(evaluations),
                unique=len(unique),
                selected=len(selected),
                crossed=len(crossed),
                mutated=len(mutated),
                repaired=len(repaired),
            ),
            local_optimum_count=local_optimum_count,
        )
        self.history.append(record)
        self.population = repaired

        logger.info(
            "Generation %d: max energy %.2f, max efficiency %.2f%%, %s, "
            "divisor %.3f, crossover points %d, sizes %d/%d/%d/%d",
            generation, energy.max, efficiency.max, controller_state.trend,
            controller_state.selection_divisor, cross_points,
            len(evaluations), len(selected), len(crossed), len(repaired)
        )
        return record


def run_optimization(
    grid: Sequence[GridCell],
    wind_scenario: WindScenario,
    config: Any,
    terrain: Optional[TerrainContext] = None,
    rng: Optional[np.random.Generator] = None
) -> OptimizationHistory:
    """
    Optimize a turbine layout.

    Args:
        grid: Ordered candidate cells
        wind_scenario: Normalized wind scenario
        config: GAConfig, GA mapping or path to a GA YAML file
        terrain: Terrain/resource data per cell (collected from the grid
            cells when None)
        rng: Random number generator

    Returns:
        OptimizationHistory with one GenerationRecord per generation

    Raises:
        ConfigurationError: If the inputs are invalid
    """
    loop = GenerationLoop(grid, wind_scenario, resolve_config(config), terrain, rng)
    return loop.run()

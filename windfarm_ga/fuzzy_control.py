"""
Adaptive (fuzzy) control of the GA operators.

The controller watches the fitness trend between consecutive generations and
tunes two scalars: the selection divisor (the selected share of the unique
population is 1 / divisor) and the crossover rate (crossover points are
trunc(rate + 1)). Late in a run it re-injects the best layouts found so far
when the best energy has not been matched for a while.
"""

import math
import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .data_models import ControllerState, LayoutEvaluation, SummaryStats
from .errors import ConfigurationError
from .mutation import clamp_probability, variable_mutation_rate
from .selection import unique_runs

logger = logging.getLogger(__name__)

SELECTION_METHODS = ("FIX", "VAR")


@dataclass(frozen=True)
class FuzzyControlSettings:
    """
    Tuning constants of the adaptive controller.

    Attributes:
        weights: Weights of the max/mean/min fitness differences
        initial_divisor_fix: Starting selection divisor in FIX mode
        initial_divisor_var: Starting selection divisor in VAR mode
        initial_crossover_rate: Starting crossover rate
        divisor_decrease: Divisor change after a deteriorated generation
        divisor_increase: Divisor change after an improved generation
        crossover_decrease: Crossover rate change after a deteriorated generation
        crossover_increase: Crossover rate change after an improved generation
        divisor_floor: Lowest divisor (4/3 selects at most 75%)
        small_population: Unique population size at or below which everything is selected
        small_population_boost: Crossover rate boost for a small population
        stagnation_start: Generation after which stagnation recovery runs
        stagnation_window: Recent generations searched for the best energy so far
    """
    weights: Tuple[float, float, float] = (0.8, 0.2, 0.0)
    initial_divisor_fix: float = 2.0
    initial_divisor_var: float = 1.35
    initial_crossover_rate: float = 1.1
    divisor_decrease: float = 0.02
    divisor_increase: float = 0.017
    crossover_decrease: float = 0.06
    crossover_increase: float = 0.03
    divisor_floor: float = 4 / 3
    small_population: int = 20
    small_population_boost: float = 0.1
    stagnation_start: int = 20
    stagnation_window: int = 6

    def __post_init__(self):
        """Validate settings."""
        object.__setattr__(self, "weights", tuple(float(w) for w in self.weights))

        if len(self.weights) != 3:
            raise ConfigurationError(
                f"Fuzzy weights must have 3 entries (max, mean, min), got {len(self.weights)}"
            )
        if self.divisor_floor < 1:
            raise ConfigurationError(
                f"divisor_floor must be >= 1, got {self.divisor_floor}"
            )
        for name in ("initial_divisor_fix", "initial_divisor_var"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.stagnation_window < 1:
            raise ConfigurationError(
                f"stagnation_window must be >= 1, got {self.stagnation_window}"
            )
        if self.small_population < 0 or self.stagnation_start < 0:
            raise ConfigurationError("small_population and stagnation_start must be >= 0")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FuzzyControlSettings":
        """Build settings from a mapping; unknown keys are rejected."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown fuzzy control settings: {unknown}")
        return cls(**data)


class AdaptiveController:
    """
    Generation-over-generation controller of selection and crossover intensity.

    Usage per generation: track_best -> stagnation_recovery -> update, then
    selection_fraction / crossover_points / mutation_rate feed the operators.
    """

    def __init__(
        self,
        selection_method: str = "FIX",
        settings: Optional[FuzzyControlSettings] = None,
        rng: Optional[np.random.Generator] = None
    ):
        selection_method = selection_method.upper()
        if selection_method not in SELECTION_METHODS:
            raise ConfigurationError(
                f"Invalid selection method: '{selection_method}'. Must be 'FIX' or 'VAR'"
            )
        self.selection_method = selection_method
        self.settings = settings or FuzzyControlSettings()
        self.rng = rng if rng is not None else np.random.default_rng()

        if selection_method == "FIX":
            self.selection_divisor = self.settings.initial_divisor_fix
        else:
            self.selection_divisor = self.settings.initial_divisor_var
        self.crossover_rate = self.settings.initial_crossover_rate
        self.select_all = False
        self.floor_hit = False

        self.previous_fitness: Optional[SummaryStats] = None
        self.best_layouts: List[LayoutEvaluation] = []
        self.reinjected = False
        self.state: Optional[ControllerState] = None

    @property
    def crossover_points(self) -> int:
        return max(1, math.trunc(self.crossover_rate + 1))

    def track_best(self, best: LayoutEvaluation) -> None:
        """Remember the generation's best layout by energy."""
        self.best_layouts.append(best)

    def stagnation_recovery(self, generation: int, next_run: int) -> List[LayoutEvaluation]:
        """
        Re-inject the best layouts so far when the best energy went stale.

        Active after stagnation_start generations. If the highest energy seen
        so far was not reached within the last stagnation_window generations,
        two best-so-far layouts (or one, twice) are returned as new Runs
        next_run and next_run + 1.

        Args:
            generation: Current generation (1-based)
            next_run: First free Run id in the current population

        Returns:
            Evaluations to append to the current population (possibly empty)
        """
        self.reinjected = False
        if generation <= self.settings.stagnation_start or not self.best_layouts:
            return []

        energies = np.array([b.energy for b in self.best_layouts])
        best_energy = energies.max()
        recent = energies[-self.settings.stagnation_window:]
        if np.any(recent == best_energy):
            return []

        holders = np.flatnonzero(energies == best_energy)
        if holders.size >= 2:
            picked = self.rng.choice(holders, size=2, replace=False)
        else:
            picked = [holders[0], holders[0]]

        self.reinjected = True
        logger.info(
            "Generation %d: best energy %.2f not reached in the last %d generations, "
            "re-injecting best layouts",
            generation, best_energy, self.settings.stagnation_window
        )
        return [
            self.best_layouts[index].with_run(next_run + offset)
            for offset, index in enumerate(picked)
        ]

    def update(
        self,
        generation: int,
        evaluations: Sequence[LayoutEvaluation],
        population_size: Optional[int] = None
    ) -> ControllerState:
        """
        Adjust the divisor and crossover rate from the fitness trend.

        Args:
            generation: Current generation (1-based)
            evaluations: Evaluated population of this generation; the fitness
                trend is computed from these only
            population_size: Unique Runs in the selection pool, including
                re-injected layouts (defaults to the unique Runs of evaluations)

        Returns:
            Snapshot of the controller after the update
        """
        settings = self.settings
        unique = unique_runs(evaluations)
        fitness = SummaryStats.from_values([e.fitness for e in unique])
        pool_size = population_size if population_size is not None else len(unique)
        previous = self.previous_fitness

        trend = "initial"
        weighted_delta = 0.0
        mean_delta = 0.0
        self.select_all = False
        self.floor_hit = False

        if previous is not None:
            w_max, w_mean, w_min = settings.weights
            mean_delta = fitness.mean - previous.mean
            weighted_delta = (
                w_max * (fitness.max - previous.max)
                + w_mean * mean_delta
                + w_min * (fitness.min - previous.min)
            )

            if weighted_delta <= 0:
                trend = "deteriorated"
                self.selection_divisor -= settings.divisor_decrease
                self.crossover_rate -= settings.crossover_decrease
            else:
                trend = "improved"
                self.selection_divisor += settings.divisor_increase
                self.crossover_rate += settings.crossover_increase

            self.selection_divisor = round(self.selection_divisor, 3)
            if self.selection_divisor <= settings.divisor_floor:
                self.selection_divisor = settings.divisor_floor
                self.floor_hit = True

            if pool_size <= settings.small_population:
                self.select_all = True
                self.crossover_rate += settings.small_population_boost
                logger.debug(
                    "Only %d unique layouts: selecting all, crossover rate %.2f",
                    pool_size, self.crossover_rate
                )

            self.crossover_rate = round(self.crossover_rate, 2)

        if self.selection_method == "FIX":
            self.selection_divisor = settings.initial_divisor_fix

        self.previous_fitness = fitness
        self.state = ControllerState(
            generation=generation,
            selection_divisor=self.selection_divisor,
            crossover_rate=self.crossover_rate,
            crossover_points=self.crossover_points,
            select_all=self.select_all,
            floor_hit=self.floor_hit,
            trend=trend,
            weighted_delta=weighted_delta,
            mean_delta=mean_delta,
            fitness=fitness,
            previous_fitness=previous,
            reinjected=self.reinjected,
        )
        return self.state

    def selection_fraction(self) -> float:
        """
        Share of the unique population to keep.

        FIX mode keeps half, VAR mode keeps 1 / divisor; both keep everything
        while the population is small.
        """
        if self.select_all:
            return 1.0
        if self.selection_method == "FIX":
            return 1.0 / self.settings.initial_divisor_fix
        return 1.0 / self.selection_divisor

    def mutation_rate(
        self,
        base_rate: float,
        local_optimum_count: int,
        generation: int,
        max_iterations: int,
        variable: bool = True
    ) -> float:
        """
        Mutation probability for this generation.

        More than two individuals sharing the best energy switch to the
        variable mutation rate.
        """
        if variable and local_optimum_count > 2:
            rate = variable_mutation_rate(
                local_optimum_count, generation, max_iterations, self.rng
            )
            logger.debug("Variable mutation rate %.5f", rate)
            return rate
        return clamp_probability(base_rate)

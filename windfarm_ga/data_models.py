"""
Data models for the wind farm GA.

Core data structures representing candidate grid cells, the wind scenario,
layout evaluations and the append-only generation history.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError

PROBABILITY_TOLERANCE = 1e-6


@dataclass(frozen=True)
class GridCell:
    """
    Candidate turbine position produced by an external tessellation.

    Attributes:
        id: Unique identifier, stable for the whole run
        x: Planar x coordinate (m)
        y: Planar y coordinate (m)
        roughness: Optional surface roughness length at the cell (m)
        elevation: Optional terrain elevation at the cell (m)
    """
    id: int
    x: float
    y: float
    roughness: Optional[float] = None
    elevation: Optional[float] = None


@dataclass(frozen=True)
class WindDirection:
    """One wind direction of the scenario: degrees, mean speed (m/s), probability (%)."""
    direction: float
    speed: float
    probability: float


@dataclass(frozen=True)
class WindScenario:
    """
    Normalized wind scenario.

    Directions must be unique, lie in [0, 360), carry non-negative speeds and
    probabilities, and the probabilities must sum to 100.
    """
    directions: Tuple[WindDirection, ...]

    def __post_init__(self):
        """Validate scenario."""
        object.__setattr__(self, "directions", tuple(self.directions))

        if not self.directions:
            raise ConfigurationError("Wind scenario must contain at least one direction")

        seen = set()
        for wind in self.directions:
            if not 0 <= wind.direction < 360:
                raise ConfigurationError(
                    f"Wind direction {wind.direction} outside [0, 360)"
                )
            if wind.speed < 0:
                raise ConfigurationError(f"Negative wind speed for direction {wind.direction}")
            if wind.probability < 0:
                raise ConfigurationError(f"Negative probability for direction {wind.direction}")
            if wind.direction in seen:
                raise ConfigurationError(f"Duplicated wind direction: {wind.direction}")
            seen.add(wind.direction)

        total = math.fsum(wind.probability for wind in self.directions)
        if abs(total - 100.0) > PROBABILITY_TOLERANCE:
            raise ConfigurationError(
                f"Wind probabilities must sum to 100, got {total:.6f}"
            )

    @classmethod
    def from_records(cls, records: Sequence[Any]) -> "WindScenario":
        """
        Build a scenario from (direction, speed, probability) tuples or mappings.

        Mappings must use the keys 'direction', 'speed' and 'probability'.

        Raises:
            ConfigurationError: If a record is malformed
        """
        directions = []
        for record in records:
            try:
                if isinstance(record, dict):
                    wind = WindDirection(
                        direction=float(record["direction"]),
                        speed=float(record["speed"]),
                        probability=float(record["probability"]),
                    )
                else:
                    direction, speed, probability = record
                    wind = WindDirection(float(direction), float(speed), float(probability))
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Malformed wind record {record!r}: {e}")
            directions.append(wind)
        return cls(tuple(directions))

    def __len__(self) -> int:
        return len(self.directions)

    def __iter__(self) -> Iterator[WindDirection]:
        return iter(self.directions)


@dataclass
class TerrainContext:
    """
    Optional per-cell terrain and wind resource data, keyed by GridCell id.

    Attributes:
        roughness: Surface roughness length per cell (m)
        elevation: Terrain elevation per cell (m)
        mean_speeds: Weibull-derived mean wind speed per cell (m/s)
    """
    roughness: Optional[Dict[int, float]] = None
    elevation: Optional[Dict[int, float]] = None
    mean_speeds: Optional[Dict[int, float]] = None

    @classmethod
    def from_grid(
        cls,
        grid: Sequence[GridCell],
        mean_speeds: Optional[Dict[int, float]] = None
    ) -> "TerrainContext":
        """Collect roughness/elevation attributes carried by the grid cells."""
        roughness = {cell.id: cell.roughness for cell in grid if cell.roughness is not None}
        elevation = {cell.id: cell.elevation for cell in grid if cell.elevation is not None}
        return cls(
            roughness=roughness or None,
            elevation=elevation or None,
            mean_speeds=mean_speeds,
        )

    @property
    def mean_elevation(self) -> Optional[float]:
        if not self.elevation:
            return None
        return float(np.mean(list(self.elevation.values())))

    def is_empty(self) -> bool:
        return not (self.roughness or self.elevation or self.mean_speeds)


def genome_key(genome: np.ndarray) -> bytes:
    """Hashable identity of a genome, used to collapse duplicates into one Run."""
    return np.asarray(genome, dtype=np.uint8).tobytes()


def _frozen_array(values, dtype=float) -> np.ndarray:
    array = np.array(values, dtype=dtype, copy=True)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class DirectionalResult:
    """
    Wake/energy result of one layout under one wind direction.

    Per-turbine arrays follow the order of the layout's occupied cells.
    """
    direction: float
    speed: float
    free_speeds: np.ndarray
    net_speeds: np.ndarray
    deficits: np.ndarray
    power: np.ndarray
    energy: float
    potential_energy: float

    def __post_init__(self):
        for name in ("free_speeds", "net_speeds", "deficits", "power"):
            object.__setattr__(self, name, _frozen_array(getattr(self, name)))

    @property
    def efficiency(self) -> float:
        """Realized over wake-free energy, in percent (100 when nothing can be produced)."""
        if self.potential_energy <= 0:
            return 100.0
        return self.energy / self.potential_energy * 100.0


@dataclass(frozen=True, eq=False)
class LayoutEvaluation:
    """
    Fitness evaluation of one unique genome (a Run) over the whole wind scenario.

    Attributes:
        run: Run identifier, unique within a generation
        genome: Binary membership vector over the grid
        turbine_indices: Genome positions holding a turbine
        turbine_ids: GridCell ids holding a turbine
        energy: Probability-weighted energy of the layout
        potential_energy: Probability-weighted wake-free energy
        efficiency: energy / potential_energy in percent
        fitness: Value maximized by the GA (the expected energy)
        turbine_energy: Probability-weighted energy per turbine
        turbine_wake_loss: Probability-weighted speed deficit per turbine (%)
        directions: One DirectionalResult per scenario direction
    """
    run: int
    genome: np.ndarray
    turbine_indices: np.ndarray
    turbine_ids: Tuple[int, ...]
    energy: float
    potential_energy: float
    efficiency: float
    fitness: float
    turbine_energy: np.ndarray
    turbine_wake_loss: np.ndarray
    directions: Tuple[DirectionalResult, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "genome", _frozen_array(self.genome, dtype=np.uint8))
        object.__setattr__(self, "turbine_indices", _frozen_array(self.turbine_indices, dtype=int))
        object.__setattr__(self, "turbine_energy", _frozen_array(self.turbine_energy))
        object.__setattr__(self, "turbine_wake_loss", _frozen_array(self.turbine_wake_loss))
        object.__setattr__(self, "turbine_ids", tuple(self.turbine_ids))
        object.__setattr__(self, "directions", tuple(self.directions))

    @property
    def n_turbines(self) -> int:
        return len(self.turbine_ids)

    def with_run(self, run: int) -> "LayoutEvaluation":
        """Copy of this evaluation registered under another Run id."""
        return replace(self, run=run)


@dataclass(frozen=True)
class SummaryStats:
    """Max/mean/min of one quantity across the unique Runs of a generation."""
    max: float
    mean: float
    min: float

    @classmethod
    def from_values(cls, values: Sequence[float]) -> "SummaryStats":
        if len(values) == 0:
            raise ValueError("Cannot summarize an empty sequence")
        array = np.asarray(values, dtype=float)
        return cls(max=float(array.max()), mean=float(array.mean()), min=float(array.min()))


@dataclass(frozen=True)
class PopulationSizes:
    """Number of individuals at each pipeline stage of a generation."""
    evaluated: int
    unique: int
    selected: int
    crossed: int
    mutated: int
    repaired: int


@dataclass(frozen=True)
class ControllerState:
    """
    Snapshot of the adaptive (fuzzy) controller after its update in one generation.

    Attributes:
        generation: Generation number (1-based)
        selection_divisor: Divisor of the population size used for selection
        crossover_rate: Continuous crossover intensity
        crossover_points: Crossover points derived from crossover_rate
        select_all: Full selection forced (small unique population)
        floor_hit: Divisor was clamped to its floor this generation
        trend: 'initial', 'improved' or 'deteriorated'
        weighted_delta: Weighted max/mean/min fitness difference to the prior generation
        mean_delta: Mean fitness difference to the prior generation
        fitness: Fitness summary of this generation
        previous_fitness: Fitness summary of the prior generation
        reinjected: Best-so-far layouts were re-injected (stagnation recovery)
    """
    generation: int
    selection_divisor: float
    crossover_rate: float
    crossover_points: int
    select_all: bool
    floor_hit: bool
    trend: str
    weighted_delta: float
    mean_delta: float
    fitness: SummaryStats
    previous_fitness: Optional[SummaryStats] = None
    reinjected: bool = False


@dataclass(frozen=True)
class GenerationRecord:
    """
    Immutable summary of one generation.

    Attributes:
        generation: Generation number (1-based)
        fitness: Fitness summary across unique Runs
        energy: Energy summary across unique Runs
        efficiency: Efficiency summary across unique Runs
        best_by_energy: Evaluation with the highest energy
        best_by_efficiency: Evaluation with the highest efficiency
        controller: Adaptive controller snapshot
        selection_fraction: Fraction of unique Runs kept by selection
        crossover_points: Crossover points used
        mutation_rate: Mutation probability used
        population_sizes: Individuals per pipeline stage
        local_optimum_count: Individuals sharing the maximum energy
    """
    generation: int
    fitness: SummaryStats
    energy: SummaryStats
    efficiency: SummaryStats
    best_by_energy: LayoutEvaluation
    best_by_efficiency: LayoutEvaluation
    controller: ControllerState
    selection_fraction: float
    crossover_points: int
    mutation_rate: float
    population_sizes: PopulationSizes
    local_optimum_count: int = 1

    def summary_row(self) -> Dict[str, Any]:
        """Flat, CSV-friendly representation."""
        return {
            "generation": self.generation,
            "max_fitness": self.fitness.max,
            "mean_fitness": self.fitness.mean,
            "min_fitness": self.fitness.min,
            "max_energy": self.energy.max,
            "mean_energy": self.energy.mean,
            "min_energy": self.energy.min,
            "max_efficiency": self.efficiency.max,
            "mean_efficiency": self.efficiency.mean,
            "min_efficiency": self.efficiency.min,
            "trend": self.controller.trend,
            "selection_divisor": self.controller.selection_divisor,
            "selection_fraction": self.selection_fraction,
            "crossover_points": self.crossover_points,
            "mutation_rate": self.mutation_rate,
            "n_evaluated": self.population_sizes.evaluated,
            "n_unique": self.population_sizes.unique,
            "n_selected": self.population_sizes.selected,
            "n_crossed": self.population_sizes.crossed,
            "n_mutated": self.population_sizes.mutated,
            "n_repaired": self.population_sizes.repaired,
        }


@dataclass
class OptimizationHistory:
    """
    Append-only, ordered sequence of GenerationRecords of one run.

    Attributes:
        metadata: Run information (inputs, seed, termination reason, ...)
    """
    _records: List[GenerationRecord] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def append(self, record: GenerationRecord) -> None:
        """Add the next generation's record."""
        expected = len(self._records) + 1
        if record.generation != expected:
            raise ValueError(
                f"Expected record for generation {expected}, got {record.generation}"
            )
        self._records.append(record)

    @property
    def records(self) -> Tuple[GenerationRecord, ...]:
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[GenerationRecord]:
        return iter(tuple(self._records))

    def __getitem__(self, index: int) -> GenerationRecord:
        return self._records[index]

    def best_by_energy(self) -> LayoutEvaluation:
        """Layout with the highest energy over the whole run (earliest on ties)."""
        if not self._records:
            raise ValueError("History is empty")
        return max(self._records, key=lambda r: r.best_by_energy.energy).best_by_energy

    def best_by_efficiency(self) -> LayoutEvaluation:
        """Layout with the highest efficiency over the whole run (earliest on ties)."""
        if not self._records:
            raise ValueError("History is empty")
        return max(self._records, key=lambda r: r.best_by_efficiency.efficiency).best_by_efficiency

    def summary_rows(self) -> List[Dict[str, Any]]:
        return [record.summary_row() for record in self._records]

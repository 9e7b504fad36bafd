"""
Selection operator.

Ranks the unique Runs of a generation by fitness and keeps the best share,
optionally guaranteeing a number of elites.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from .data_models import LayoutEvaluation

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    """
    Survivors of selection, best first.

    Attributes:
        genomes: Copies of the surviving genomes
        fitness: Fitness of each survivor
        runs: Run id of each survivor
    """
    genomes: List[np.ndarray] = field(default_factory=list)
    fitness: List[float] = field(default_factory=list)
    runs: List[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.genomes)


def unique_runs(evaluations: Sequence[LayoutEvaluation]) -> List[LayoutEvaluation]:
    """First evaluation of every Run, in order of appearance."""
    seen = set()
    unique = []
    for evaluation in evaluations:
        if evaluation.run not in seen:
            seen.add(evaluation.run)
            unique.append(evaluation)
    return unique


def survivor_count(
    unique_count: int,
    fraction: float,
    elitism: bool = True,
    elite_count: int = 7
) -> int:
    """
    Number of unique Runs kept by selection.

    ceil(fraction * unique_count), at least 1, at least elite_count when
    elitism is on, never more than unique_count.
    """
    fraction = min(max(fraction, 0.0), 1.0)
    keep = math.ceil(fraction * unique_count - 1e-9)
    keep = max(keep, 1)
    if elitism:
        keep = max(keep, elite_count)
    return min(keep, unique_count)


def select(
    evaluations: Sequence[LayoutEvaluation],
    fraction: float,
    elitism: bool = True,
    elite_count: int = 7
) -> SelectionResult:
    """
    Keep the fittest share of the unique Runs.

    Args:
        evaluations: Evaluations of the generation (duplicates share a Run)
        fraction: Share of unique Runs to keep, clamped to [0, 1]
        elitism: Guarantee the elite_count best Runs survive
        elite_count: Number of elites

    Returns:
        SelectionResult ordered by descending fitness (ties by Run id)

    Raises:
        ValueError: If there is nothing to select from
    """
    unique = unique_runs(evaluations)
    if not unique:
        raise ValueError("Cannot select from an empty population")

    ranked = sorted(unique, key=lambda e: (-e.fitness, e.run))
    keep = survivor_count(len(ranked), fraction, elitism, elite_count)

    if keep == 1 and len(ranked) > 1:
        logger.debug("Selection collapsed to a single survivor")

    survivors = ranked[:keep]
    return SelectionResult(
        genomes=[np.array(e.genome, dtype=np.uint8) for e in survivors],
        fitness=[e.fitness for e in survivors],
        runs=[e.run for e in survivors],
    )

"""
Repair operator (trimton).

Restores the exact turbine count of every genome after crossover and
mutation. Candidate cells are removed or added uniformly at random, or,
with trim_force, weighted by how much each cell contributed to the energy
of the previous generation's layouts.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from .data_models import LayoutEvaluation
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

WEIGHT_EPSILON = 1e-9


def cell_contributions(
    evaluations: Sequence[LayoutEvaluation],
    n_cells: int
) -> np.ndarray:
    """
    Mean energy produced by a turbine at each cell across the given evaluations.

    Every Run counts once. Cells never occupied in any evaluation get the mean
    of the observed cells (0 if nothing was observed).

    Args:
        evaluations: Evaluations of the previous generation
        n_cells: Grid size

    Returns:
        Array of length n_cells
    """
    totals = np.zeros(n_cells, dtype=float)
    counts = np.zeros(n_cells, dtype=int)

    seen_runs = set()
    for evaluation in evaluations:
        if evaluation.run in seen_runs:
            continue
        seen_runs.add(evaluation.run)
        np.add.at(totals, evaluation.turbine_indices, evaluation.turbine_energy)
        np.add.at(counts, evaluation.turbine_indices, 1)

    observed = counts > 0
    contributions = np.zeros(n_cells, dtype=float)
    contributions[observed] = totals[observed] / counts[observed]
    fill = contributions[observed].mean() if observed.any() else 0.0
    contributions[~observed] = fill
    return contributions


def _weighted_pick(
    candidates: np.ndarray,
    weights: Optional[np.ndarray],
    count: int,
    rng: np.random.Generator
) -> np.ndarray:
    """Pick count distinct candidates, uniformly when weights are unusable."""
    probabilities = None
    if weights is not None:
        total = weights.sum()
        if np.all(np.isfinite(weights)) and total > 0 and np.count_nonzero(weights) >= count:
            probabilities = weights / total
        else:
            logger.debug("Repair weights unusable, falling back to uniform choice")
    return rng.choice(candidates, size=count, replace=False, p=probabilities)


def repair_genome(
    genome: np.ndarray,
    n: int,
    contributions: Optional[np.ndarray] = None,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Return a copy of genome with exactly n ones.

    Args:
        genome: Binary genome, possibly with the wrong number of ones
        n: Required turbine count
        contributions: Per-cell contribution for weighted choice, or None for uniform
        rng: Random number generator

    Returns:
        Repaired genome
    """
    if rng is None:
        rng = np.random.default_rng()

    repaired = np.array(genome, dtype=np.uint8)
    if n > repaired.size:
        raise ConfigurationError(
            f"Cannot place {n} turbines on {repaired.size} grid cells"
        )

    occupied = np.flatnonzero(repaired)
    excess = occupied.size - n

    if excess > 0:
        weights = None
        if contributions is not None:
            # Weakest cells are most likely to be removed
            values = contributions[occupied]
            weights = (values.max() - values) + WEIGHT_EPSILON
        removed = _weighted_pick(occupied, weights, excess, rng)
        repaired[removed] = 0

    elif excess < 0:
        free = np.flatnonzero(repaired == 0)
        weights = None
        if contributions is not None:
            values = contributions[free]
            weights = (values - values.min()) + WEIGHT_EPSILON
        added = _weighted_pick(free, weights, -excess, rng)
        repaired[added] = 1

    return repaired


def repair(
    genomes: Sequence[np.ndarray],
    n: int,
    evaluations: Optional[Sequence[LayoutEvaluation]] = None,
    trim_force: bool = False,
    rng: Optional[np.random.Generator] = None
) -> List[np.ndarray]:
    """
    Restore exactly n turbines in every genome.

    Args:
        genomes: Genomes after crossover and mutation
        n: Required turbine count
        evaluations: Previous generation's evaluations (used when trim_force)
        trim_force: Weight removal/addition by cell contribution
        rng: Random number generator

    Returns:
        Repaired genomes, same order

    Raises:
        ConfigurationError: If n exceeds the genome length
    """
    if rng is None:
        rng = np.random.default_rng()
    if not genomes:
        return []

    contributions = None
    if trim_force and evaluations:
        contributions = cell_contributions(evaluations, len(genomes[0]))

    repaired = [repair_genome(genome, n, contributions, rng) for genome in genomes]

    changed = sum(
        1 for before, after in zip(genomes, repaired)
        if not np.array_equal(np.asarray(before, dtype=np.uint8), after)
    )
    logger.debug("Repair adjusted %d of %d genomes", changed, len(genomes))
    return repaired

"""
Random search around an optimized layout.

Moves single turbines of the best layout to random free cells nearby and
keeps every move that raises the energy.
"""

import logging
from typing import List, Optional, Sequence, Union

import numpy as np

from .data_models import GridCell, LayoutEvaluation, OptimizationHistory
from .fitness import FitnessEvaluator

logger = logging.getLogger(__name__)


def random_search(
    start: Union[LayoutEvaluation, OptimizationHistory],
    grid: Sequence[GridCell],
    evaluator: FitnessEvaluator,
    n_trials: int = 20,
    max_distance: float = 2.5,
    rotor_radius: Optional[float] = None,
    rng: Optional[np.random.Generator] = None
) -> List[LayoutEvaluation]:
    """
    Hill-climb from a layout by relocating one turbine per trial.

    A trial picks a turbine at random and moves it to a random free cell
    within max_distance * rotor_radius of its position. Improving layouts
    become the new starting point.

    Args:
        start: Layout to improve, or a history whose best-by-energy layout is used
        grid: Ordered candidate cells
        evaluator: Fitness evaluator for the same grid and wind scenario
        n_trials: Number of relocation attempts
        max_distance: Search radius in rotor radii
        rotor_radius: Rotor radius (defaults to the evaluator's wake model)
        rng: Random number generator

    Returns:
        Improving evaluations, highest energy first (empty if nothing improved)
    """
    if rng is None:
        rng = np.random.default_rng()
    if isinstance(start, OptimizationHistory):
        start = start.best_by_energy()
    if rotor_radius is None:
        rotor_radius = evaluator.wake_model.rotor_radius

    coords = np.array([[cell.x, cell.y] for cell in grid], dtype=float)
    radius = max_distance * rotor_radius

    current = start
    improvements = []
    for trial in range(n_trials):
        genome = np.array(current.genome, dtype=np.uint8)
        moved = int(rng.choice(np.flatnonzero(genome)))

        distances = np.hypot(*(coords - coords[moved]).T)
        candidates = np.flatnonzero((genome == 0) & (distances <= radius))
        if candidates.size == 0:
            continue

        genome[moved] = 0
        genome[rng.choice(candidates)] = 1
        candidate = evaluator.evaluate_layout(genome, run=len(improvements) + 1)

        if candidate.energy > current.energy:
            logger.debug(
                "Random search trial %d: energy %.2f -> %.2f",
                trial + 1, current.energy, candidate.energy
            )
            improvements.append(candidate)
            current = candidate

    logger.info(
        "Random search: %d of %d trials improved the layout", len(improvements), n_trials
    )
    return sorted(improvements, key=lambda e: (-e.energy, e.run))

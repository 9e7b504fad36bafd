"""
Mutation operator.

Bit-flip mutation over binary layout genomes, and the variable mutation
rate used when the population crowds into a local optimum.
"""

from typing import List, Optional, Sequence

import numpy as np


def clamp_probability(probability: float) -> float:
    return min(max(float(probability), 0.0), 1.0)


def mutate(
    genomes: Sequence[np.ndarray],
    probability: float,
    rng: Optional[np.random.Generator] = None
) -> List[np.ndarray]:
    """
    Flip every bit independently with the given probability.

    The turbine count of the result is not preserved; repair restores it.

    Args:
        genomes: Genomes to mutate (left untouched)
        probability: Flip probability, clamped to [0, 1]
        rng: Random number generator

    Returns:
        New mutated genomes
    """
    if rng is None:
        rng = np.random.default_rng()
    probability = clamp_probability(probability)

    mutated = []
    for genome in genomes:
        genome = np.asarray(genome, dtype=np.uint8)
        flips = rng.random(genome.shape) < probability
        mutated.append(np.bitwise_xor(genome, flips.astype(np.uint8)))
    return mutated


def variable_mutation_rate(
    local_optimum_count: int,
    generation: int,
    max_iterations: int,
    rng: np.random.Generator
) -> float:
    """
    Raised mutation rate for a population stuck in a local optimum.

    Draws a base rate in [0.03, 0.1], scales it with the number of individuals
    sharing the best energy and adds a slowly growing generation term.

    Args:
        local_optimum_count: Individuals sharing the maximum energy
        generation: Current generation (1-based)
        max_iterations: Total number of generations
        rng: Random number generator

    Returns:
        Mutation probability in [0, 1]
    """
    base = round(rng.uniform(0.03, 0.1), 2)
    rate = base * (1 + local_optimum_count * 1.25 / 42)
    rate = round(rate + generation / (20 * max_iterations), 5)
    return clamp_probability(rate)

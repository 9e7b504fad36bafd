"""
Crossover operator.

Splits parent genomes at equally spaced ("EQU") or random ("RAN") points
and recombines pairs of survivors by alternating their segments.
"""

import math
import logging
from itertools import combinations
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CROSSOVER_METHODS = ("EQU", "RAN")


def split_points(
    length: int,
    n_points: int,
    method: str,
    rng: np.random.Generator
) -> List[int]:
    """
    Sorted, distinct split indices strictly inside (0, length).

    Args:
        length: Genome length
        n_points: Requested number of split points (capped at length - 1)
        method: "EQU" for equally spaced, "RAN" for random points
        rng: Random number generator

    Returns:
        List of split indices
    """
    method = method.upper()
    if method not in CROSSOVER_METHODS:
        raise ConfigurationError(f"Invalid crossover method: '{method}'. Must be 'EQU' or 'RAN'")

    n_points = min(max(int(n_points), 0), length - 1)
    if n_points <= 0:
        return []

    if method == "EQU":
        points = {round(length * k / (n_points + 1)) for k in range(1, n_points + 1)}
        return sorted(p for p in points if 0 < p < length)

    chosen = rng.choice(np.arange(1, length), size=n_points, replace=False)
    return sorted(int(p) for p in chosen)


def alternate_segments(
    parent_a: np.ndarray,
    parent_b: np.ndarray,
    points: Sequence[int]
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Two complementary children taking segments alternately from each parent.

    The first child starts with parent_a's first segment, the second with
    parent_b's.
    """
    child_a = np.array(parent_a, dtype=np.uint8)
    child_b = np.array(parent_b, dtype=np.uint8)

    bounds = [0, *points, len(parent_a)]
    for segment, (start, stop) in enumerate(zip(bounds[:-1], bounds[1:])):
        if segment % 2 == 1:
            child_a[start:stop] = parent_b[start:stop]
            child_b[start:stop] = parent_a[start:stop]

    return child_a, child_b


def recombine(
    survivors: Sequence[np.ndarray],
    cross_points: int,
    method: str = "EQU",
    max_population: int = 300,
    rng: Optional[np.random.Generator] = None
) -> List[np.ndarray]:
    """
    Recombine survivor genomes pairwise.

    Every unique unordered pair yields two complementary children. When the
    natural count 2 * C(m, 2) exceeds max_population, a random sample of
    pairs is used and the result is truncated to max_population.

    Args:
        survivors: Selected genomes
        cross_points: Number of crossover points
        method: "EQU" or "RAN"
        max_population: Upper bound on the number of children
        rng: Random number generator

    Returns:
        New genomes (at least one)
    """
    if rng is None:
        rng = np.random.default_rng()
    if not survivors:
        raise ValueError("Crossover needs at least one survivor")
    if max_population < 1:
        raise ConfigurationError(f"max_population must be positive, got {max_population}")

    if len(survivors) == 1:
        logger.debug("Single survivor: crossover passes it through unchanged")
        return [np.array(survivors[0], dtype=np.uint8)]

    length = len(survivors[0])
    pairs = list(combinations(range(len(survivors)), 2))

    if 2 * len(pairs) > max_population:
        n_pairs = math.ceil(max_population / 2)
        picked = rng.choice(len(pairs), size=n_pairs, replace=False)
        pairs = [pairs[i] for i in sorted(picked)]
        logger.debug(
            "Crossover pairing limited to %d of %d pairs (max population %d)",
            n_pairs, len(survivors) * (len(survivors) - 1) // 2, max_population
        )

    children = []
    for index_a, index_b in pairs:
        points = split_points(length, cross_points, method, rng)
        children.extend(alternate_segments(survivors[index_a], survivors[index_b], points))

    return children[:max_population]

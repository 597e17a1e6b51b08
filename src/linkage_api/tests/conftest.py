import itertools

import numpy as np
import pytest

from linkage_api.src.models.distance_set import DistanceSet

EXAMPLE_ROWS = [
    (1, 2, 0.0),
    (1, 3, 1.0),
    (1, 4, 5.0),
    (2, 3, 2.0),
    (2, 4, 4.0),
    (3, 4, 3.0),
]


@pytest.fixture
def example_distances() -> DistanceSet:
    return DistanceSet.from_records(EXAMPLE_ROWS)


def random_rows(n_items: int, seed: int, *, integer_levels: int | None = None) -> list[tuple]:
    """Complete random distance rows; integer levels produce many ties."""
    rng = np.random.default_rng(seed)
    rows = []
    for a, b in itertools.combinations(range(n_items), 2):
        if integer_levels is None:
            value = float(rng.random())
        else:
            value = float(rng.integers(0, integer_levels))
        rows.append((a, b, value))
    return rows


def naive_complete_linkage(distances: DistanceSet) -> list[tuple[float, frozenset]]:
    """Recompute every cluster distance from raw pairs at each step."""
    clusters = [frozenset([item]) for item in distances.items]
    merges = []
    while len(clusters) > 1:
        best = None
        for left, right in itertools.combinations(clusters, 2):
            height = max(
                distances.distance(a, b) if distances.distance(a, b) is not None else float("inf")
                for a in left
                for b in right
            )
            low, high = sorted((left, right), key=min)
            key = (height, min(low), min(high))
            if best is None or key < best[0]:
                best = (key, low, high)
        (height, _, _), low, high = best
        clusters.remove(low)
        clusters.remove(high)
        clusters.append(low | high)
        merges.append((height, low | high))
    return merges


@pytest.fixture
def make_rows():
    return random_rows


@pytest.fixture
def naive_linkage():
    return naive_complete_linkage

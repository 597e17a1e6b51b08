from __future__ import annotations

import math

import numpy as np
from loguru import logger

from linkage_api.src.adapters.base_builder import BaseDendrogramBuilder
from linkage_api.src.adapters.generic_builder import GenericLinkageBuilder
from linkage_api.src.models.dendrogram import Dendrogram, Merge
from linkage_api.src.models.distance_set import DistanceSet
from linkage_api.src.models.errors import DisconnectedInputError


class NNChainBuilder(BaseDendrogramBuilder):
    """Nearest-neighbour-chain construction of the complete-linkage dendrogram.

    Complete linkage is reducible, so reciprocal nearest neighbours found along
    the chain can be merged immediately. Merges are discovered out of height
    order; they are stably sorted by height and relabelled afterwards. With
    distinct distances the result equals :class:`GenericLinkageBuilder`. The
    chain cannot honour the smallest-item tie order, so inputs with tied
    finite distances are built by :class:`GenericLinkageBuilder` instead.
    """

    name = "nn_chain"

    def build(self, distances: DistanceSet) -> Dendrogram:
        n_items = len(distances)
        if n_items < 2:
            return Dendrogram(items=distances.items, merges=())
        if _has_tied_distances(distances.matrix):
            logger.bind(event="nn_chain_fallback", n_items=n_items).debug(
                "Tied distances, building with the generic strategy"
            )
            return GenericLinkageBuilder().build(distances)

        matrix = np.array(distances.matrix, dtype=float)
        np.fill_diagonal(matrix, np.inf)
        live = np.ones(n_items, dtype=bool)
        discovered: list[tuple[int, int, float]] = []
        chain: list[int] = []

        for _ in range(n_items - 1):
            if not chain:
                chain.append(int(np.argmax(live)))
            while True:
                current = chain[-1]
                row = matrix[current]
                candidate = int(np.argmin(row))
                distance = float(row[candidate])
                if math.isinf(distance):
                    remaining = int(live.sum())
                    msg = (
                        f"Complete linkage cannot join {remaining} remaining clusters: "
                        "a cluster has a missing cross distance to every other cluster"
                    )
                    raise DisconnectedInputError(msg, remaining_clusters=remaining)
                if len(chain) > 1 and row[chain[-2]] == distance:
                    candidate = chain[-2]
                if len(chain) > 1 and candidate == chain[-2]:
                    break
                chain.append(candidate)

            first, second = chain.pop(), chain.pop()
            low, high = min(first, second), max(first, second)
            discovered.append((low, high, distance))

            updated = np.maximum(matrix[low], matrix[high])
            matrix[low, :] = updated
            matrix[:, low] = updated
            matrix[low, low] = np.inf
            matrix[high, :] = np.inf
            matrix[:, high] = np.inf
            live[high] = False

        return Dendrogram(
            items=distances.items,
            merges=self._relabel(discovered, n_items),
        )

    def _relabel(
        self, discovered: list[tuple[int, int, float]], n_items: int
    ) -> tuple[Merge, ...]:
        # a slot is always the minimum leaf rank of its cluster, so it doubles
        # as a representative leaf for the union-find
        ordered = sorted(discovered, key=lambda merge: merge[2])
        parent = list(range(n_items))
        node_of = list(range(n_items))
        sizes = [1] * n_items

        def find(leaf: int) -> int:
            root = leaf
            while parent[root] != root:
                root = parent[root]
            while parent[leaf] != root:
                parent[leaf], leaf = root, parent[leaf]
            return root

        merges: list[Merge] = []
        for step, (low, high, height) in enumerate(ordered):
            root_low, root_high = find(low), find(high)
            size = sizes[root_low] + sizes[root_high]
            merges.append(
                Merge(step, node_of[root_low], node_of[root_high], height, size)
            )
            parent[root_high] = root_low
            node_of[root_low] = n_items + step
            sizes[root_low] = size
        return tuple(merges)


def _has_tied_distances(matrix: np.ndarray) -> bool:
    rows, cols = np.triu_indices(matrix.shape[0], k=1)
    values = matrix[rows, cols]
    finite = values[np.isfinite(values)]
    return np.unique(finite).size < finite.size

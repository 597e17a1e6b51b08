from __future__ import annotations

import heapq
import math

import numpy as np

from linkage_api.src.adapters.base_builder import BaseDendrogramBuilder
from linkage_api.src.models.dendrogram import Dendrogram, Merge
from linkage_api.src.models.distance_set import DistanceSet
from linkage_api.src.models.errors import DisconnectedInputError


class GenericLinkageBuilder(BaseDendrogramBuilder):
    """Complete-linkage builder with a cached nearest neighbour per live cluster.

    Clusters live in an arena of slots indexed by leaf rank. A merged cluster
    keeps the smaller of its two slots, so a slot always equals the minimum leaf
    rank of the cluster stored in it and ``(distance, slot, neighbour)`` is the
    required tie-break order. Each live slot caches its nearest live neighbour
    among higher slots. A min-heap keyed by ``(distance, slot)`` yields the next
    merge; entries are lower bounds because complete-linkage distances only grow,
    so stale entries are recomputed when they reach the top of the heap.
    """

    name = "generic"

    def build(self, distances: DistanceSet) -> Dendrogram:
        n_items = len(distances)
        if n_items < 2:
            return Dendrogram(items=distances.items, merges=())

        matrix = np.array(distances.matrix, dtype=float)
        np.fill_diagonal(matrix, np.inf)
        live = np.ones(n_items, dtype=bool)
        node_of = list(range(n_items))
        sizes = [1] * n_items
        neighbour = np.full(n_items, -1, dtype=int)
        nearest = np.full(n_items, np.inf)

        heap: list[tuple[float, int]] = []
        for slot in range(n_items - 1):
            self._refresh(slot, matrix, live, neighbour, nearest)
            heap.append((float(nearest[slot]), slot))
        heapq.heapify(heap)

        merges: list[Merge] = []
        for step in range(n_items - 1):
            pair = self._pop_closest(heap, matrix, live, neighbour, nearest)
            if pair is None:
                remaining = int(live.sum())
                msg = (
                    f"Complete linkage cannot join {remaining} remaining clusters: "
                    "every candidate pair has a missing cross distance"
                )
                raise DisconnectedInputError(msg, remaining_clusters=remaining)
            low, high, height = pair
            size = sizes[low] + sizes[high]
            merges.append(Merge(step, node_of[low], node_of[high], height, size))

            updated = np.maximum(matrix[low], matrix[high])
            matrix[low, :] = updated
            matrix[:, low] = updated
            matrix[low, low] = np.inf
            matrix[high, :] = np.inf
            matrix[:, high] = np.inf
            live[high] = False
            node_of[low] = n_items + step
            sizes[low] = size

            self._refresh(low, matrix, live, neighbour, nearest)
            heapq.heappush(heap, (float(nearest[low]), low))

        return Dendrogram(items=distances.items, merges=tuple(merges))

    def _pop_closest(
        self,
        heap: list[tuple[float, int]],
        matrix: np.ndarray,
        live: np.ndarray,
        neighbour: np.ndarray,
        nearest: np.ndarray,
    ) -> tuple[int, int, float] | None:
        while heap:
            distance, slot = heap[0]
            if math.isinf(distance):
                return None
            heapq.heappop(heap)
            if not live[slot] or distance != nearest[slot]:
                continue
            other = int(neighbour[slot])
            if other >= 0 and live[other] and matrix[slot, other] == distance:
                return slot, other, distance
            self._refresh(slot, matrix, live, neighbour, nearest)
            heapq.heappush(heap, (float(nearest[slot]), slot))
        return None

    def _refresh(
        self,
        slot: int,
        matrix: np.ndarray,
        live: np.ndarray,
        neighbour: np.ndarray,
        nearest: np.ndarray,
    ) -> None:
        # dead slots hold inf, argmin keeps the smallest slot on ties
        row = matrix[slot, slot + 1 :]
        if row.size == 0:
            neighbour[slot] = -1
            nearest[slot] = np.inf
            return
        offset = int(np.argmin(row))
        value = float(row[offset])
        if math.isinf(value):
            neighbour[slot] = -1
            nearest[slot] = np.inf
            return
        neighbour[slot] = slot + 1 + offset
        nearest[slot] = value

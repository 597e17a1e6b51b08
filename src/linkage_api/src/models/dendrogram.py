"""Immutable dendrogram produced by the builders.

Node indices follow the linkage-matrix convention: ``0 .. n-1`` are leaves
(the item at that rank in ``items``) and ``n + k`` is the internal node created
by the ``k``-th merge.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from linkage_api.src.models.data_models import ChildRef, MergeEvent
from linkage_api.src.models.distance_set import Item
from linkage_api.src.models.errors import MalformedInputError


@dataclass(frozen=True, slots=True)
class Merge:
    """One internal node: two children joined at ``height``."""

    node_id: int
    left: int
    right: int
    height: float
    size: int


@dataclass(frozen=True, slots=True, eq=False)
class Dendrogram:
    """Binary merge tree over ``items``; ``merges`` are in merge order."""

    items: tuple[Item, ...]
    merges: tuple[Merge, ...]

    @property
    def n_items(self) -> int:
        return len(self.items)

    @property
    def is_degenerate(self) -> bool:
        return self.n_items < 2

    @property
    def root(self) -> int | None:
        if not self.items:
            return None
        return self.n_items + len(self.merges) - 1 if self.merges else 0

    @property
    def root_height(self) -> float:
        return self.merges[-1].height if self.merges else 0.0

    def is_leaf(self, node: int) -> bool:
        return node < self.n_items

    def height(self, node: int) -> float:
        if self.is_leaf(node):
            return 0.0
        return self.merges[node - self.n_items].height

    def children(self, node: int) -> tuple[int, int] | tuple[()]:
        if self.is_leaf(node):
            return ()
        merge = self.merges[node - self.n_items]
        return merge.left, merge.right

    def leaf_ranks(self, node: int) -> list[int]:
        """Sorted ranks of every leaf below ``node``."""
        ranks: list[int] = []
        stack = [node]
        while stack:
            current = stack.pop()
            if self.is_leaf(current):
                ranks.append(current)
            else:
                merge = self.merges[current - self.n_items]
                stack.append(merge.right)
                stack.append(merge.left)
        ranks.sort()
        return ranks

    def members(self, node: int) -> list[Item]:
        return [self.items[rank] for rank in self.leaf_ranks(node)]

    def child_ref(self, node: int) -> ChildRef:
        if self.is_leaf(node):
            return ChildRef(kind="leaf", ref=self.items[node])
        return ChildRef(kind="merge", ref=node - self.n_items)

    def to_linkage_matrix(self) -> np.ndarray:
        """Return the ``(n-1, 4)`` array ``[left, right, height, size]`` used by scipy."""
        matrix = np.zeros((len(self.merges), 4), dtype=float)
        for row, merge in enumerate(self.merges):
            matrix[row] = (merge.left, merge.right, merge.height, merge.size)
        return matrix

    def to_events(self, include_members: bool = True) -> list[MergeEvent]:
        """Expose the merges as relational rows, optionally with member arrays."""
        member_ranks: dict[int, list[int]] = {}
        events: list[MergeEvent] = []
        for merge in self.merges:
            members: list[Item] = []
            if include_members:
                ranks = self._ranks_of(merge.left, member_ranks) + self._ranks_of(
                    merge.right, member_ranks
                )
                ranks.sort()
                member_ranks[self.n_items + merge.node_id] = ranks
                members = [self.items[rank] for rank in ranks]
            events.append(
                MergeEvent(
                    node_id=merge.node_id,
                    left=self.child_ref(merge.left),
                    right=self.child_ref(merge.right),
                    height=merge.height,
                    size=merge.size,
                    members=members,
                )
            )
        return events

    def _ranks_of(self, node: int, member_ranks: dict[int, list[int]]) -> list[int]:
        if self.is_leaf(node):
            return [node]
        return member_ranks.pop(node)

    @classmethod
    def from_events(
        cls, items: Iterable[Item], events: Sequence[MergeEvent]
    ) -> Dendrogram:
        """Rebuild a dendrogram from merge rows, checking that they form one valid tree.

        Raises:
            MalformedInputError: the rows do not describe a binary tree over ``items``
                with non-decreasing heights along every path to the root.
        """
        ordered = tuple(sorted(set(items)))
        n_items = len(ordered)
        index = {item: rank for rank, item in enumerate(ordered)}
        expected = max(n_items - 1, 0)
        if len(events) != expected:
            msg = f"Expected {expected} merges for {n_items} items, got {len(events)}"
            raise MalformedInputError(msg)

        consumed: set[int] = set()
        sizes: dict[int, int] = {}
        heights: dict[int, float] = {}
        merges: list[Merge] = []
        for position, event in enumerate(sorted(events, key=lambda e: e.node_id)):
            if event.node_id != position:
                msg = f"Merge node ids must be contiguous from 0, missing {position}"
                raise MalformedInputError(msg)
            left = _resolve_ref(event.left, index, n_items, event.node_id)
            right = _resolve_ref(event.right, index, n_items, event.node_id)
            for child in (left, right):
                if child in consumed:
                    msg = f"Merge {event.node_id} reuses node {child}"
                    raise MalformedInputError(msg)
                consumed.add(child)
            child_height = max(heights.get(left, 0.0), heights.get(right, 0.0))
            if event.height < child_height:
                msg = (
                    f"Merge {event.node_id} at height {event.height} is below "
                    f"its children at {child_height}"
                )
                raise MalformedInputError(msg)
            size = sizes.get(left, 1) + sizes.get(right, 1)
            if size != event.size:
                msg = f"Merge {event.node_id} declares size {event.size}, children sum to {size}"
                raise MalformedInputError(msg)
            node = n_items + event.node_id
            sizes[node] = size
            heights[node] = event.height
            merges.append(Merge(event.node_id, left, right, float(event.height), size))
        return cls(items=ordered, merges=tuple(merges))


def _resolve_ref(
    ref: ChildRef, index: dict[Item, int], n_items: int, node_id: int
) -> int:
    if ref.kind == "leaf":
        if ref.ref not in index:
            msg = f"Merge {node_id} references unknown item {ref.ref!r}"
            raise MalformedInputError(msg)
        return index[ref.ref]
    if not isinstance(ref.ref, int) or ref.ref >= node_id:
        msg = f"Merge {node_id} references merge {ref.ref!r} that is not earlier"
        raise MalformedInputError(msg)
    return n_items + ref.ref

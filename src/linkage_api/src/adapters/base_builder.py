"""Shared abstraction for complete-linkage dendrogram builders.

Every concrete builder (generic nearest-neighbour cache, nearest-neighbour
chain) implements this interface so services stay agnostic of the strategy.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from linkage_api.src.models.dendrogram import Dendrogram
    from linkage_api.src.models.distance_set import DistanceSet


class BaseDendrogramBuilder(abc.ABC):
    """Common contract for dendrogram builders."""

    name: str = "base"

    @abc.abstractmethod
    def build(self, distances: DistanceSet) -> Dendrogram:
        """Merge every item of ``distances`` into a single complete-linkage tree."""

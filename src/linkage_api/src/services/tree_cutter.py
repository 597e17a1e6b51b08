from __future__ import annotations

import math
import numbers

import numpy as np

from linkage_api.src.models.data_models import FlatCluster
from linkage_api.src.models.dendrogram import Dendrogram
from linkage_api.src.models.errors import InvalidThresholdError


def validate_threshold(threshold: object) -> float | None:
    """Return the threshold as a float, keeping None as "no cut"."""
    if threshold is None:
        return None
    if isinstance(threshold, bool) or not isinstance(threshold, numbers.Real):
        msg = f"threshold must be a non-negative number, got {threshold!r}"
        raise InvalidThresholdError(msg)
    value = float(threshold)
    if math.isnan(value) or value < 0:
        msg = f"threshold must be a non-negative number, got {value}"
        raise InvalidThresholdError(msg)
    return value


def cut_nodes(dendrogram: Dendrogram, threshold: float | None = None) -> list[int]:
    """Return the nodes whose leaf sets form the flat clusters at ``threshold``.

    A node is kept whole when its height is at most the threshold, otherwise it
    is expanded into its children. Leaves are always kept. ``None`` keeps the
    root.
    """
    value = validate_threshold(threshold)
    root = dendrogram.root
    if root is None:
        return []
    if value is None:
        return [root]
    kept: list[int] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if dendrogram.is_leaf(node) or dendrogram.height(node) <= value:
            kept.append(node)
        else:
            stack.extend(dendrogram.children(node))
    return kept


def cut_tree(dendrogram: Dendrogram, threshold: float | None = None) -> list[FlatCluster]:
    """Partition the dendrogram's items into flat clusters at ``threshold``.

    Clusters are numbered from 0 in ascending order of their smallest member.
    The exemplar is the smallest member; the height is the merge height of the
    node that formed the cluster, or 0 for a singleton.

    Raises:
        InvalidThresholdError: threshold is negative, NaN or not a number.
    """
    groups = [
        (dendrogram.leaf_ranks(node), node) for node in cut_nodes(dendrogram, threshold)
    ]
    groups.sort(key=lambda group: group[0][0])
    clusters: list[FlatCluster] = []
    for cluster_id, (ranks, node) in enumerate(groups):
        members = [dendrogram.items[rank] for rank in ranks]
        clusters.append(
            FlatCluster(
                cluster_id=cluster_id,
                members=members,
                height=dendrogram.height(node),
                exemplar=members[0],
            )
        )
    return clusters


def cluster_labels(dendrogram: Dendrogram, threshold: float | None = None) -> np.ndarray:
    """Cluster id per item, aligned with ``dendrogram.items``."""
    labels = np.full(dendrogram.n_items, -1, dtype=int)
    groups = sorted(
        dendrogram.leaf_ranks(node) for node in cut_nodes(dendrogram, threshold)
    )
    for cluster_id, ranks in enumerate(groups):
        labels[ranks] = cluster_id
    return labels

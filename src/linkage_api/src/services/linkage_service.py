from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import pandas as pd
from loguru import logger

from linkage_api.src.adapters.base_builder import BaseDendrogramBuilder
from linkage_api.src.adapters.generic_builder import GenericLinkageBuilder
from linkage_api.src.adapters.nn_chain_builder import NNChainBuilder
from linkage_api.src.config import config
from linkage_api.src.models.data_models import ChildRef, CutSummary, FlatCluster, MergeEvent
from linkage_api.src.models.dendrogram import Dendrogram
from linkage_api.src.models.distance_set import (
    DEFAULT_DISTANCE_COLUMN,
    DEFAULT_ID_COLUMNS,
    DistanceSet,
    Item,
    RawRecord,
)
from linkage_api.src.models.errors import DegenerateInputError, MalformedInputError
from linkage_api.src.services.metrics_service import (
    CutMetricsRecord,
    MetricsService,
    metrics_service,
)
from linkage_api.src.services.relation_store import RelationStore, relation_store
from linkage_api.src.services.tree_cutter import cluster_labels, cut_tree, validate_threshold
from linkage_api.src.utils.latency import measure_latency

BUILDERS: dict[str, Callable[[], BaseDendrogramBuilder]] = {
    GenericLinkageBuilder.name: GenericLinkageBuilder,
    NNChainBuilder.name: NNChainBuilder,
}

MERGE_COLUMNS = [
    "node_id", "left_kind", "left_ref", "right_kind", "right_ref", "height", "size", "members",
]
CLUSTER_COLUMNS = ["cluster_id", "members", "height", "exemplar"]


def get_builder(method: str) -> BaseDendrogramBuilder:
    try:
        return BUILDERS[method]()
    except KeyError:
        msg = f"Invalid method: {method}, must be one of {sorted(BUILDERS)}"
        raise ValueError(msg) from None


def build_dendrogram(
    distances: DistanceSet,
    method: str = GenericLinkageBuilder.name,
    allow_degenerate: bool = True,
) -> Dendrogram:
    """Build the complete-linkage dendrogram of ``distances``.

    Fewer than two items give a dendrogram without merges, or raise
    :class:`DegenerateInputError` when ``allow_degenerate`` is False.
    """
    builder = get_builder(method)
    if len(distances) < 2:
        if not allow_degenerate:
            msg = f"At least two items are required to build a dendrogram, got {len(distances)}"
            raise DegenerateInputError(msg)
        logger.bind(event="degenerate_input", n_items=len(distances)).warning(
            "Fewer than two items, returning a dendrogram without merges"
        )
    with measure_latency(f"{builder.name} build") as timer:
        dendrogram = builder.build(distances)
    logger.bind(
        event="dendrogram_built",
        method=builder.name,
        n_items=dendrogram.n_items,
        n_pairs=distances.n_pairs,
        n_merges=len(dendrogram.merges),
        root_height=dendrogram.root_height,
        latency_ms=timer.ms,
        timestamp=time.time(),
    ).info("Dendrogram built")
    return dendrogram


@dataclass(frozen=True, slots=True)
class CutResult:
    """Flat clusters of one cut together with their summary and metrics."""

    clusters: list[FlatCluster]
    summary: CutSummary
    metrics: CutMetricsRecord | None


class LinkageService:
    """Service orchestrating dendrogram construction, cutting and persistence."""

    DEFAULT_CONFIG = {
        "method": GenericLinkageBuilder.name,
        "allow_degenerate": True,
    }

    def __init__(
        self,
        store: Optional[RelationStore] = None,
        metrics: Optional[MetricsService] = None,
        **config,
    ):
        self._config = {**self.DEFAULT_CONFIG, **config}
        get_builder(self._config["method"])
        self.store = store if store is not None else relation_store
        self._metrics = metrics or metrics_service

    def build_from_records(
        self, records: Iterable[RawRecord], *, items: Iterable[Item] = (),
    ) -> Dendrogram:
        distances = DistanceSet.from_records(records, items=items)
        return self.build(distances)

    def build(self, distances: DistanceSet) -> Dendrogram:
        return build_dendrogram(
            distances,
            method=self._config["method"],
            allow_degenerate=self._config["allow_degenerate"],
        )

    def cut(
        self,
        dendrogram: Dendrogram,
        threshold: float | None = None,
        *,
        distances: DistanceSet | None = None,
        run_name: str = "adhoc",
    ) -> CutResult:
        """Cut ``dendrogram``; metrics are recorded when ``distances`` is given."""
        value = validate_threshold(threshold)
        with measure_latency("tree cut") as timer:
            clusters = cut_tree(dendrogram, value)
        metrics = None
        if distances is not None:
            metrics = self._metrics.evaluate(
                distances,
                cluster_labels(dendrogram, value),
                run_name=run_name,
                threshold=value,
                max_height=max((cluster.height for cluster in clusters), default=0.0),
            )
        logger.bind(
            event="tree_cut",
            run_name=run_name,
            threshold=value,
            n_items=dendrogram.n_items,
            n_clusters=len(clusters),
            latency_ms=timer.ms,
            timestamp=time.time(),
        ).info("Dendrogram cut")
        return CutResult(
            clusters=clusters,
            summary=CutSummary.from_clusters(clusters, threshold=value),
            metrics=metrics,
        )

    def cut_from_records(
        self,
        records: Iterable[RawRecord],
        threshold: float | None = None,
        *,
        items: Iterable[Item] = (),
        run_name: str = "adhoc",
    ) -> CutResult:
        validate_threshold(threshold)
        distances = DistanceSet.from_records(records, items=items)
        dendrogram = self.build(distances)
        return self.cut(dendrogram, threshold, distances=distances, run_name=run_name)

    def build_relation(
        self,
        distance_relation: str,
        id_column_1: str = DEFAULT_ID_COLUMNS[0],
        id_column_2: str = DEFAULT_ID_COLUMNS[1],
        distance_column: str = DEFAULT_DISTANCE_COLUMN,
        output_relation: str | None = None,
    ) -> Dendrogram:
        """Build from a stored distance relation and persist the merge relation."""
        distances = self._read_distances(
            distance_relation, id_column_1, id_column_2, distance_column,
        )
        dendrogram = self.build(distances)
        target = output_relation or f"{distance_relation}_dendrogram"
        self.store.write(target, merges_to_frame(dendrogram.to_events()))
        return dendrogram

    def cut_relation(
        self,
        distance_relation: str,
        id_column_1: str = DEFAULT_ID_COLUMNS[0],
        id_column_2: str = DEFAULT_ID_COLUMNS[1],
        distance_column: str = DEFAULT_DISTANCE_COLUMN,
        dendrogram_relation: str | None = None,
        threshold: float | None = None,
        output_relation: str | None = None,
    ) -> CutResult:
        """Cut a stored dendrogram and persist one row per flat cluster.

        The item universe comes from the distance relation; the stored merges
        must form a tree over exactly those items.
        """
        validate_threshold(threshold)
        distances = self._read_distances(
            distance_relation, id_column_1, id_column_2, distance_column,
        )
        source = dendrogram_relation or f"{distance_relation}_dendrogram"
        events = frame_to_events(self.store.read(source), distances.items)
        dendrogram = Dendrogram.from_events(distances.items, events)
        result = self.cut(dendrogram, threshold, distances=distances, run_name=source)
        target = output_relation or f"{source}_clusters"
        self.store.write(target, clusters_to_frame(result.clusters))
        return result

    def configure(self, **config) -> Dict[str, object]:
        updated = {
            key: value
            for key, value in config.items()
            if value is not None and key in self._config
        }
        if "method" in updated:
            get_builder(updated["method"])
        self._config.update(updated)
        return dict(self._config)

    def get_config(self) -> Dict[str, object]:
        return dict(self._config)

    def _read_distances(
        self,
        relation: str,
        id_column_1: str,
        id_column_2: str,
        distance_column: str,
    ) -> DistanceSet:
        frame = self.store.read(relation)
        return DistanceSet.from_frame(frame, id_column_1, id_column_2, distance_column)


def merges_to_frame(events: list[MergeEvent]) -> pd.DataFrame:
    rows = [
        {
            "node_id": event.node_id,
            "left_kind": event.left.kind,
            "left_ref": event.left.ref,
            "right_kind": event.right.kind,
            "right_ref": event.right.ref,
            "height": event.height,
            "size": event.size,
            "members": list(event.members),
        }
        for event in events
    ]
    return pd.DataFrame(rows, columns=MERGE_COLUMNS)


def frame_to_events(frame: pd.DataFrame, items: tuple[Item, ...]) -> list[MergeEvent]:
    """Parse a merge relation; leaf references are coerced to the items' id type."""
    missing = [column for column in MERGE_COLUMNS[:-1] if column not in frame.columns]
    if missing:
        msg = f"Dendrogram relation is missing columns: {', '.join(missing)}"
        raise MalformedInputError(msg)
    item_type = type(items[0]) if items else int
    events: list[MergeEvent] = []
    for row in frame.to_dict(orient="records"):
        try:
            events.append(
                MergeEvent(
                    node_id=int(row["node_id"]),
                    left=_child_ref(row["left_kind"], row["left_ref"], item_type),
                    right=_child_ref(row["right_kind"], row["right_ref"], item_type),
                    height=float(row["height"]),
                    size=int(row["size"]),
                )
            )
        except (TypeError, ValueError) as exc:
            msg = f"Invalid dendrogram row {row!r}: {exc}"
            raise MalformedInputError(msg) from exc
    return events


def _child_ref(kind: str, ref: object, item_type: type) -> ChildRef:
    value = int(ref) if kind == "merge" else item_type(ref)
    return ChildRef(kind=kind, ref=value)


def clusters_to_frame(clusters: list[FlatCluster]) -> pd.DataFrame:
    rows = [
        {
            "cluster_id": cluster.cluster_id,
            "members": list(cluster.members),
            "height": cluster.height,
            "exemplar": cluster.exemplar,
        }
        for cluster in clusters
    ]
    return pd.DataFrame(rows, columns=CLUSTER_COLUMNS)


linkage_service = LinkageService(
    method=config.linkage.method,
    allow_degenerate=config.linkage.allow_degenerate,
)

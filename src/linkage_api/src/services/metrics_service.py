from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from threading import Lock

import numpy as np
from loguru import logger
from sklearn.metrics import silhouette_score

from linkage_api.src.config import config
from linkage_api.src.models.distance_set import DistanceSet


@dataclass(frozen=True, slots=True)
class CutMetricsRecord:
    """Snapshot of the quality of one flat clustering."""

    timestamp: float
    run_name: str
    threshold: float | None
    n_items: int
    number_of_clusters: int
    singleton_ratio: float
    max_height: float
    silhouette_score: float | None


class MetricsService:
    """Compute and store flat-cluster metrics for monitoring."""

    def __init__(self, history_size: int = 100) -> None:
        if history_size <= 0:
            msg = f"history_size must be greater than 0, got {history_size}"
            raise ValueError(msg)
        self._history_size = history_size
        self._history: dict[str, deque[CutMetricsRecord]] = {}
        self._lock = Lock()

    def evaluate(
        self,
        distances: DistanceSet,
        labels: np.ndarray,
        *,
        run_name: str,
        threshold: float | None = None,
        max_height: float = 0.0,
    ) -> CutMetricsRecord:
        """Compute metrics for a cut and store the result.

        ``labels`` holds one cluster id per item, aligned with ``distances.items``.
        """
        if not run_name:
            msg = "run_name must be a non-empty string"
            raise ValueError(msg)
        label_array = np.asarray(labels)
        if label_array.ndim != 1:
            msg = f"labels must be a 1D array-like structure, got {label_array.ndim}D"
            raise ValueError(msg)
        n_items = len(distances)
        if n_items != int(label_array.size):
            msg = (
                "distances and labels must cover the same items, "
                f"got {n_items} and {label_array.size}"
            )
            raise ValueError(msg)

        number_of_clusters = self._count_clusters(label_array)
        record = CutMetricsRecord(
            timestamp=time.time(),
            run_name=run_name,
            threshold=threshold,
            n_items=n_items,
            number_of_clusters=number_of_clusters,
            singleton_ratio=self._compute_singleton_ratio(label_array, number_of_clusters),
            max_height=float(max_height),
            silhouette_score=self._safe_silhouette_score(
                distances.matrix, label_array, number_of_clusters,
            ),
        )
        self._store(record)
        self._log(record)
        return record

    def get_latest(
        self, run_name: str | None = None,
    ) -> CutMetricsRecord | None | dict[str, CutMetricsRecord]:
        """Return the latest record for a run or for all runs."""
        with self._lock:
            if run_name is None:
                return {
                    name: records[-1] for name, records in self._history.items() if records
                }
            records = self._history.get(run_name)
            return records[-1] if records else None

    def get_history(self, run_name: str) -> tuple[CutMetricsRecord, ...]:
        """Return a read-only copy of stored metrics for a run."""
        with self._lock:
            records = self._history.get(run_name)
            return tuple(records) if records else ()

    def reset(self) -> None:
        with self._lock:
            self._history.clear()

    def _store(self, record: CutMetricsRecord) -> None:
        with self._lock:
            records = self._history.setdefault(
                record.run_name,
                deque(maxlen=self._history_size),
            )
            records.append(record)

    def _count_clusters(self, labels: np.ndarray) -> int:
        return len({int(label) for label in labels.tolist()})

    def _compute_singleton_ratio(self, labels: np.ndarray, number_of_clusters: int) -> float:
        if number_of_clusters == 0:
            return 0.0
        counts = np.unique(labels, return_counts=True)[1]
        return int(np.sum(counts == 1)) / number_of_clusters

    def _safe_silhouette_score(
        self, matrix: np.ndarray, labels: np.ndarray, number_of_clusters: int,
    ) -> float | None:
        n_items = int(labels.size)
        if number_of_clusters < 2 or number_of_clusters >= n_items:
            return None
        if not np.all(np.isfinite(matrix)):
            return None
        return float(silhouette_score(np.array(matrix), labels, metric="precomputed"))

    def _log(self, record: CutMetricsRecord) -> None:
        if record.n_items == 0 or record.number_of_clusters == 0:
            logger.warning(
                "metrics computed | run={run} threshold={threshold} n_items={n} "
                "n_clusters={clusters} singleton_ratio={singletons:.3f} silhouette={silhouette}",
                run=record.run_name,
                threshold=record.threshold,
                n=record.n_items,
                clusters=record.number_of_clusters,
                singletons=record.singleton_ratio,
                silhouette=record.silhouette_score,
            )
            return
        logger.info(
            "metrics computed | run={run} threshold={threshold} n_items={n} "
            "n_clusters={clusters} singleton_ratio={singletons:.3f} silhouette={silhouette}",
            run=record.run_name,
            threshold=record.threshold,
            n=record.n_items,
            clusters=record.number_of_clusters,
            singletons=record.singleton_ratio,
            silhouette=record.silhouette_score,
        )


metrics_service = MetricsService(history_size=config.linkage.metrics_history_size)

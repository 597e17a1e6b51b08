import itertools

import numpy as np
import pandas as pd

from linkage_api.src.models.distance_set import DistanceSet
from linkage_api.src.services.linkage_service import LinkageService
from linkage_api.src.services.metrics_service import MetricsService
from linkage_api.src.services.pseudonymize_service import Pseudonymizer
from linkage_api.src.services.relation_store import InMemoryRelationStore


def _blob_distances(rng: np.random.Generator) -> tuple[pd.DataFrame, dict[str, int]]:
    centers = np.array([[-10.0, 0.0], [0.0, 10.0], [10.0, 0.0]])
    points = {}
    blob_of = {}
    for blob, center in enumerate(centers):
        for idx in range(6):
            name = f"site-{blob}-{idx}"
            points[name] = center + rng.normal(scale=0.5, size=2)
            blob_of[name] = blob
    rows = [
        {"item_a": a, "item_b": b, "distance": float(np.linalg.norm(points[a] - points[b]))}
        for a, b in itertools.combinations(sorted(points), 2)
    ]
    return pd.DataFrame(rows), blob_of


def test_separated_blobs_are_recovered_through_relations():
    # Arrange
    frame, blob_of = _blob_distances(np.random.default_rng(7))
    store = InMemoryRelationStore()
    store.write("sites", frame)
    service = LinkageService(store=store, metrics=MetricsService())

    # Act
    service.build_relation("sites")
    result = service.cut_relation("sites", threshold=8.0)

    # Assert
    assert len(result.clusters) == 3
    for cluster in result.clusters:
        assert len({blob_of[member] for member in cluster.members}) == 1
    assert result.metrics.silhouette_score > 0.8
    assert store.exists("sites_dendrogram_clusters")


def test_builders_agree_on_continuous_distances():
    # Arrange
    frame, _ = _blob_distances(np.random.default_rng(11))
    distances = DistanceSet.from_frame(frame)

    # Act
    generic = LinkageService(store=InMemoryRelationStore(), method="generic").build(distances)
    chained = LinkageService(store=InMemoryRelationStore(), method="nn_chain").build(distances)

    # Assert
    assert generic.merges == chained.merges


def test_pseudonymized_ids_give_the_same_partition():
    # Arrange
    frame, _ = _blob_distances(np.random.default_rng(3))
    pseudonymizer = Pseudonymizer(hash_length=16, secret="pipeline")
    masked, mapping = pseudonymizer.map_column(frame, "item_a")
    masked, mapping = pseudonymizer.map_column(masked, "item_b", mapping)
    service = LinkageService(store=InMemoryRelationStore(), metrics=MetricsService())

    # Act
    plain = service.cut_from_records(frame.to_dict(orient="records"), 8.0)
    hidden = service.cut_from_records(masked.to_dict(orient="records"), 8.0)

    # Assert
    reverse = dict(zip(mapping["pseudonym"], mapping["original"]))
    restored = {frozenset(reverse[m] for m in cluster.members) for cluster in hidden.clusters}
    assert restored == {frozenset(cluster.members) for cluster in plain.clusters}

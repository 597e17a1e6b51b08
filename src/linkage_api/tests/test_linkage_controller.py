import pytest
from fastapi.testclient import TestClient

from linkage_api.src.app import create_app
from linkage_api.src.services.linkage_service import linkage_service
from linkage_api.src.services.metrics_service import metrics_service
from linkage_api.src.services.relation_store import relation_store
from linkage_api.src.utils.logging_utils import clear_recent_logs

DISTANCES = [
    {"item_a": 1, "item_b": 2, "distance": 0.0},
    {"item_a": 1, "item_b": 3, "distance": 1.0},
    {"item_a": 1, "item_b": 4, "distance": 5.0},
    {"item_a": 2, "item_b": 3, "distance": 2.0},
    {"item_a": 2, "item_b": 4, "distance": 4.0},
    {"item_a": 3, "item_b": 4, "distance": 3.0},
]


@pytest.fixture
def client():
    relation_store.clear()
    metrics_service.reset()
    clear_recent_logs()
    defaults = linkage_service.get_config()
    yield TestClient(create_app())
    linkage_service.configure(**defaults)
    relation_store.clear()


def test_dendrogram_endpoint_returns_merges(client):
    # Act
    response = client.post("/v1/linkage/dendrogram", json={"distances": DISTANCES})

    # Assert
    assert response.status_code == 200
    payload = response.json()
    assert payload["items"] == [1, 2, 3, 4]
    assert payload["root_height"] == 5.0
    assert [merge["members"] for merge in payload["merges"]] == [[1, 2], [1, 2, 3], [1, 2, 3, 4]]
    assert payload["merges"][1]["left"] == {"kind": "merge", "ref": 0}


def test_cut_endpoint_returns_clusters(client):
    # Act
    response = client.post("/v1/linkage/cut", json={"distances": DISTANCES, "threshold": 2})

    # Assert
    assert response.status_code == 200
    payload = response.json()
    assert payload["clusters"] == [
        {"cluster_id": 0, "members": [1, 2, 3], "height": 2.0, "exemplar": 1},
        {"cluster_id": 1, "members": [4], "height": 0.0, "exemplar": 4},
    ]
    assert payload["summary"]["total_clusters"] == 2
    assert payload["metrics"]["run_name"] == "adhoc"


def test_negative_threshold_is_unprocessable(client):
    response = client.post("/v1/linkage/cut", json={"distances": DISTANCES, "threshold": -1})

    assert response.status_code == 422
    assert response.json()["error"] == "InvalidThresholdError"


def test_disconnected_input_is_unprocessable(client):
    rows = [
        {"item_a": "a", "item_b": "b", "distance": 1.0},
        {"item_a": "c", "item_b": "d", "distance": 1.0},
    ]

    response = client.post("/v1/linkage/dendrogram", json={"distances": rows})

    assert response.status_code == 422
    assert response.json()["error"] == "DisconnectedInputError"


def test_conflicting_duplicates_are_unprocessable(client):
    rows = DISTANCES + [{"item_a": 2, "item_b": 1, "distance": 0.5}]

    response = client.post("/v1/linkage/dendrogram", json={"distances": rows})

    assert response.status_code == 422
    assert response.json()["error"] == "MalformedInputError"


def test_negative_distance_fails_validation(client):
    rows = [{"item_a": 1, "item_b": 2, "distance": -1.0}]

    response = client.post("/v1/linkage/dendrogram", json={"distances": rows})

    assert response.status_code == 422


def test_relation_pipeline(client):
    # Arrange
    client.put("/v1/relations/pairs", json={"rows": DISTANCES})

    # Act
    built = client.post(
        "/v1/linkage/relations/build",
        json={"distance_relation": "pairs", "output_relation": "tree"},
    )
    cut = client.post(
        "/v1/linkage/relations/cut",
        json={
            "distance_relation": "pairs",
            "dendrogram_relation": "tree",
            "threshold": 2.0,
            "output_relation": "flat",
        },
    )
    stored = client.get("/v1/relations/flat")

    # Assert
    assert built.status_code == 200
    assert built.json()["n_merges"] == 3
    assert cut.status_code == 200
    assert stored.json()["rows"][0]["members"] == [1, 2, 3]
    assert client.get("/v1/relations").json()["relations"] == ["flat", "pairs", "tree"]
    assert client.get("/v1/metrics/latest").json()["latest"]["tree"]["number_of_clusters"] == 2


def test_missing_relation_is_not_found(client):
    response = client.post(
        "/v1/linkage/relations/build",
        json={"distance_relation": "ghost", "output_relation": "tree"},
    )

    assert response.status_code == 404
    assert response.json() == {"error": "RelationNotFoundError", "detail": "Relation not found: ghost"}


def test_relation_crud(client):
    client.put("/v1/relations/tmp", json={"rows": [{"x": 1, "y": None}]})

    assert client.get("/v1/relations/tmp").json()["rows"] == [{"x": 1, "y": None}]
    assert client.delete("/v1/relations/tmp").status_code == 200
    assert client.delete("/v1/relations/tmp").status_code == 404


def test_pseudonymize_round_trip(client):
    # Arrange
    client.put("/v1/relations/people", json={"rows": [{"name": "ann"}, {"name": "ben"}]})

    # Act
    mapped = client.post(
        "/v1/pseudonymize/map",
        json={
            "relation": "people",
            "column": "name",
            "mapping_relation": "people_map",
            "output_relation": "people_masked",
        },
    )
    masked = client.get("/v1/relations/people_masked").json()["rows"]
    restored = client.post(
        "/v1/pseudonymize/unmap",
        json={
            "relation": "people_masked",
            "column": "name",
            "mapping_relation": "people_map",
            "output_relation": "people_restored",
        },
    )

    # Assert
    assert mapped.json()["distinct_values"] == 2
    assert all(row["name"] not in {"ann", "ben"} for row in masked)
    assert restored.status_code == 200
    assert client.get("/v1/relations/people_restored").json()["rows"] == [
        {"name": "ann"},
        {"name": "ben"},
    ]


def test_pseudonymize_missing_column(client):
    client.put("/v1/relations/people", json={"rows": [{"name": "ann"}]})

    response = client.post(
        "/v1/pseudonymize/map",
        json={
            "relation": "people",
            "column": "email",
            "mapping_relation": "m",
            "output_relation": "o",
        },
    )

    assert response.status_code == 422
    assert response.json()["error"] == "PseudonymizationError"


def test_configure_and_read_config(client):
    response = client.post("/v1/linkage/configure", json={"method": "nn_chain"})

    assert response.status_code == 200
    assert client.get("/v1/linkage/config").json()["method"] == "nn_chain"
    assert client.post("/v1/linkage/configure", json={"method": "ward"}).status_code == 422


def test_recent_logs_can_be_filtered_by_event(client):
    client.post("/v1/linkage/cut", json={"distances": DISTANCES, "threshold": 1.0})

    response = client.get("/v1/logs/recent", params={"event": "tree_cut"})

    logs = response.json()["logs"]
    assert len(logs) == 1
    assert logs[0]["n_clusters"] == 3


def test_health_reports_relations(client):
    client.put("/v1/relations/pairs", json={"rows": DISTANCES})

    payload = client.get("/v1/health").json()

    assert payload["status"] == "ok"
    assert payload["relations"] == 1


@pytest.mark.parametrize(
    ("path", "payload"),
    [
        ("/v1/linkage/relations/build", {"distance_relation": "pairs", "output_relation": ""}),
        ("/v1/linkage/relations/build", {"distance_relation": "", "output_relation": "tree"}),
        (
            "/v1/linkage/relations/cut",
            {"distance_relation": "pairs", "dendrogram_relation": "tree", "output_relation": ""},
        ),
        (
            "/v1/pseudonymize/map",
            {"relation": "pairs", "column": "item_a", "mapping_relation": "", "output_relation": "o"},
        ),
    ],
)
def test_empty_relation_names_are_rejected(client, path, payload):
    # Arrange
    client.put("/v1/relations/pairs", json={"rows": DISTANCES})

    # Act
    response = client.post(path, json=payload)

    # Assert
    assert response.status_code == 422
    assert client.get("/v1/relations").json()["relations"] == ["pairs"]

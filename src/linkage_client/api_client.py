from __future__ import annotations

import os
from dataclasses import dataclass
from http import HTTPStatus

import httpx

Item = int | str


class BackendError(RuntimeError):
    """Raised when the backend is unreachable or returns an error response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error


@dataclass(frozen=True, slots=True)
class DistanceRow:
    """One pairwise distance sent to the backend."""

    item_a: Item
    item_b: Item
    distance: float

    def to_payload(self) -> dict[str, Item | float]:
        return {"item_a": self.item_a, "item_b": self.item_b, "distance": self.distance}


@dataclass(frozen=True, slots=True)
class MergeRow:
    """Merge event returned by the dendrogram endpoint."""

    node_id: int
    left: tuple[str, Item]
    right: tuple[str, Item]
    height: float
    size: int
    members: list[Item]

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> MergeRow:
        return cls(
            node_id=int(payload["node_id"]),
            left=_parse_ref(payload.get("left")),
            right=_parse_ref(payload.get("right")),
            height=float(payload["height"]),
            size=int(payload["size"]),
            members=list(payload.get("members") or []),
        )


@dataclass(frozen=True, slots=True)
class DendrogramResponse:
    items: list[Item]
    root_height: float
    merges: list[MergeRow]
    raw: dict[str, object]


@dataclass(frozen=True, slots=True)
class ClusterRow:
    cluster_id: int
    members: list[Item]
    height: float
    exemplar: Item


@dataclass(frozen=True, slots=True)
class CutResponse:
    clusters: list[ClusterRow]
    total_clusters: int | None
    singleton_ratio: float | None
    silhouette_score: float | None
    raw: dict[str, object]

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> CutResponse:
        raw_clusters = payload.get("clusters", [])
        clusters = [
            ClusterRow(
                cluster_id=int(item["cluster_id"]),
                members=list(item.get("members", [])),
                height=float(item.get("height", 0.0)),
                exemplar=item.get("exemplar"),
            )
            for item in raw_clusters
            if isinstance(item, dict)
        ] if isinstance(raw_clusters, list) else []
        summary = payload.get("summary")
        summary = summary if isinstance(summary, dict) else {}
        metrics = payload.get("metrics")
        metrics = metrics if isinstance(metrics, dict) else {}
        return cls(
            clusters=clusters,
            total_clusters=_as_int(summary.get("total_clusters")),
            singleton_ratio=_as_float(summary.get("singleton_ratio")),
            silhouette_score=_as_float(metrics.get("silhouette_score")),
            raw=payload,
        )


class ApiClient:
    """Minimal HTTP client for the linkage backend."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        fallback = os.getenv("LINKAGE_BACKEND_URL", "http://localhost:8000")
        self._base_url: str = base_url if base_url is not None else fallback
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def build_dendrogram(
        self,
        rows: list[DistanceRow],
        method: str | None = None,
        items: list[Item] | None = None,
    ) -> DendrogramResponse:
        payload: dict[str, object] = {"distances": [row.to_payload() for row in rows]}
        if items:
            payload["items"] = list(items)
        if method is not None:
            payload["method"] = method
        data = self._request("POST", "/v1/linkage/dendrogram", json=payload)
        return DendrogramResponse(
            items=list(data.get("items", [])),
            root_height=_as_float(data.get("root_height")) or 0.0,
            merges=[MergeRow.from_payload(item) for item in data.get("merges", [])],
            raw=data,
        )

    def cut(
        self,
        rows: list[DistanceRow],
        threshold: float | None = None,
        run_name: str = "adhoc",
        items: list[Item] | None = None,
    ) -> CutResponse:
        payload: dict[str, object] = {
            "distances": [row.to_payload() for row in rows],
            "threshold": threshold,
            "run_name": run_name,
        }
        if items:
            payload["items"] = list(items)
        data = self._request("POST", "/v1/linkage/cut", json=payload)
        return CutResponse.from_payload(data)

    def put_relation(self, name: str, rows: list[dict[str, object]]) -> dict[str, object]:
        return self._request("PUT", f"/v1/relations/{name}", json={"rows": rows})

    def get_relation(self, name: str) -> list[dict[str, object]]:
        data = self._request("GET", f"/v1/relations/{name}")
        rows = data.get("rows", [])
        return rows if isinstance(rows, list) else []

    def drop_relation(self, name: str) -> dict[str, object]:
        return self._request("DELETE", f"/v1/relations/{name}")

    def build_relation(self, distance_relation: str, output_relation: str, **columns: str) -> dict[str, object]:
        payload = {
            "distance_relation": distance_relation,
            "output_relation": output_relation,
            **columns,
        }
        return self._request("POST", "/v1/linkage/relations/build", json=payload)

    def cut_relation(
        self,
        distance_relation: str,
        dendrogram_relation: str,
        output_relation: str,
        threshold: float | None = None,
        **columns: str,
    ) -> CutResponse:
        payload = {
            "distance_relation": distance_relation,
            "dendrogram_relation": dendrogram_relation,
            "output_relation": output_relation,
            "threshold": threshold,
            **columns,
        }
        data = self._request("POST", "/v1/linkage/relations/cut", json=payload)
        return CutResponse.from_payload(data)

    def map_column(
        self,
        relation: str,
        column: str,
        mapping_relation: str,
        output_relation: str,
        extend_mapping: bool = False,
    ) -> dict[str, object]:
        """Pseudonymize ``column`` of ``relation`` on the backend."""
        payload = {
            "relation": relation,
            "column": column,
            "mapping_relation": mapping_relation,
            "output_relation": output_relation,
            "extend_mapping": extend_mapping,
        }
        return self._request("POST", "/v1/pseudonymize/map", json=payload)

    def unmap_column(
        self,
        relation: str,
        column: str,
        mapping_relation: str,
        output_relation: str | None = None,
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "relation": relation,
            "column": column,
            "mapping_relation": mapping_relation,
        }
        if output_relation is not None:
            payload["output_relation"] = output_relation
        return self._request("POST", "/v1/pseudonymize/unmap", json=payload)

    def latest_metrics(self) -> dict[str, dict[str, object]]:
        latest = self._request("GET", "/v1/metrics/latest").get("latest", {})
        return latest if isinstance(latest, dict) else {}

    def metrics_history(self, run_name: str) -> list[dict[str, object]]:
        history = self._request("GET", f"/v1/metrics/history/{run_name}").get("history", [])
        return history if isinstance(history, list) else []

    def recent_logs(self, limit: int = 200, event: str | None = None) -> list[dict[str, object]]:
        params: dict[str, object] = {"limit": limit}
        if event is not None:
            params["event"] = event
        logs = self._request("GET", "/v1/logs/recent", params=params).get("logs", [])
        return logs if isinstance(logs, list) else []

    def ping(self) -> bool:
        try:
            self._request("GET", "/v1/health")
        except BackendError:
            return False
        return True

    def _request(
        self,
        method: str,
        path: str,
        json: dict[str, object] | None = None,
        params: dict[str, object] | None = None,
    ) -> dict[str, object]:
        try:
            response = self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise BackendError(str(exc)) from exc
        if response.is_error:
            error, detail = _parse_error(response)
            msg = f"Error response from backend: {response.status_code} {detail}".rstrip()
            raise BackendError(msg, response.status_code, error)
        try:
            payload = response.json()
        except ValueError:
            return {}
        if isinstance(payload, dict):
            return payload
        return {}


def _parse_error(response: httpx.Response) -> tuple[str | None, str]:
    if response.status_code == HTTPStatus.NOT_FOUND:
        fallback = f"not found: {response.request.url.path}"
    else:
        fallback = ""
    try:
        payload = response.json()
    except ValueError:
        return None, fallback
    if not isinstance(payload, dict):
        return None, fallback
    error = payload.get("error")
    detail = payload.get("detail", fallback)
    return (str(error) if error is not None else None), str(detail)


def _parse_ref(value: object) -> tuple[str, Item]:
    if isinstance(value, dict):
        return str(value.get("kind", "leaf")), value.get("ref")
    msg = f"Invalid child reference: {value!r}"
    raise ValueError(msg)


def _as_float(value: object) -> float | None:
    return float(value) if isinstance(value, (int, float)) else None


def _as_int(value: object) -> int | None:
    return int(value) if isinstance(value, (int, float)) else None

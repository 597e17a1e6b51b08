from __future__ import annotations

from dataclasses import asdict, dataclass

from fastapi import APIRouter

from linkage_api.src.services.metrics_service import metrics_service

router = APIRouter(prefix="/v1/metrics", tags=["Metrics"])


@dataclass(frozen=True, slots=True)
class MetricsResponse:
    latest: dict[str, dict[str, object]]

    def to_dict(self) -> dict[str, dict[str, dict[str, object]]]:
        return {"latest": self.latest}


@router.get("/latest", summary="Fetch latest cut metrics per run")
def get_latest_metrics() -> dict[str, dict[str, dict]]:
    """Return the latest cut metrics per run name."""
    latest = metrics_service.get_latest()
    payload = {name: asdict(record) for name, record in latest.items()}
    response = MetricsResponse(latest=payload)
    return response.to_dict()


@router.get("/history/{run_name}", summary="Fetch stored cut metrics for one run")
def get_metrics_history(run_name: str) -> dict[str, list[dict[str, object]]]:
    records = metrics_service.get_history(run_name)
    return {"history": [asdict(record) for record in records]}

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated, List, Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from linkage_api.src.models.data_models import DistanceRecord, ItemId
from linkage_api.src.models.distance_set import DistanceSet
from linkage_api.src.services.linkage_service import (
    CutResult,
    build_dendrogram,
    linkage_service,
)

router = APIRouter(prefix="/v1/linkage", tags=["Linkage"])

Method = Literal["generic", "nn_chain"]
NonEmptyStr = Annotated[str, Field(min_length=1)]


class DendrogramPayload(BaseModel):
    distances: List[DistanceRecord]
    items: List[ItemId] = []
    method: Optional[Method] = None


class CutPayload(BaseModel):
    distances: List[DistanceRecord]
    items: List[ItemId] = []
    threshold: Optional[float] = None
    run_name: NonEmptyStr = "adhoc"


class BuildRelationPayload(BaseModel):
    distance_relation: NonEmptyStr
    id_column_1: NonEmptyStr = "item_a"
    id_column_2: NonEmptyStr = "item_b"
    distance_column: NonEmptyStr = "distance"
    output_relation: NonEmptyStr


class CutRelationPayload(BaseModel):
    distance_relation: NonEmptyStr
    id_column_1: NonEmptyStr = "item_a"
    id_column_2: NonEmptyStr = "item_b"
    distance_column: NonEmptyStr = "distance"
    dendrogram_relation: NonEmptyStr
    threshold: Optional[float] = None
    output_relation: NonEmptyStr


class LinkageConfigPayload(BaseModel):
    method: Optional[Method] = None
    allow_degenerate: Optional[bool] = None


def _cut_response(result: CutResult) -> dict:
    return {
        "clusters": [cluster.model_dump() for cluster in result.clusters],
        "summary": result.summary.model_dump(),
        "metrics": asdict(result.metrics) if result.metrics is not None else None,
    }


@router.post("/dendrogram", summary="Build a complete-linkage dendrogram")
def build(payload: DendrogramPayload):
    distances = DistanceSet.from_records(payload.distances, items=payload.items)
    config = linkage_service.get_config()
    dendrogram = build_dendrogram(
        distances,
        method=payload.method or config["method"],
        allow_degenerate=config["allow_degenerate"],
    )
    return {
        "items": list(dendrogram.items),
        "root_height": dendrogram.root_height,
        "merges": [event.model_dump() for event in dendrogram.to_events()],
    }


@router.post("/cut", summary="Build a dendrogram and cut it into flat clusters")
def cut(payload: CutPayload):
    result = linkage_service.cut_from_records(
        payload.distances,
        payload.threshold,
        items=payload.items,
        run_name=payload.run_name,
    )
    return _cut_response(result)


@router.post("/relations/build", summary="Build a dendrogram relation from a distance relation")
def build_relation(payload: BuildRelationPayload):
    dendrogram = linkage_service.build_relation(
        payload.distance_relation,
        payload.id_column_1,
        payload.id_column_2,
        payload.distance_column,
        output_relation=payload.output_relation,
    )
    return {
        "output_relation": payload.output_relation,
        "n_items": dendrogram.n_items,
        "n_merges": len(dendrogram.merges),
        "root_height": dendrogram.root_height,
    }


@router.post("/relations/cut", summary="Cut a dendrogram relation into a cluster relation")
def cut_relation(payload: CutRelationPayload):
    result = linkage_service.cut_relation(
        payload.distance_relation,
        payload.id_column_1,
        payload.id_column_2,
        payload.distance_column,
        dendrogram_relation=payload.dendrogram_relation,
        threshold=payload.threshold,
        output_relation=payload.output_relation,
    )
    return {"output_relation": payload.output_relation, **_cut_response(result)}


@router.post("/configure", summary="Update linkage defaults")
def configure_linkage(payload: LinkageConfigPayload):
    updated = linkage_service.configure(**payload.model_dump(exclude_none=True))
    return {"message": "Linkage configuration updated", "config": updated}


@router.get("/config", summary="Get current linkage configuration")
def get_linkage_config():
    return linkage_service.get_config()

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from linkage_api.src.config import config
from linkage_api.src.services.pseudonymize_service import Pseudonymizer
from linkage_api.src.services.relation_store import relation_store

router = APIRouter(prefix="/v1/pseudonymize", tags=["Pseudonymize"])
NonEmptyStr = Annotated[str, Field(min_length=1)]

pseudonymizer = Pseudonymizer(
    hash_length=config.pseudonymize.hash_length,
    max_retries=config.pseudonymize.max_retries,
    secret=config.pseudonymize.secret,
)


class MapPayload(BaseModel):
    relation: NonEmptyStr
    column: NonEmptyStr
    mapping_relation: NonEmptyStr
    output_relation: NonEmptyStr
    extend_mapping: bool = False


class UnmapPayload(BaseModel):
    relation: NonEmptyStr
    column: NonEmptyStr
    mapping_relation: NonEmptyStr
    output_relation: Optional[NonEmptyStr] = None


@router.post("/map", summary="Replace a column by collision-free pseudonyms")
def map_column(payload: MapPayload):
    frame = relation_store.read(payload.relation)
    existing = None
    if payload.extend_mapping and relation_store.exists(payload.mapping_relation):
        existing = relation_store.read(payload.mapping_relation)
    mapped, mapping = pseudonymizer.map_column(frame, payload.column, existing)
    relation_store.write(payload.output_relation, mapped)
    relation_store.write(payload.mapping_relation, mapping)
    return {
        "output_relation": payload.output_relation,
        "mapping_relation": payload.mapping_relation,
        "distinct_values": len(mapping),
    }


@router.post("/unmap", summary="Restore a pseudonymized column")
def unmap_column(payload: UnmapPayload):
    frame = relation_store.read(payload.relation)
    mapping = relation_store.read(payload.mapping_relation)
    restored = pseudonymizer.unmap_column(frame, payload.column, mapping)
    target = payload.output_relation or payload.relation
    relation_store.write(target, restored)
    return {"output_relation": target, "rows": len(restored)}

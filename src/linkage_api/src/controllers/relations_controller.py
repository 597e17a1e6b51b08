from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd
from fastapi import APIRouter
from pydantic import BaseModel

from linkage_api.src.services.relation_store import relation_store

router = APIRouter(prefix="/v1/relations", tags=["Relations"])


class RelationPayload(BaseModel):
    rows: List[Dict[str, Any]]


@router.get("", summary="List stored relations")
def list_relations():
    return {"relations": relation_store.names()}


@router.put("/{name}", summary="Store a relation from rows")
def put_relation(name: str, payload: RelationPayload):
    relation_store.write(name, pd.DataFrame(payload.rows))
    return {"message": f"Relation {name} stored", "rows": len(payload.rows)}


@router.get("/{name}", summary="Fetch the rows of a relation")
def get_relation(name: str):
    frame = relation_store.read(name)
    frame = frame.astype(object).where(frame.notna(), None)
    return {"name": name, "rows": frame.to_dict(orient="records")}


@router.delete("/{name}", summary="Drop a relation")
def drop_relation(name: str):
    relation_store.drop(name)
    return {"message": f"Relation {name} dropped"}

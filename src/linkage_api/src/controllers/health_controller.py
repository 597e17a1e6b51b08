from fastapi import APIRouter

from linkage_api.src.config import config
from linkage_api.src.services.relation_store import relation_store

health_api = APIRouter(prefix="/v1/health", tags=["Health"])

@health_api.get("")
def health():
    return {
        "status": "ok",
        "version": config.version,
        "relations": len(relation_store.names()),
    }

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Query

from linkage_api.src.utils.logging_utils import get_recent_logs

router = APIRouter(prefix="/v1/logs", tags=["Logs"])


@router.get("/recent", summary="Fetch recent engine logs")
def recent_logs(
    limit: Annotated[int, Query(ge=1, le=1000)] = 200,
    event: Optional[str] = None,
) -> dict[str, list[dict[str, object]]]:
    """Return recent log records, optionally only those bound to ``event``."""
    logs = get_recent_logs(1000 if event else limit)
    if event:
        logs = [entry for entry in logs if entry.get("event") == event][-limit:]
    return {"logs": logs}

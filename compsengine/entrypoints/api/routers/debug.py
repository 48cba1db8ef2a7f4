# compsengine/entrypoints/api/routers/debug.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from ..deps import require_api_key
from ....config import settings
from ....service_layer.comparables import reset_global_stats, snapshot_global_stats

router = APIRouter(tags=["debug"])


@router.get("/debug/comparables/stats", dependencies=[Depends(require_api_key)])
def debug_comparables_stats(reset: bool = Query(default=False)) -> dict[str, Any]:
    snap = snapshot_global_stats()
    if reset:
        reset_global_stats()
    return {"comparables_cache": snap}


@router.get("/debug/config", dependencies=[Depends(require_api_key)])
def debug_config() -> dict[str, Any]:
    """
    Reads the *running server's* settings. Secrets are redacted.
    """
    def _redact(v: str | None) -> str | None:
        if not v:
            return v
        if len(v) <= 8:
            return "***"
        return v[:4] + "***" + v[-4:]

    return {
        "ENV": settings.ENV,
        "COMPS_DB_URL": settings.COMPS_DB_URL,
        "BATCHDATA_BASE_URL": settings.BATCHDATA_BASE_URL,
        "BATCHDATA_SANDBOX": settings.BATCHDATA_SANDBOX,
        "BATCHDATA_API_KEY": _redact(settings.BATCHDATA_API_KEY),
        "CACHE_TTL_DAYS": settings.CACHE_TTL_DAYS,
        "CACHE_STALE_DAYS": settings.CACHE_STALE_DAYS,
        "API_KEY_SET": bool(settings.API_KEY),
    }

# compsengine/entrypoints/api/routers/admin.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from ..deps import get_comparables_service, require_api_key
from ....schemas import CacheMutationResult, CacheReport
from ....service_layer.comparables import ComparablesService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_api_key)])


@router.get("/comparables-cache", response_model=CacheReport)
async def comparables_cache_report(service: ComparablesService = Depends(get_comparables_service)) -> CacheReport:
    return CacheReport(**(await service.cache_report()))


@router.delete("/comparables-cache", response_model=CacheMutationResult)
async def sweep_comparables_cache(service: ComparablesService = Depends(get_comparables_service)) -> CacheMutationResult:
    return CacheMutationResult(deleted=await service.sweep_expired())


@router.delete("/comparables-cache/{property_id}", response_model=CacheMutationResult)
async def invalidate_comparables(
    property_id: str,
    zip_code: str = Query(..., min_length=3, max_length=10),
    service: ComparablesService = Depends(get_comparables_service),
) -> CacheMutationResult:
    return CacheMutationResult(deleted=await service.invalidate(property_id, zip_code))


@router.get("/comparables-cache/{property_id}")
async def list_comparables_entries(
    property_id: str,
    zip_code: str = Query(..., min_length=3, max_length=10),
    service: ComparablesService = Depends(get_comparables_service),
) -> dict[str, Any]:
    items = await service.entries(property_id, zip_code)
    return {"count": len(items), "items": items}

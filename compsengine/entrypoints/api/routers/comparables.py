# compsengine/entrypoints/api/routers/comparables.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_comparables_service, require_api_key
from ....domain.errors import UpstreamUnavailable
from ....schemas import ComparablesRequest, ComparablesResponse
from ....service_layer.comparables import ComparablesService

router = APIRouter(tags=["comparables"])


@router.post("/comparables", response_model=ComparablesResponse, dependencies=[Depends(require_api_key)])
async def get_comparables(
    body: ComparablesRequest,
    service: ComparablesService = Depends(get_comparables_service),
) -> ComparablesResponse:
    filters = body.to_filters(service.policy.default_radius_miles)
    try:
        result = await service.get_comparables(
            body.property_id,
            body.zip_code,
            filters,
            prefer_fresh=body.prefer_fresh,
        )
    except UpstreamUnavailable as e:
        raise HTTPException(status_code=503, detail={"error": str(e), "attempts": e.attempts}) from e
    return ComparablesResponse.from_result(result)


@router.post("/comparables/refresh", response_model=ComparablesResponse, dependencies=[Depends(require_api_key)])
async def refresh_comparables(
    body: ComparablesRequest,
    service: ComparablesService = Depends(get_comparables_service),
) -> ComparablesResponse:
    filters = body.to_filters(service.policy.default_radius_miles)
    try:
        result = await service.refresh(body.property_id, body.zip_code, filters)
    except UpstreamUnavailable as e:
        raise HTTPException(status_code=503, detail={"error": str(e), "attempts": e.attempts}) from e
    return ComparablesResponse.from_result(result)

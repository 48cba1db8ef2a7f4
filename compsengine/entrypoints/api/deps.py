# compsengine/entrypoints/api/deps.py
from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from ...config import settings
from ...db import AsyncSessionLocal
from ...service_layer.comparables import ComparablesService


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY:
        if not x_api_key or x_api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")


@lru_cache(maxsize=1)
def get_comparables_service() -> ComparablesService:
    # One service (and one circuit breaker) per process
    return ComparablesService.from_settings(AsyncSessionLocal)

# compsengine/entrypoints/fastapi_app.py
from __future__ import annotations

from fastapi import FastAPI

from ..db import create_all
from .api.routers import admin, comparables, debug, health


def create_app() -> FastAPI:
    app = FastAPI(title="Comparables Engine")

    @app.on_event("startup")
    async def _startup() -> None:
        # Single place where DB tables are created in dev.
        await create_all()

    # Routers
    app.include_router(health.router)
    app.include_router(comparables.router)
    app.include_router(admin.router)
    app.include_router(debug.router)

    return app

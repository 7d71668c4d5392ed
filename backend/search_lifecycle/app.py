"""FastAPI application setup for the search lifecycle service."""

from __future__ import annotations

from fastapi import FastAPI

from search_lifecycle.api.dependencies import get_app_settings, get_database, get_orchestrator
from search_lifecycle.api.routes_admin import router as admin_router
from search_lifecycle.api.routes_collections import router as collections_router
from search_lifecycle.core.logging import configure_logging

configure_logging()

app = FastAPI(
    title="Search Lifecycle",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(collections_router, prefix="/collections", tags=["collections"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_database()
    get_orchestrator()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}

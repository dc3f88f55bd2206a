"""
Aggregate API routes for the execution service.

Usage in fxgov.main:
    from fxgov.api.routes import mount as mount_routes
    mount_routes(app)
"""

from __future__ import annotations

from fastapi import APIRouter, FastAPI

from .execution import router as execution_router
from .health import router as health_router
from .orders import router as orders_router

router = APIRouter()
router.include_router(health_router, prefix="/health", tags=["health"])
router.include_router(execution_router)
router.include_router(orders_router)


def mount(app: FastAPI | APIRouter) -> None:
    """Convenience helper to attach all aggregated routes to the app."""
    app.include_router(router)

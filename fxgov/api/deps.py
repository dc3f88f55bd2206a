"""FastAPI dependencies shared by the route modules."""

from __future__ import annotations

from typing import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from fxgov.adapters.db.postgres import get_db
from fxgov.config import Settings, settings
from fxgov.execution.oanda_client import OandaClient
from fxgov.orchestration.cache import TickCaches


def db_session() -> Iterator[Session]:
    with get_db() as session:
        yield session


def engine_settings() -> Settings:
    return settings


def broker_client() -> OandaClient:
    return OandaClient.from_settings(settings)


def tick_caches(request: Request) -> TickCaches:
    """Caches live on ``app.state`` so consecutive ticks share them."""
    caches = getattr(request.app.state, "tick_caches", None)
    if caches is None:
        caches = TickCaches()
        request.app.state.tick_caches = caches
    return caches


__all__ = ["db_session", "engine_settings", "broker_client", "tick_caches"]

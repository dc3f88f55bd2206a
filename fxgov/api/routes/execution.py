from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from fxgov.api.deps import broker_client, db_session, engine_settings, tick_caches
from fxgov.config import Settings
from fxgov.orchestration.cache import TickCaches
from fxgov.orchestration.executor import Broker, ExecutionOrchestrator
from fxgov.orchestration.types import TickRequest

router = APIRouter(prefix="/execution", tags=["execution"])


class TickPayload(BaseModel):
    force: bool = Field(False, description="Single manual-test candidate, gates skipped")
    pair: Optional[str] = Field(
        None, pattern=r"^[A-Z]{3}_[A-Z]{3}$", description="Pair for force mode (e.g., USD_CAD)"
    )
    direction: Literal["long"] = Field("long", description="The engine is long-only")
    preflight: bool = Field(False, description="Report only; no signals are generated")


def _orchestrator(
    session: Session, broker: Broker, config: Settings, caches: TickCaches
) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(session, broker, config=config, caches=caches)


@router.post("/tick")
def run_tick_endpoint(
    payload: TickPayload | None = None,
    session: Session = Depends(db_session),
    broker: Broker = Depends(broker_client),
    config: Settings = Depends(engine_settings),
    caches: TickCaches = Depends(tick_caches),
) -> Dict[str, Any]:
    """Run one governed tick and return the full decision trail."""
    payload = payload or TickPayload()
    request = TickRequest(
        force=payload.force,
        pair=payload.pair,
        direction=payload.direction,
        preflight=payload.preflight,
    )
    result = _orchestrator(session, broker, config, caches).run(request)
    return result.to_dict()


@router.get("/preflight")
def preflight_endpoint(
    session: Session = Depends(db_session),
    broker: Broker = Depends(broker_client),
    config: Settings = Depends(engine_settings),
    caches: TickCaches = Depends(tick_caches),
) -> Dict[str, Any]:
    """Governance snapshot plus the live-readiness checks; never submits."""
    result = _orchestrator(session, broker, config, caches).run(TickRequest(preflight=True))
    return result.to_dict()

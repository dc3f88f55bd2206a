from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from fxgov.api.deps import db_session
from fxgov.db.repositories.orders import OrderRepository

router = APIRouter(prefix="/orders", tags=["orders"])


class OrderRecord(BaseModel):
    id: str
    signal_id: Optional[str] = None
    idempotency_key: str
    currency_pair: str
    direction: str
    units: int
    status: str
    environment: str
    agent_id: Optional[str] = None
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    slippage_pips: Optional[float] = None
    execution_quality_score: Optional[float] = None
    gate_result: Optional[str] = None
    governance_state: Optional[str] = None
    discovery_label: Optional[str] = None
    broker_order_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


def _to_record(order: Any) -> Dict[str, Any]:
    payload = order.governance_payload or {}
    return {
        "id": order.id,
        "signal_id": order.signal_id,
        "idempotency_key": order.idempotency_key,
        "currency_pair": order.currency_pair,
        "direction": order.direction,
        "units": int(order.units or 0),
        "status": order.status,
        "environment": order.environment,
        "agent_id": order.agent_id,
        "entry_price": order.entry_price,
        "exit_price": order.exit_price,
        "slippage_pips": order.slippage_pips,
        "execution_quality_score": order.execution_quality_score,
        "gate_result": order.gate_result,
        "governance_state": payload.get("governanceState"),
        "discovery_label": payload.get("discoveryLabel"),
        "broker_order_id": order.broker_order_id,
        "error_message": order.error_message,
        "created_at": order.created_at,
    }


@router.get("/", response_model=List[OrderRecord])
def list_orders(
    limit: int = Query(50, ge=1, le=500),
    environment: Optional[str] = Query(None, pattern="^(practice|live)$"),
    session: Session = Depends(db_session),
) -> List[OrderRecord]:
    orders = OrderRepository(session).recent_orders(environment=environment, limit=limit)
    return [OrderRecord(**_to_record(order)) for order in orders]

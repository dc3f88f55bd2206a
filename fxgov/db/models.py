from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from fxgov.adapters.db.postgres import Base
from fxgov.db.mixins import TimestampMixin

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return uuid4().hex


class Order(Base, TimestampMixin):
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_env_created", "environment", "created_at"),
        Index("ix_orders_pair_status_created", "currency_pair", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    signal_id: Mapped[str] = mapped_column(String(128), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    currency_pair: Mapped[str] = mapped_column(String(16), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    units: Mapped[int] = mapped_column(Integer, nullable=False)
    filled_units: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    environment: Mapped[str] = mapped_column(String(16), nullable=False)
    agent_id: Mapped[str | None] = mapped_column(String(64))
    confidence_score: Mapped[float | None] = mapped_column(Float)

    requested_price: Mapped[float | None] = mapped_column(Float)
    entry_price: Mapped[float | None] = mapped_column(Float)
    exit_price: Mapped[float | None] = mapped_column(Float)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    slippage_pips: Mapped[float | None] = mapped_column(Float)
    fill_latency_ms: Mapped[int | None] = mapped_column(Integer)
    spread_at_entry: Mapped[float | None] = mapped_column(Float)
    execution_quality_score: Mapped[float | None] = mapped_column(Float)

    session_label: Mapped[str | None] = mapped_column(String(32))
    regime_label: Mapped[str | None] = mapped_column(String(32))
    gate_result: Mapped[str | None] = mapped_column(String(32))
    gate_reasons: Mapped[list | None] = mapped_column(JSONType)
    friction_score: Mapped[float | None] = mapped_column(Float)
    governance_payload: Mapped[dict | None] = mapped_column(JSONType)

    broker_order_id: Mapped[str | None] = mapped_column(String(64))
    broker_trade_id: Mapped[str | None] = mapped_column(String(64))
    error_message: Mapped[str | None] = mapped_column(Text)


class GateBypass(Base, TimestampMixin):
    """Time-boxed gate overrides; ``CIRCUIT_BREAKER:*`` rows halt execution."""

    __tablename__ = "gate_bypasses"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    gate_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    reason: Mapped[str | None] = mapped_column(Text)
    pair: Mapped[str | None] = mapped_column(String(16))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(64))

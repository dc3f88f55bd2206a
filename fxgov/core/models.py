from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from fxgov.core.instruments import pips_between


class OrderStatus:
    """Ledger status values."""

    SUBMITTED = "submitted"
    FILLED = "filled"
    CLOSED = "closed"
    REJECTED = "rejected"
    BLOCKED = "blocked"
    PAIR_BANNED = "pair-banned"
    PAIR_RESTRICTED = "pair-restricted"
    DISCOVERY_BLOCKED = "discovery_blocked"
    GATED = "gated"
    DEDUPED = "deduped"
    SHADOW_EVAL = "shadow_eval"
    CIRCUIT_BREAKER = "circuit_breaker"
    IDEMPOTENCY_CONFLICT = "idempotency_conflict"
    DB_ERROR = "db_error"

    EXECUTION = frozenset({FILLED, CLOSED, REJECTED})
    EXECUTED = frozenset({FILLED, CLOSED})


@dataclass(frozen=True, slots=True)
class TradeRecord:
    """
    Immutable view of one ledger row as consumed by the governance functions.

    Attributes:
        agent_id (str): Owning agent.
        pair (str): Currency pair, e.g. ``EUR_USD``.
        direction (str): ``long`` or ``short``.
        status (str): Lifecycle status.
        entry_price (Optional[float]): Fill price.
        exit_price (Optional[float]): Close price, set by the trade monitor.
        slippage_pips (Optional[float]): Fill minus requested, in pips.
        execution_quality (Optional[float]): 0-100 quality score.
        created_at (Optional[datetime]): Ledger insert time.
    """

    agent_id: str
    pair: str
    direction: str
    status: str
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    slippage_pips: Optional[float] = None
    execution_quality: Optional[float] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Any) -> "TradeRecord":
        return cls(
            agent_id=order.agent_id or "unknown",
            pair=order.currency_pair,
            direction=order.direction,
            status=order.status,
            entry_price=order.entry_price,
            exit_price=order.exit_price,
            slippage_pips=order.slippage_pips,
            execution_quality=order.execution_quality_score,
            created_at=order.created_at,
        )

    @property
    def is_execution(self) -> bool:
        return self.status in OrderStatus.EXECUTION

    @property
    def is_filled(self) -> bool:
        return self.status in OrderStatus.EXECUTED and self.entry_price is not None

    @property
    def is_closed(self) -> bool:
        return (
            self.status == OrderStatus.CLOSED
            and self.entry_price is not None
            and self.exit_price is not None
        )

    @property
    def pips(self) -> float:
        """Realised pip P&L; 0.0 unless the trade is closed."""
        if not self.is_closed:
            return 0.0
        return pips_between(self.pair, self.direction, self.entry_price, self.exit_price)


__all__ = ["OrderStatus", "TradeRecord"]

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fxgov.core.exceptions import LedgerConflictError, LedgerError
from fxgov.core.models import OrderStatus, TradeRecord
from fxgov.db import models

CIRCUIT_BREAKER_PREFIX = "CIRCUIT_BREAKER:"
NON_AGENT_IDS = ("manual-test", "unknown", "backtest-engine")


def _is_unique_violation(exc: IntegrityError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode:
        return pgcode == "23505"
    return "unique" in str(exc.orig).lower()


class OrderRepository:
    """Ledger reads and writes for the execution engine."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # Queries -----------------------------------------------------------------
    def recent_orders(
        self,
        *,
        environment: str | None = None,
        limit: int = 50,
        exclude_pairs: Iterable[str] = ("SYSTEM",),
    ) -> list[models.Order]:
        """
        Newest ledger rows for the orders endpoint.

        Args:
            environment (str | None): Restrict to one environment.
            limit (int): Row cap.
            exclude_pairs (Iterable[str]): Pairs to hide; ``SYSTEM`` rows by default.

        Returns:
            list[models.Order]: Newest first.
        """
        stmt = (
            select(models.Order).order_by(models.Order.created_at.desc()).limit(limit)
        )
        if environment:
            stmt = stmt.where(models.Order.environment == environment)
        excluded = [p for p in exclude_pairs if p]
        if excluded:
            stmt = stmt.where(models.Order.currency_pair.not_in(excluded))
        return list(self.session.scalars(stmt))

    def governance_history(self, environment: str, *, limit: int = 250) -> list[TradeRecord]:
        """
        Most-recent-first execution records feeding the rolling windows.

        Only rows that reached the broker (filled, closed, rejected) are
        loaded, so policy outcomes written by later ticks cannot push losing
        trades out of the history.

        Args:
            environment (str): ``practice`` or ``live``.
            limit (int): Row cap; must cover the widest window.

        Returns:
            list[TradeRecord]: Newest first.
        """
        stmt = (
            select(models.Order)
            .where(
                models.Order.environment == environment,
                models.Order.status.in_(sorted(OrderStatus.EXECUTION)),
                models.Order.currency_pair != "SYSTEM",
            )
            .order_by(models.Order.created_at.desc())
            .limit(limit)
        )
        return [TradeRecord.from_order(row) for row in self.session.scalars(stmt)]

    def closed_agent_history(self, since: datetime, *, limit: int = 5000) -> list[TradeRecord]:
        """Closed trades with both prices since ``since``, non-agent sources excluded."""
        stmt = (
            select(models.Order)
            .where(
                models.Order.status == OrderStatus.CLOSED,
                models.Order.entry_price.is_not(None),
                models.Order.exit_price.is_not(None),
                models.Order.created_at >= since,
                models.Order.agent_id.not_in(NON_AGENT_IDS),
            )
            .order_by(models.Order.created_at.desc())
            .limit(limit)
        )
        return [TradeRecord.from_order(row) for row in self.session.scalars(stmt)]

    def has_recent_fill(self, pair: str, since: datetime) -> bool:
        """True when ``pair`` has a ``filled`` row created at or after ``since``."""
        stmt = (
            select(models.Order.id)
            .where(
                models.Order.currency_pair == pair,
                models.Order.status == OrderStatus.FILLED,
                models.Order.created_at >= since,
            )
            .limit(1)
        )
        return self.session.scalars(stmt).first() is not None

    def count_short_executions_since(self, cutover: datetime) -> int:
        """
        Args:
            cutover (datetime): Long-only cutover timestamp.

        Returns:
            int: Filled or closed short rows created at or after ``cutover``.
        """
        stmt = select(func.count(models.Order.id)).where(
            models.Order.direction == "short",
            models.Order.status.in_(sorted(OrderStatus.EXECUTED)),
            models.Order.created_at >= cutover,
        )
        return int(self.session.scalar(stmt) or 0)

    def active_circuit_breakers(self, now: datetime) -> list[models.GateBypass]:
        """Unrevoked, unexpired ``CIRCUIT_BREAKER:`` bypass rows, newest first."""
        stmt = (
            select(models.GateBypass)
            .where(
                models.GateBypass.gate_id.like(f"{CIRCUIT_BREAKER_PREFIX}%"),
                models.GateBypass.revoked.is_(False),
                models.GateBypass.expires_at > now,
            )
            .order_by(models.GateBypass.created_at.desc())
        )
        return list(self.session.scalars(stmt))

    # Writes ------------------------------------------------------------------
    def insert_order(self, **fields: Any) -> models.Order:
        """
        Insert and commit one ledger row.

        Raises:
            LedgerConflictError: the idempotency key already exists.
            LedgerError: any other write failure.
        """
        order = models.Order(**fields)
        self.session.add(order)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if _is_unique_violation(exc):
                raise LedgerConflictError(
                    f"idempotency key already recorded: {fields.get('idempotency_key')}"
                ) from exc
            raise LedgerError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise LedgerError(str(exc)) from exc
        return order

    def update_order(self, order: models.Order, **fields: Any) -> models.Order:
        """
        Set ``fields`` on ``order`` and commit.

        Raises:
            LedgerError: The commit failed; the session is rolled back.
        """
        for key, value in fields.items():
            setattr(order, key, value)
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("ledger update failed order={} err={}", order.id, exc)
            raise LedgerError(str(exc)) from exc
        return order


__all__ = ["OrderRepository", "CIRCUIT_BREAKER_PREFIX", "NON_AGENT_IDS"]

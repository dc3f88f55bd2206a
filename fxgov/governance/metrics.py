"""Rolling execution metrics over a trailing window of ledger records."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Sequence

import numpy as np
from loguru import logger

from fxgov.core.models import OrderStatus, TradeRecord

MIN_FILLED = 3
DRIFT_MIN_READINGS = 8
DRIFT_RECENT = 5
DRIFT_FACTOR = 1.4
DEFAULT_QUALITY = 70.0


@dataclass(frozen=True)
class RollingMetrics:
    window: int
    trade_count: int
    closed_count: int
    win_rate: float
    expectancy: float
    profit_factor: float
    sharpe: float
    capture_ratio: float
    avg_quality: float
    avg_slippage: float
    rejection_rate: float
    slippage_drift: bool
    friction_adj_pnl: float
    net_pips: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def neutral_metrics(window: int, trade_count: int = 0) -> RollingMetrics:
    return RollingMetrics(
        window=window,
        trade_count=trade_count,
        closed_count=0,
        win_rate=0.5,
        expectancy=0.0,
        profit_factor=1.0,
        sharpe=0.0,
        capture_ratio=0.5,
        avg_quality=DEFAULT_QUALITY,
        avg_slippage=0.0,
        rejection_rate=0.0,
        slippage_drift=False,
        friction_adj_pnl=0.0,
        net_pips=0.0,
    )


def profit_factor(pnls: np.ndarray) -> float:
    """Gross profit over gross loss; 99 when there are no losses but some profit."""
    gross_profit = float(pnls[pnls > 0].sum()) if pnls.size else 0.0
    gross_loss = float(np.abs(pnls[pnls <= 0]).sum()) if pnls.size else 0.0
    if gross_loss > 0:
        return gross_profit / gross_loss
    return 99.0 if gross_profit > 0 else 0.0


def sharpe_ratio(pnls: np.ndarray) -> float:
    """Per-trade mean over standard deviation; a flat series divides by 1."""
    if pnls.size == 0:
        return 0.0
    std = float(pnls.std(ddof=0))
    return float(pnls.mean()) / (std if std > 0 else 1.0)


def slippage_drift(slippages: Sequence[float]) -> bool:
    """True when the 5 newest readings average >1.4x the older ones."""
    if len(slippages) < DRIFT_MIN_READINGS:
        return False
    recent = float(np.mean(slippages[:DRIFT_RECENT]))
    older = float(np.mean(slippages[DRIFT_RECENT:]))
    return older > 0 and recent > older * DRIFT_FACTOR


def compute_rolling_metrics(records: Sequence[TradeRecord], window: int) -> RollingMetrics:
    """
    Metrics over the ``window`` most recent execution records.

    ``records`` must be most-recent-first. Execution records are those that
    reached the broker (filled, closed or rejected); policy outcomes such as
    ``gated`` never enter a window. Fewer than 3 filled records yield neutral
    defaults.
    """
    in_window = [r for r in records if r.status in OrderStatus.EXECUTION][:window]
    filled = [r for r in in_window if r.is_filled]
    closed = [r for r in in_window if r.is_closed]
    rejected = [r for r in in_window if r.status == OrderStatus.REJECTED]

    if len(filled) < MIN_FILLED:
        return neutral_metrics(window, trade_count=len(filled))

    pnls = np.array([r.pips for r in closed], dtype=float)
    wins = int((pnls > 0).sum())
    net = float(pnls.sum()) if pnls.size else 0.0
    win_rate = wins / len(closed) if closed else 0.5
    expectancy = net / len(closed) if closed else 0.0

    qualities = [r.execution_quality for r in filled if r.execution_quality is not None]
    slippages = [r.slippage_pips for r in filled if r.slippage_pips is not None]
    avg_quality = float(np.mean(qualities)) if qualities else DEFAULT_QUALITY
    avg_slippage = float(np.mean(slippages)) if slippages else 0.0

    meaningful = len(filled) + len(rejected)
    rejection_rate = len(rejected) / meaningful if meaningful else 0.0
    if win_rate > 0:
        capture = min(0.95, win_rate * 0.8 + (avg_quality / 100.0) * 0.2)
    else:
        capture = 0.3

    metrics = RollingMetrics(
        window=window,
        trade_count=len(filled),
        closed_count=len(closed),
        win_rate=win_rate,
        expectancy=expectancy,
        profit_factor=profit_factor(pnls),
        sharpe=sharpe_ratio(pnls),
        capture_ratio=capture,
        avg_quality=avg_quality,
        avg_slippage=avg_slippage,
        rejection_rate=rejection_rate,
        slippage_drift=slippage_drift(slippages),
        friction_adj_pnl=net - float(sum(slippages)),
        net_pips=net,
    )
    logger.debug(
        "[metrics] w={} n={} closed={} wr={:.2f} exp={:.2f} rej={:.2f} drift={}",
        window,
        metrics.trade_count,
        metrics.closed_count,
        metrics.win_rate,
        metrics.expectancy,
        metrics.rejection_rate,
        metrics.slippage_drift,
    )
    return metrics


__all__ = [
    "RollingMetrics",
    "compute_rolling_metrics",
    "neutral_metrics",
    "profit_factor",
    "sharpe_ratio",
    "slippage_drift",
]

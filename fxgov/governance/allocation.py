"""Per-pair capital allocation from closed-trade history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Sequence

import numpy as np
from loguru import logger

from fxgov.core.instruments import ALL_PAIRS, PRIMARY_PAIR
from fxgov.core.models import TradeRecord
from fxgov.governance.metrics import DEFAULT_QUALITY, sharpe_ratio


@dataclass(frozen=True)
class PairAllocation:
    pair: str
    closed_count: int = 0
    win_rate: float = 0.5
    expectancy: float = 0.0
    sharpe: float = 0.0
    avg_quality: float = DEFAULT_QUALITY
    net_pips: float = 0.0
    banned: bool = False
    restricted: bool = False
    capital_multiplier: float = 1.0

    def __post_init__(self) -> None:
        if self.banned and self.capital_multiplier != 0.0:
            raise ValueError(f"banned pair {self.pair} must carry a zero multiplier")

    @property
    def promoted(self) -> bool:
        return self.capital_multiplier > 1.0


def capital_multiplier(
    *, banned: bool, restricted: bool, sharpe: float, win_rate: float, expectancy: float
) -> float:
    if banned:
        return 0.0
    if restricted:
        return 0.5
    if sharpe > 1.5 and win_rate > 0.65:
        return 1.5
    if sharpe > 1.0 and win_rate > 0.55:
        return 1.25
    if expectancy < 0:
        return 0.7
    return 1.0


def compute_pair_allocation(
    records: Sequence[TradeRecord],
    pair: str,
    *,
    protected_pairs: Iterable[str] = (PRIMARY_PAIR,),
) -> PairAllocation:
    """
    Ban, restrict or scale one pair from its closed trades.

    Args:
        records (Sequence[TradeRecord]): Execution history, any pairs.
        pair (str): Pair to allocate.
        protected_pairs (Iterable[str]): Pairs that are never banned or restricted.

    Returns:
        PairAllocation: Neutral (×1.0) with fewer than 2 closed trades.
    """
    pair_records = [r for r in records if r.pair == pair]
    closed = [r for r in pair_records if r.is_closed]
    filled = [r for r in pair_records if r.is_filled]
    if len(closed) < 2:
        return PairAllocation(pair=pair, closed_count=len(closed))

    pnls = np.array([r.pips for r in closed], dtype=float)
    win_rate = float((pnls > 0).sum()) / len(closed)
    net = float(pnls.sum())
    expectancy = net / len(closed)
    sharpe = sharpe_ratio(pnls)
    qualities = [r.execution_quality for r in filled if r.execution_quality is not None]
    avg_quality = float(np.mean(qualities)) if qualities else DEFAULT_QUALITY

    protected = pair in set(protected_pairs)
    banned = not protected and len(closed) >= 5 and (expectancy < -2 or win_rate < 0.30)
    restricted = (
        not protected
        and not banned
        and len(closed) >= 3
        and (expectancy < -0.5 or win_rate < 0.40 or avg_quality < 40)
    )
    return PairAllocation(
        pair=pair,
        closed_count=len(closed),
        win_rate=win_rate,
        expectancy=expectancy,
        sharpe=sharpe,
        avg_quality=avg_quality,
        net_pips=net,
        banned=banned,
        restricted=restricted,
        capital_multiplier=capital_multiplier(
            banned=banned,
            restricted=restricted,
            sharpe=sharpe,
            win_rate=win_rate,
            expectancy=expectancy,
        ),
    )


def compute_all_pair_allocations(
    records: Sequence[TradeRecord],
    *,
    pairs: Iterable[str] = ALL_PAIRS,
    protected_pairs: Iterable[str] = (PRIMARY_PAIR,),
) -> Dict[str, PairAllocation]:
    """Allocation for every pair in ``pairs``."""
    protected = tuple(protected_pairs)
    allocations = {
        pair: compute_pair_allocation(records, pair, protected_pairs=protected)
        for pair in pairs
    }
    banned = [p for p, a in allocations.items() if a.banned]
    if banned:
        logger.info("[allocation] banned pairs: {}", ", ".join(banned))
    return allocations


__all__ = [
    "PairAllocation",
    "capital_multiplier",
    "compute_pair_allocation",
    "compute_all_pair_allocations",
]

"""Position sizing: risk budget per trade scaled by the governance multipliers."""

from __future__ import annotations

import math
from dataclasses import dataclass

from loguru import logger

from fxgov.core.instruments import (
    SECONDARY_DEPLOYMENT_RANGE,
    SECONDARY_FOCUS_SESSIONS,
    SECONDARY_OFF_SESSION_CAP,
    atr_multiplier,
    is_jpy,
)

MIN_UNITS = 500
MAX_UNITS = 5000
BASE_RISK_PCT = 0.005
CONFIDENCE_ANCHOR = 80.0
STOP_PIPS = 8.0


@dataclass(frozen=True)
class SizingMultipliers:
    governance: float = 1.0
    pair: float = 1.0
    session: float = 1.0
    agent: float = 1.0
    discovery: float = 1.0

    @property
    def product(self) -> float:
        return self.governance * self.pair * self.session * self.agent * self.discovery


def pip_value_per_unit(pair: str) -> float:
    return 0.0067 if is_jpy(pair) else 0.0001


def raw_units(pair: str, balance: float, confidence: float) -> float:
    """Units whose 8 x ATR-multiplier pip stop risks 0.5% x confidence/80 of balance."""
    risk_amount = balance * BASE_RISK_PCT * (confidence / CONFIDENCE_ANCHOR)
    stop_pips = STOP_PIPS * atr_multiplier(pair)
    return risk_amount / (stop_pips * pip_value_per_unit(pair))


def clamp_units(units: float) -> int:
    if not math.isfinite(units) or units <= 0:
        return MIN_UNITS
    return int(max(MIN_UNITS, min(MAX_UNITS, math.floor(units))))


def compute_position_size(
    pair: str,
    balance: float,
    confidence: float,
    multipliers: SizingMultipliers,
) -> int:
    """
    Units for one order.

    Args:
        pair (str): Instrument; sets the ATR stop and pip value.
        balance (float): Account balance.
        confidence (float): Signal confidence, 0 to 100.
        multipliers (SizingMultipliers): Governance, pair, session, agent and discovery scales.

    Returns:
        int: Floored units, always within [500, 5000].
    """
    units = clamp_units(raw_units(pair, balance, confidence) * multipliers.product)
    logger.debug(
        "Position size computed: pair={} balance={:.2f} conf={:.1f} mult={:.4f} units={}",
        pair,
        balance,
        confidence,
        multipliers.product,
        units,
    )
    return units


def secondary_pair_multiplier(
    pair_multiplier: float, session: str, closed_count: int, expectancy: float
) -> float:
    """
    Pair multiplier for a secondary focus pair after session and performance cuts.

    Args:
        pair_multiplier (float): Allocation multiplier from the rolling history.
        session (str): Current trading session.
        closed_count (int): Closed trades on the pair in the allocation window.
        expectancy (float): Average pips per closed trade on the pair.

    Returns:
        float: At most 0.4 outside london-open/ny-overlap; 0.25 for a pair with
        5+ trades and expectancy below -1 pip; at most 0.5 for 5+ trades with
        negative expectancy.
    """
    mult = pair_multiplier
    if session not in SECONDARY_FOCUS_SESSIONS:
        mult = min(mult, SECONDARY_OFF_SESSION_CAP)
    if closed_count >= 5 and expectancy < -1.0:
        mult = min(mult, 0.25)
    elif closed_count >= 5 and expectancy < 0:
        mult = min(mult, 0.5)
    if mult != pair_multiplier:
        logger.info(
            "secondary pair downgrade: session={} trades={} exp={:.2f} mult {:.2f} -> {:.2f}",
            session,
            closed_count,
            expectancy,
            pair_multiplier,
            mult,
        )
    return mult


def secondary_deployment_multiplier(discovery_multiplier: float, cap: float) -> float:
    """Discovery multiplier clamped to the secondary deployment cap; a blocked 0 stays 0."""
    low, high = SECONDARY_DEPLOYMENT_RANGE
    if not low <= cap <= high:
        raise ValueError(f"secondary deployment cap {cap} outside {low}-{high}")
    return min(discovery_multiplier, cap)


__all__ = [
    "SizingMultipliers",
    "compute_position_size",
    "raw_units",
    "clamp_units",
    "pip_value_per_unit",
    "secondary_pair_multiplier",
    "secondary_deployment_multiplier",
    "MIN_UNITS",
    "MAX_UNITS",
]

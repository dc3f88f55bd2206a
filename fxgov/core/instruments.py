"""Currency-pair reference data."""

from __future__ import annotations

from typing import Dict, Tuple

PRIMARY_PAIR = "USD_CAD"
SECONDARY_FOCUS_PAIRS: Tuple[str, ...] = ("AUD_USD", "EUR_USD", "EUR_GBP")
SECONDARY_FOCUS_SESSIONS: Tuple[str, ...] = ("london-open", "ny-overlap")
SECONDARY_OFF_SESSION_CAP = 0.4
SECONDARY_DEPLOYMENT_RANGE: Tuple[float, float] = (0.6, 0.8)

SCALP_PAIRS: Tuple[str, ...] = (
    "EUR_USD",
    "GBP_USD",
    "USD_JPY",
    "AUD_USD",
    "USD_CAD",
    "EUR_JPY",
    "GBP_JPY",
    "EUR_GBP",
)
SECONDARY_PAIRS: Tuple[str, ...] = (
    "NZD_USD",
    "AUD_JPY",
    "USD_CHF",
    "EUR_CHF",
    "EUR_AUD",
    "GBP_AUD",
    "AUD_NZD",
)
ALL_PAIRS: Tuple[str, ...] = SCALP_PAIRS + SECONDARY_PAIRS

PAIR_ATR_MULT: Dict[str, float] = {
    "EUR_USD": 1.0,
    "GBP_USD": 1.35,
    "USD_JPY": 1.1,
    "AUD_USD": 0.95,
    "USD_CAD": 0.9,
    "EUR_JPY": 1.4,
    "GBP_JPY": 1.8,
    "EUR_GBP": 0.7,
    "NZD_USD": 0.85,
    "AUD_JPY": 1.2,
    "USD_CHF": 0.8,
    "EUR_CHF": 0.65,
    "EUR_AUD": 1.3,
    "GBP_AUD": 1.7,
    "AUD_NZD": 0.75,
}

# typical spread in pips
PAIR_BASE_SPREADS: Dict[str, float] = {
    "EUR_USD": 0.6,
    "GBP_USD": 0.9,
    "USD_JPY": 0.7,
    "AUD_USD": 0.8,
    "USD_CAD": 1.0,
    "EUR_JPY": 1.1,
    "GBP_JPY": 1.5,
    "EUR_GBP": 0.8,
    "NZD_USD": 1.2,
    "AUD_JPY": 1.3,
    "USD_CHF": 1.0,
    "EUR_CHF": 1.2,
    "EUR_AUD": 1.6,
    "GBP_AUD": 2.0,
    "AUD_NZD": 1.8,
}
DEFAULT_BASE_SPREAD = 1.5


def is_jpy(pair: str) -> bool:
    return "JPY" in pair


def pip_divisor(pair: str) -> float:
    """Price units per pip: 0.01 for JPY-quoted pairs, else 0.0001."""
    return 0.01 if is_jpy(pair) else 0.0001


def atr_multiplier(pair: str) -> float:
    return PAIR_ATR_MULT.get(pair, 1.0)


def base_spread(pair: str) -> float:
    return PAIR_BASE_SPREADS.get(pair, DEFAULT_BASE_SPREAD)


def pips_between(pair: str, direction: str, entry: float, exit_: float) -> float:
    """Signed pip P&L; the sign flips for shorts."""
    move = (exit_ - entry) / pip_divisor(pair)
    return -move if direction == "short" else move


__all__ = [
    "PRIMARY_PAIR",
    "SECONDARY_FOCUS_PAIRS",
    "SECONDARY_FOCUS_SESSIONS",
    "SECONDARY_OFF_SESSION_CAP",
    "SECONDARY_DEPLOYMENT_RANGE",
    "SCALP_PAIRS",
    "SECONDARY_PAIRS",
    "ALL_PAIRS",
    "PAIR_ATR_MULT",
    "PAIR_BASE_SPREADS",
    "is_jpy",
    "pip_divisor",
    "atr_multiplier",
    "base_spread",
    "pips_between",
]

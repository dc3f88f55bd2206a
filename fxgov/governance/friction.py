"""Admission gate: expected move must cover expected friction K times over."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from fxgov.core.instruments import base_spread
from fxgov.governance.sessions import LONDON_OPEN, NY_OVERLAP, ROLLOVER, SessionBudget

SLIPPAGE_PIPS = 0.15
LATENCY_PIPS = 0.05
SPREAD_VOL_FRACTION = 0.25
SESSION_MOVE_SCALE: Dict[str, float] = {LONDON_OPEN: 1.3, NY_OVERLAP: 1.15}
OTHER_SESSION_MOVE_SCALE = 0.85


@dataclass(frozen=True)
class GateResult:
    passed: bool
    result: str
    friction_score: int
    expected_move: float
    total_friction: float
    friction_ratio: float
    reasons: List[str] = field(default_factory=list)


def volatility_class(spread: float) -> float:
    """Typical move in pips, bucketed by how tight the pair trades."""
    if spread < 0.9:
        return 12.0
    if spread < 1.3:
        return 9.0
    return 7.0


def expected_friction(pair: str, budget: SessionBudget) -> float:
    spread_mean = base_spread(pair) * budget.friction_multiplier
    return spread_mean + spread_mean * SPREAD_VOL_FRACTION + SLIPPAGE_PIPS + LATENCY_PIPS


def expected_move(pair: str, session: str) -> float:
    scale = SESSION_MOVE_SCALE.get(session, OTHER_SESSION_MOVE_SCALE)
    return volatility_class(base_spread(pair)) * scale


def evaluate_ratio(
    ratio: float,
    k: float,
    *,
    session: str,
    spread_mean: float,
    baseline: float,
    expected: float = 0.0,
    friction: float = 0.0,
) -> GateResult:
    """Apply the threshold; ``ratio == k`` passes."""
    passed = ratio >= k
    reasons: List[str] = []
    if not passed:
        reasons.append(f"Friction ratio {ratio:.2f}x < required {k:.1f}x")
        if session == ROLLOVER:
            reasons.append("Rollover window: reduced liquidity, throttled")
    if spread_mean > baseline * 1.8:
        reasons.append(f"Spread widened {spread_mean / baseline:.1f}x vs baseline")

    score = min(
        100,
        (40 if passed else 0)
        + (10 if session == ROLLOVER else 25)
        + (20 if spread_mean <= baseline * 1.3 else 0)
        + 15,
    )
    return GateResult(
        passed=passed,
        result="PASS" if passed else "THROTTLE",
        friction_score=int(score),
        expected_move=expected,
        total_friction=friction,
        friction_ratio=ratio,
        reasons=reasons,
    )


def run_friction_gate(pair: str, budget: SessionBudget, k: float) -> GateResult:
    """
    Expected move over expected friction, compared against ``k``.

    Args:
        pair (str): Instrument.
        budget (SessionBudget): Current session budget (friction multiplier).
        k (float): Minimum ratio for the governance state; inclusive.

    Returns:
        GateResult: Pass flag, score and the figures behind it.
    """
    baseline = base_spread(pair)
    friction = expected_friction(pair, budget)
    move = expected_move(pair, budget.session)
    return evaluate_ratio(
        move / friction,
        k,
        session=budget.session,
        spread_mean=baseline * budget.friction_multiplier,
        baseline=baseline,
        expected=move,
        friction=friction,
    )


__all__ = [
    "GateResult",
    "run_friction_gate",
    "evaluate_ratio",
    "expected_friction",
    "expected_move",
    "volatility_class",
]

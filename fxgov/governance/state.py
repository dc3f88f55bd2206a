"""System-wide governance state derived from the 20/50/200 rolling windows."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping

from loguru import logger

from fxgov.governance.metrics import RollingMetrics


class GovernanceState(str, Enum):
    NORMAL = "NORMAL"
    DEFENSIVE = "DEFENSIVE"
    THROTTLED = "THROTTLED"
    HALT = "HALT"


@dataclass(frozen=True)
class GovernanceStateConfig:
    density_multiplier: float
    sizing_multiplier: float
    friction_k: float
    pair_restriction: str
    session_aggressiveness: Mapping[str, float]
    recovery_required: tuple = ()

    def aggressiveness(self, session: str) -> float:
        return float(self.session_aggressiveness.get(session, 0.0))

    def to_dict(self) -> Dict[str, object]:
        return {
            "densityMultiplier": self.density_multiplier,
            "sizingMultiplier": self.sizing_multiplier,
            "frictionK": self.friction_k,
            "pairRestriction": self.pair_restriction,
            "sessionAggressiveness": dict(self.session_aggressiveness),
            "recoveryRequired": list(self.recovery_required),
        }


STATE_CONFIGS: Dict[GovernanceState, GovernanceStateConfig] = {
    GovernanceState.NORMAL: GovernanceStateConfig(
        density_multiplier=1.0,
        sizing_multiplier=1.0,
        friction_k=3.0,
        pair_restriction="none",
        session_aggressiveness={
            "asian": 0.85,
            "london-open": 1.0,
            "ny-overlap": 1.0,
            "late-ny": 0.65,
            "rollover": 0.5,
        },
    ),
    GovernanceState.DEFENSIVE: GovernanceStateConfig(
        density_multiplier=0.65,
        sizing_multiplier=0.75,
        friction_k=3.8,
        pair_restriction="majors-only",
        session_aggressiveness={
            "asian": 0.4,
            "london-open": 0.85,
            "ny-overlap": 0.8,
            "late-ny": 0.3,
            "rollover": 0.0,
        },
        recovery_required=(
            "expectancy > 0.5 over 20 trades",
            "win rate > 55%",
            "capture ratio > 0.40",
        ),
    ),
    GovernanceState.THROTTLED: GovernanceStateConfig(
        density_multiplier=0.30,
        sizing_multiplier=0.50,
        friction_k=4.5,
        pair_restriction="top-performers",
        session_aggressiveness={
            "asian": 0.0,
            "london-open": 0.6,
            "ny-overlap": 0.5,
            "late-ny": 0.0,
            "rollover": 0.0,
        },
        recovery_required=(
            "expectancy > 0.8 over 30 trades",
            "win rate > 60%",
            "no slippage drift",
        ),
    ),
    GovernanceState.HALT: GovernanceStateConfig(
        density_multiplier=0.15,
        sizing_multiplier=0.35,
        friction_k=10.0,
        pair_restriction="top-performers",
        session_aggressiveness={
            "asian": 0.0,
            "london-open": 0.3,
            "ny-overlap": 0.25,
            "late-ny": 0.0,
            "rollover": 0.0,
        },
        recovery_required=(
            "rolling windows clear all HALT triggers",
            "shadow evaluation continues until then",
        ),
    ),
}


@dataclass(frozen=True)
class GovernanceDecision:
    state: GovernanceState
    reasons: List[str] = field(default_factory=list)

    @property
    def config(self) -> GovernanceStateConfig:
        return STATE_CONFIGS[self.state]

    @property
    def allows_live_submission(self) -> bool:
        return self.state is not GovernanceState.HALT


def _pct(value: float) -> str:
    return f"{value * 100:.0f}%"


def _halt_reasons(m20: RollingMetrics, m50: RollingMetrics) -> List[str]:
    if m20.trade_count >= 5 and m20.win_rate < 0.35 and m20.expectancy < -2:
        return [f"HALT: 20-trade WR {_pct(m20.win_rate)} < 35% with expectancy {m20.expectancy:.2f}p"]
    if m50.trade_count >= 10 and m50.friction_adj_pnl < -50:
        return [f"HALT: 50-trade friction-adj P&L {m50.friction_adj_pnl:.1f}p < -50p"]
    if m20.rejection_rate > 0.6 and m20.avg_quality < 35:
        return [
            f"HALT: rejection rate {_pct(m20.rejection_rate)} with quality {m20.avg_quality:.0f}"
        ]
    return []


def _throttle_reasons(m20: RollingMetrics, m50: RollingMetrics) -> List[str]:
    reasons = []
    if m20.trade_count >= 5 and m20.win_rate < 0.45:
        reasons.append(f"THROTTLE: 20-trade WR {_pct(m20.win_rate)} < 45%")
    if m50.trade_count >= 10 and m50.expectancy < -0.5:
        reasons.append(f"THROTTLE: 50-trade expectancy {m50.expectancy:.2f}p < -0.5")
    if m20.slippage_drift and m20.avg_quality < 50:
        reasons.append(f"THROTTLE: slippage drift with quality {m20.avg_quality:.0f} < 50")
    if m20.trade_count >= 5 and m20.capture_ratio < 0.30:
        reasons.append(f"THROTTLE: capture ratio {_pct(m20.capture_ratio)} < 30%")
    return reasons


def _defensive_reasons(
    m20: RollingMetrics, m50: RollingMetrics, m200: RollingMetrics
) -> List[str]:
    reasons = []
    if m20.trade_count >= 5 and m20.win_rate < 0.55:
        reasons.append(f"DEFENSIVE: 20-trade WR {_pct(m20.win_rate)} < 55%")
    if m50.trade_count >= 10 and m50.expectancy < 0.5:
        reasons.append(f"DEFENSIVE: 50-trade expectancy {m50.expectancy:.2f}p < 0.5")
    if m20.rejection_rate > 0.25:
        reasons.append(f"DEFENSIVE: rejection rate {_pct(m20.rejection_rate)} > 25%")
    if m20.slippage_drift:
        reasons.append("DEFENSIVE: slippage drift detected")
    if m200.trade_count >= 20 and m200.capture_ratio < 0.40:
        reasons.append(f"DEFENSIVE: 200-trade capture ratio {_pct(m200.capture_ratio)} < 40%")
    return reasons


def determine_governance_state(
    m20: RollingMetrics, m50: RollingMetrics, m200: RollingMetrics
) -> GovernanceDecision:
    """
    Classify the system state from the rolling windows.

    Checks run HALT, THROTTLED, DEFENSIVE, then NORMAL; the first match wins
    and the result depends only on the three windows.

    Args:
        m20 (RollingMetrics): 20-record window.
        m50 (RollingMetrics): 50-record window.
        m200 (RollingMetrics): 200-record window.

    Returns:
        GovernanceDecision: State plus the human-readable trigger reasons.
    """
    reasons = _halt_reasons(m20, m50)
    if reasons:
        decision = GovernanceDecision(GovernanceState.HALT, reasons)
    elif reasons := _throttle_reasons(m20, m50):
        decision = GovernanceDecision(GovernanceState.THROTTLED, reasons)
    elif reasons := _defensive_reasons(m20, m50, m200):
        decision = GovernanceDecision(GovernanceState.DEFENSIVE, reasons)
    else:
        decision = GovernanceDecision(GovernanceState.NORMAL, ["All metrics nominal"])
    logger.info(
        "[governance] state={} reasons={}", decision.state.value, " | ".join(decision.reasons)
    )
    return decision


__all__ = [
    "GovernanceState",
    "GovernanceStateConfig",
    "GovernanceDecision",
    "STATE_CONFIGS",
    "determine_governance_state",
]

"""Agent tier resolution: aggregate stats -> effective tier, deployment state, size."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from loguru import logger

from fxgov.core.models import TradeRecord

EXECUTABLE_TIERS = frozenset({"A", "B-Rescued", "B-Promotable"})
EXECUTABLE_STATES = frozenset({"deploy", "reduced"})
BLOCK_SHORT = "block_direction:short"
IGNORED_AGENTS = frozenset({"manual-test", "unknown", "backtest-engine"})


@dataclass
class AgentStats:
    """Running totals for one agent over closed trades."""

    agent_id: str
    total_trades: int = 0
    win_count: int = 0
    net_pips: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    long_count: int = 0
    long_wins: int = 0
    long_net: float = 0.0
    long_gross_profit: float = 0.0
    long_gross_loss: float = 0.0
    short_count: int = 0
    short_wins: int = 0
    short_net: float = 0.0

    def add(self, direction: str, pips: float) -> None:
        self.total_trades += 1
        self.net_pips += pips
        if pips > 0:
            self.win_count += 1
            self.gross_profit += pips
        else:
            self.gross_loss += abs(pips)
        if direction == "short":
            self.short_count += 1
            self.short_net += pips
            if pips > 0:
                self.short_wins += 1
        else:
            self.long_count += 1
            self.long_net += pips
            if pips > 0:
                self.long_wins += 1
                self.long_gross_profit += pips
            else:
                self.long_gross_loss += abs(pips)


@dataclass(frozen=True)
class DisplayMetrics:
    total_trades: int
    win_rate: float
    expectancy: float
    profit_factor: float
    net_pips: float


@dataclass(frozen=True)
class AgentSnapshot:
    agent_id: str
    raw_tier: str
    effective_tier: str
    deployment_state: str
    size_multiplier: float
    fleet_set: str
    can_execute: bool
    constraints: tuple
    metrics: DisplayMetrics

    @property
    def score(self) -> float:
        """Draw weight; never below 0.01 so every eligible agent stays reachable."""
        m = self.metrics
        return max(0.01, m.expectancy * m.profit_factor * self.size_multiplier)


@dataclass(frozen=True)
class CoalitionRequirement:
    tier: str
    min_agents: int
    survivorship_score: int
    rolling_pf: float
    expectancy_slope: float
    stability_trend: str
    reasons: tuple


@dataclass
class AgentRoster:
    agents: List[AgentSnapshot] = field(default_factory=list)
    coalition: CoalitionRequirement | None = None

    @property
    def eligible(self) -> List[AgentSnapshot]:
        return [a for a in self.agents if a.can_execute]

    @property
    def eligible_count(self) -> int:
        return len(self.eligible)

    @property
    def shadow_count(self) -> int:
        return sum(1 for a in self.agents if a.deployment_state == "shadow")

    @property
    def disabled_count(self) -> int:
        return sum(1 for a in self.agents if a.deployment_state == "disabled")

    def get(self, agent_id: str) -> AgentSnapshot | None:
        for agent in self.agents:
            if agent.agent_id == agent_id:
                return agent
        return None


def _pf(gross_profit: float, gross_loss: float) -> float:
    if gross_loss > 0:
        return gross_profit / gross_loss
    return 99.0 if gross_profit > 0 else 0.0


def aggregate_agent_stats(records: Iterable[TradeRecord]) -> Dict[str, AgentStats]:
    """Fold closed trades into per-agent totals, skipping non-agent sources."""
    stats: Dict[str, AgentStats] = {}
    for record in records:
        if not record.is_closed or record.agent_id in IGNORED_AGENTS:
            continue
        entry = stats.setdefault(record.agent_id, AgentStats(agent_id=record.agent_id))
        entry.add(record.direction, record.pips)
    return stats


def raw_tier(expectancy: float, pf: float, net_pips: float) -> str:
    session_coverage = 4 if expectancy > 0 else 2 if expectancy > -0.5 else 1
    out_of_sample_holds = expectancy > 0 and pf >= 1.05
    if expectancy > 0 and pf >= 1.10 and session_coverage >= 3 and out_of_sample_holds:
        return "A"
    if net_pips > -1000 and pf >= 0.90:
        return "B"
    if net_pips > -1500:
        return "C"
    return "D"


def is_short_destructive(stats: AgentStats) -> bool:
    return stats.short_net < -500 and stats.short_count > 50


def resolve_agent(stats: AgentStats) -> AgentSnapshot:
    """
    Tier an agent and decide how it may deploy.

    Tier B agents whose shorts are destructive are re-scored on their long
    trades only and carry ``BLOCK_SHORT``.

    Args:
        stats (AgentStats): Closed-trade totals for one agent.

    Returns:
        AgentSnapshot: Raw and effective tier, deployment state, size and fleet set.
    """
    total = stats.total_trades
    win_rate = stats.win_count / total if total else 0.0
    expectancy = stats.net_pips / total if total else 0.0
    pf = _pf(stats.gross_profit, stats.gross_loss)
    tier = raw_tier(expectancy, pf, stats.net_pips)

    effective = tier
    deployment = "disabled"
    size = 0.0
    fleet = "SHADOW"
    constraints: List[str] = []
    display = DisplayMetrics(total, win_rate, expectancy, pf, stats.net_pips)

    if tier == "A":
        deployment, size, fleet = "deploy", 1.0, "ACTIVE"
    elif tier == "B":
        if is_short_destructive(stats):
            long_n = stats.long_count
            long_wr = stats.long_wins / long_n if long_n else 0.0
            long_exp = stats.long_net / long_n if long_n else 0.0
            long_pf = _pf(stats.long_gross_profit, stats.long_gross_loss)
            constraints.append(BLOCK_SHORT)
            display = DisplayMetrics(long_n, long_wr, long_exp, long_pf, stats.long_net)
            if long_pf >= 1.3 and long_exp > 0.4:
                effective, deployment, size, fleet = "B-Promotable", "deploy", 1.0, "ACTIVE"
            elif long_exp > 0 and long_pf >= 1.2:
                effective, deployment, size, fleet = "B-Rescued", "reduced", 0.35, "ACTIVE"
            else:
                effective, deployment, size, fleet = "B-Shadow", "shadow", 0.0, "BENCH"
        elif expectancy > 0 and pf >= 1.1:
            effective, deployment, size, fleet = "B-Promotable", "deploy", 1.0, "ACTIVE"
        else:
            effective, deployment = "B-Shadow", "shadow"
            fleet = "BENCH" if expectancy > -0.3 and pf >= 0.85 else "SHADOW"
    elif tier == "C":
        fleet = "BENCH" if expectancy > -1.0 and pf >= 0.7 else "SHADOW"

    can_execute = (
        effective in EXECUTABLE_TIERS and deployment in EXECUTABLE_STATES and size > 0
    )
    return AgentSnapshot(
        agent_id=stats.agent_id,
        raw_tier=tier,
        effective_tier=effective,
        deployment_state=deployment,
        size_multiplier=size,
        fleet_set=fleet,
        can_execute=can_execute,
        constraints=tuple(constraints),
        metrics=display,
    )


def coalition_requirement(agents: Sequence[AgentSnapshot]) -> CoalitionRequirement:
    """Duo when the eligible pool looks healthy, trio otherwise."""
    eligible = [a for a in agents if a.can_execute]
    if not eligible:
        return CoalitionRequirement(
            "trio", 3, 0, 0.0, 0.0, "deteriorating", ("No eligible agents",)
        )

    total = sum(a.metrics.total_trades for a in eligible)
    denom = total or 1
    wr = sum(a.metrics.win_rate * a.metrics.total_trades for a in eligible) / denom
    exp = sum(a.metrics.expectancy * a.metrics.total_trades for a in eligible) / denom
    pf = sum(a.metrics.profit_factor * a.metrics.total_trades for a in eligible) / denom

    score = round(
        min(30.0, wr * 50)
        + min(30.0, max(0.0, exp * 15))
        + min(25.0, max(0.0, (pf - 0.5) * 12.5))
        + min(15.0, total / 20)
    )
    if pf >= 1.3 and wr >= 0.55:
        trend = "improving"
    elif pf >= 1.0 and wr >= 0.45:
        trend = "flat"
    else:
        trend = "deteriorating"

    if score >= 40 and pf >= 1.05 and trend != "deteriorating":
        reasons = (f"Survivorship {score} >= 40", f"PF {pf:.2f} >= 1.05", f"Stability: {trend}")
        return CoalitionRequirement("duo", 2, score, pf, exp, trend, reasons)

    reasons = [f"Survivorship {score} < 40" if score < 40 else f"Survivorship {score}"]
    if pf < 1.05:
        reasons.append(f"PF {pf:.2f} < 1.05")
    if trend == "deteriorating":
        reasons.append(f"Stability: {trend}")
    return CoalitionRequirement("trio", 3, score, pf, exp, trend, tuple(reasons))


def build_agent_roster(stats: Dict[str, AgentStats]) -> AgentRoster:
    """
    Args:
        stats (Dict[str, AgentStats]): Per-agent totals keyed by agent id.

    Returns:
        AgentRoster: Snapshots sorted by agent id plus the coalition requirement.
    """
    agents = [resolve_agent(s) for s in sorted(stats.values(), key=lambda s: s.agent_id)]
    roster = AgentRoster(agents=agents, coalition=coalition_requirement(agents))
    logger.info(
        "[tiers] agents={} eligible={} shadow={} disabled={} coalition={}",
        len(agents),
        roster.eligible_count,
        roster.shadow_count,
        roster.disabled_count,
        roster.coalition.tier,
    )
    return roster


__all__ = [
    "AgentStats",
    "AgentSnapshot",
    "AgentRoster",
    "CoalitionRequirement",
    "DisplayMetrics",
    "aggregate_agent_stats",
    "resolve_agent",
    "raw_tier",
    "is_short_destructive",
    "coalition_requirement",
    "build_agent_roster",
    "BLOCK_SHORT",
]

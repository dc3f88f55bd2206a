"""
Discovery-risk overlay.

Classifies a trade context as historically destructive, a known edge, or
neither, from a declarative rule table. The overlay only scales final size;
it never alters governance gates or multipliers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from fxgov.governance.sessions import ASIAN, LATE_NY, LONDON_OPEN, NY_OVERLAP, ROLLOVER

BLOCKED = "BLOCKED"
EDGE_BOOST = "EDGE_BOOST"
REDUCED = "REDUCED"
NORMAL = "NORMAL"

MULTIPLIERS = {BLOCKED: 0.0, EDGE_BOOST: 1.35, REDUCED: 0.55, NORMAL: 1.0}

SPREAD_BLOCK_PIPS = 1.0
IGNITION_MIN_COMPOSITE = 0.75
AUD_CROSSES = frozenset(
    {"AUD_JPY", "AUD_USD", "AUD_NZD", "AUD_CAD", "AUD_CHF", "EUR_AUD", "GBP_AUD"}
)
DESTRUCTIVE_AGENTS = frozenset({"sentiment-reactor", "range-navigator"})


@dataclass(frozen=True)
class DiscoveryContext:
    session: str
    regime: str
    pair: str
    direction: str
    agent_id: str
    spread_pips: float
    composite: float

    @property
    def env_key(self) -> str:
        return f"{self.session}|{self.regime}|{self.pair}|{self.direction}|{self.agent_id}"


@dataclass(frozen=True)
class DiscoveryRule:
    name: str
    label: str
    predicate: Callable[[DiscoveryContext], bool]
    reason: Callable[[DiscoveryContext], str]


@dataclass(frozen=True)
class DiscoveryResult:
    label: str
    multiplier: float
    env_key: str
    reasons: List[str] = field(default_factory=list)
    rule: str | None = None

    @property
    def blocked(self) -> bool:
        return self.label == BLOCKED


def _fixed(text: str) -> Callable[[DiscoveryContext], str]:
    return lambda ctx: text


DESTRUCTIVE_RULES: Sequence[DiscoveryRule] = (
    DiscoveryRule(
        "aud-cross",
        BLOCKED,
        lambda c: c.pair in AUD_CROSSES,
        lambda c: f"AUD cross {c.pair} is a destructive environment",
    ),
    DiscoveryRule(
        "gbp-volatile",
        BLOCKED,
        lambda c: c.pair in ("GBP_USD", "GBP_JPY"),
        lambda c: f"{c.pair} high volatility is a destructive environment",
    ),
    DiscoveryRule(
        "destructive-agent",
        BLOCKED,
        lambda c: c.agent_id in DESTRUCTIVE_AGENTS,
        lambda c: f"Agent {c.agent_id} is destructive in discovery",
    ),
    DiscoveryRule(
        "rollover",
        BLOCKED,
        lambda c: c.session == ROLLOVER,
        _fixed("Rollover session is a destructive environment"),
    ),
    DiscoveryRule(
        "wide-spread",
        BLOCKED,
        lambda c: c.spread_pips > SPREAD_BLOCK_PIPS,
        lambda c: f"Spread {c.spread_pips:.2f}p > {SPREAD_BLOCK_PIPS:.1f}p",
    ),
    DiscoveryRule(
        "weak-ignition",
        BLOCKED,
        lambda c: c.regime == "ignition" and c.composite < IGNITION_MIN_COMPOSITE,
        lambda c: f"Ignition regime with composite {c.composite:.2f} < {IGNITION_MIN_COMPOSITE}",
    ),
)

EDGE_RULES: Sequence[DiscoveryRule] = (
    DiscoveryRule(
        "ny-overlap-expansion",
        EDGE_BOOST,
        lambda c: c.session == NY_OVERLAP and c.regime == "expansion",
        _fixed("Edge: ny-overlap expansion"),
    ),
    DiscoveryRule(
        "asian-usdcad",
        EDGE_BOOST,
        lambda c: c.session == ASIAN
        and c.pair == "USD_CAD"
        and c.regime in ("expansion", "compression"),
        lambda c: f"Edge: asian USD_CAD {c.regime}",
    ),
    DiscoveryRule(
        "london-usdcad",
        EDGE_BOOST,
        lambda c: c.session == LONDON_OPEN and c.pair == "USD_CAD",
        _fixed("Edge: london-open USD_CAD"),
    ),
    DiscoveryRule(
        "late-ny-usdcad",
        EDGE_BOOST,
        lambda c: c.session == LATE_NY and c.pair == "USD_CAD" and c.regime != "ignition",
        lambda c: f"Edge: late-ny USD_CAD {c.regime}",
    ),
    DiscoveryRule(
        "london-audusd-expansion",
        EDGE_BOOST,
        lambda c: c.session == LONDON_OPEN and c.pair == "AUD_USD" and c.regime == "expansion",
        _fixed("Edge: london-open AUD_USD expansion"),
    ),
    DiscoveryRule(
        "eurgbp",
        EDGE_BOOST,
        lambda c: c.pair == "EUR_GBP",
        _fixed("Edge: EUR_GBP"),
    ),
    DiscoveryRule(
        "usdjpy-compression",
        EDGE_BOOST,
        lambda c: c.pair == "USD_JPY" and c.regime == "compression",
        _fixed("Edge: USD_JPY compression"),
    ),
)

DEFAULT_RULES: Sequence[DiscoveryRule] = tuple(DESTRUCTIVE_RULES) + tuple(EDGE_RULES)


def classify_discovery(
    ctx: DiscoveryContext, rules: Sequence[DiscoveryRule] = DEFAULT_RULES
) -> DiscoveryResult:
    """First matching rule decides; no match is REDUCED."""
    for rule in rules:
        if rule.predicate(ctx):
            return DiscoveryResult(
                label=rule.label,
                multiplier=MULTIPLIERS[rule.label],
                env_key=ctx.env_key,
                reasons=[rule.reason(ctx)],
                rule=rule.name,
            )
    return DiscoveryResult(
        label=REDUCED,
        multiplier=MULTIPLIERS[REDUCED],
        env_key=ctx.env_key,
        reasons=["Baseline allocation outside known edges"],
    )


def forced_discovery(ctx: DiscoveryContext) -> DiscoveryResult:
    return DiscoveryResult(label=NORMAL, multiplier=MULTIPLIERS[NORMAL], env_key=ctx.env_key)


__all__ = [
    "DiscoveryContext",
    "DiscoveryRule",
    "DiscoveryResult",
    "DESTRUCTIVE_RULES",
    "EDGE_RULES",
    "DEFAULT_RULES",
    "classify_discovery",
    "forced_discovery",
    "BLOCKED",
    "EDGE_BOOST",
    "REDUCED",
    "NORMAL",
]

"""Candidate generation: signal count, agent draw, pair draw and the signal stub."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from fxgov.core.instruments import PRIMARY_PAIR, SECONDARY_FOCUS_PAIRS
from fxgov.governance.sampling import WeightedSampler
from fxgov.governance.sessions import SessionBudget
from fxgov.governance.state import GovernanceStateConfig
from fxgov.governance.tiers import AgentSnapshot
from fxgov.orchestration.types import LONG

PRIMARY_PAIR_SHARE = 0.5


@dataclass(frozen=True)
class SignalProposal:
    direction: str
    confidence: float


class SignalSource(Protocol):
    def propose(self, pair: str, agent: AgentSnapshot, session: str) -> SignalProposal: ...


class RandomSignalSource:
    """Long-only placeholder for strategy output: confidence 60-80."""

    def __init__(self, sampler: WeightedSampler) -> None:
        self.sampler = sampler

    def propose(self, pair: str, agent: AgentSnapshot, session: str) -> SignalProposal:
        return SignalProposal(direction=LONG, confidence=round(60 + self.sampler.uniform(0, 20)))


def signal_count(
    config: GovernanceStateConfig, budget: SessionBudget, sampler: WeightedSampler
) -> int:
    """Candidates this tick; zero only when the session is closed to the state."""
    aggressiveness = config.aggressiveness(budget.session)
    if aggressiveness <= 0:
        return 0
    base = 3 + sampler.randint(0, 3)
    scaled = round(base * config.density_multiplier * aggressiveness)
    return max(1, min(budget.max_density, scaled))


def pair_weights(
    primary: str = PRIMARY_PAIR, secondary: Sequence[str] = SECONDARY_FOCUS_PAIRS
) -> tuple[list[str], list[float]]:
    """Primary pair at its fixed share; secondary pairs split the rest evenly."""
    share = (1.0 - PRIMARY_PAIR_SHARE) / max(len(secondary), 1)
    return [primary, *secondary], [PRIMARY_PAIR_SHARE, *([share] * len(secondary))]


def select_pair(sampler: WeightedSampler) -> str:
    pairs, weights = pair_weights()
    return sampler.choose(pairs, weights)


def select_agent(eligible: Sequence[AgentSnapshot], sampler: WeightedSampler) -> AgentSnapshot:
    return sampler.choose(list(eligible), [a.score for a in eligible])


__all__ = [
    "SignalProposal",
    "SignalSource",
    "RandomSignalSource",
    "signal_count",
    "pair_weights",
    "select_pair",
    "select_agent",
]

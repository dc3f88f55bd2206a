"""Pure governance functions: metrics, tiers, state, allocation, gates and sizing."""

from .allocation import PairAllocation, compute_all_pair_allocations
from .metrics import RollingMetrics, compute_rolling_metrics
from .state import GovernanceDecision, GovernanceState, determine_governance_state
from .tiers import AgentRoster, aggregate_agent_stats, build_agent_roster

__all__ = [
    "PairAllocation",
    "compute_all_pair_allocations",
    "RollingMetrics",
    "compute_rolling_metrics",
    "GovernanceDecision",
    "GovernanceState",
    "determine_governance_state",
    "AgentRoster",
    "aggregate_agent_stats",
    "build_agent_roster",
]

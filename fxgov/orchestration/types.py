from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from fxgov.governance.allocation import PairAllocation
from fxgov.governance.metrics import RollingMetrics
from fxgov.governance.state import GovernanceDecision
from fxgov.governance.tiers import AgentRoster

LONG = "long"


@dataclass(slots=True)
class TickRequest:
    force: bool = False
    pair: Optional[str] = None
    direction: str = LONG
    preflight: bool = False


@dataclass(slots=True, frozen=True)
class Candidate:
    index: int
    agent_id: str
    pair: str
    direction: str
    confidence: float
    signal_id: str
    idempotency_key: str
    agent_tier: str = "manual"
    agent_size: float = 1.0
    constraints: tuple = ()


@dataclass(slots=True)
class CandidateOutcome:
    pair: str
    direction: str
    status: str
    agent_id: str
    units: Optional[int] = None
    order_id: Optional[str] = None
    gate_result: Optional[str] = None
    friction_score: Optional[int] = None
    discovery_label: Optional[str] = None
    reasons: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v not in (None, [])}


@dataclass(slots=True)
class PreflightCheck:
    name: str
    passed: bool
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "pass": self.passed, "detail": self.detail}


@dataclass(slots=True)
class PreflightReport:
    checks: List[PreflightCheck] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.checks) and all(c.passed for c in self.checks)

    def to_dict(self) -> Dict[str, Any]:
        return {"passed": self.passed, "checks": [c.to_dict() for c in self.checks]}


@dataclass(slots=True)
class TickResult:
    tick_id: str
    environment: str
    should_execute: bool
    started_at: datetime
    session: Optional[str] = None
    regime: Optional[str] = None
    windows: Dict[str, RollingMetrics] = field(default_factory=dict)
    governance: Optional[GovernanceDecision] = None
    allocations: Dict[str, PairAllocation] = field(default_factory=dict)
    roster: Optional[AgentRoster] = None
    outcomes: List[CandidateOutcome] = field(default_factory=list)
    preflight: Optional[PreflightReport] = None
    account_balance: Optional[float] = None
    circuit_breakers: List[str] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    aborted: bool = False
    elapsed_ms: int = 0

    def status_counts(self) -> Dict[str, int]:
        return dict(Counter(o.status for o in self.outcomes))

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "tickId": self.tick_id,
            "startedAt": self.started_at.isoformat(),
            "executionConfig": {
                "environment": self.environment,
                "shouldExecute": self.should_execute,
            },
            "session": self.session,
            "regime": self.regime,
            "accountBalance": self.account_balance,
            "circuitBreakers": list(self.circuit_breakers),
            "summary": {"total": len(self.outcomes), **self.status_counts()},
            "signals": [o.to_dict() for o in self.outcomes],
            "skippedReason": self.skipped_reason,
            "aborted": self.aborted,
            "elapsedMs": self.elapsed_ms,
        }
        if self.governance is not None:
            payload["governance"] = {
                "state": self.governance.state.value,
                "reasons": list(self.governance.reasons),
                "config": self.governance.config.to_dict(),
                "windows": {k: v.to_dict() for k, v in self.windows.items()},
                "bannedPairs": sorted(p for p, a in self.allocations.items() if a.banned),
                "restrictedPairs": sorted(
                    p for p, a in self.allocations.items() if a.restricted
                ),
                "promotedPairs": sorted(
                    p for p, a in self.allocations.items() if a.promoted
                ),
            }
        if self.roster is not None:
            coalition = self.roster.coalition
            payload["agentSnapshot"] = {
                "totalAgents": len(self.roster.agents),
                "eligibleCount": self.roster.eligible_count,
                "shadowCount": self.roster.shadow_count,
                "disabledCount": self.roster.disabled_count,
                "coalition": asdict(coalition) if coalition else None,
                "agents": [
                    {
                        "agentId": a.agent_id,
                        "rawTier": a.raw_tier,
                        "effectiveTier": a.effective_tier,
                        "deploymentState": a.deployment_state,
                        "sizeMultiplier": a.size_multiplier,
                        "fleetSet": a.fleet_set,
                        "canExecute": a.can_execute,
                        "constraints": list(a.constraints),
                        "metrics": asdict(a.metrics),
                    }
                    for a in self.roster.agents
                ],
            }
        if self.preflight is not None:
            payload["preflight"] = self.preflight.to_dict()
        return payload


__all__ = [
    "LONG",
    "TickRequest",
    "Candidate",
    "CandidateOutcome",
    "PreflightCheck",
    "PreflightReport",
    "TickResult",
]

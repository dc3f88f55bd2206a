from __future__ import annotations

from datetime import datetime

from loguru import logger

from fxgov.db.repositories.orders import OrderRepository
from fxgov.governance.tiers import AgentRoster
from fxgov.orchestration.types import PreflightCheck, PreflightReport


def run_preflight(
    repo: OrderRepository, roster: AgentRoster, cutover: datetime
) -> PreflightReport:
    """
    Safety checks gating live submission; every check must pass.

    Args:
        repo (OrderRepository): Ledger access for the short-execution count.
        roster (AgentRoster): Current agent roster.
        cutover (datetime): Long-only cutover; shorts before it are ignored.

    Returns:
        PreflightReport: One named check per rule with its detail.
    """
    shorts = repo.count_short_executions_since(cutover)
    eligible = roster.eligible_count
    report = PreflightReport(
        checks=[
            PreflightCheck(
                name="no_short_executions",
                passed=shorts == 0,
                detail=f"{shorts} short execution(s) since {cutover.isoformat()}",
            ),
            PreflightCheck(
                name="eligible_agent_present",
                passed=eligible >= 1,
                detail=f"{eligible} eligible agent(s)",
            ),
            PreflightCheck(
                name="coalition_minimum",
                passed=eligible >= 2,
                detail=f"{eligible} eligible agent(s), 2 required",
            ),
        ]
    )
    if report.passed:
        logger.info("[preflight] passed ({} eligible agents)", eligible)
    else:
        failed = [c.name for c in report.checks if not c.passed]
        logger.warning("[preflight] failed: {}", ", ".join(failed))
    return report


__all__ = ["run_preflight"]

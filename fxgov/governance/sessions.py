from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from fxgov.core.timeutils import ensure_utc, is_weekend

ROLLOVER = "rollover"
ASIAN = "asian"
LONDON_OPEN = "london-open"
NY_OVERLAP = "ny-overlap"
LATE_NY = "late-ny"


@dataclass(frozen=True)
class SessionBudget:
    session: str
    max_density: int
    friction_multiplier: float
    volatility_tolerance: float
    capital_budget_pct: float
    label: str


SESSION_BUDGETS: Dict[str, SessionBudget] = {
    LONDON_OPEN: SessionBudget(LONDON_OPEN, 6, 0.8, 1.3, 1.0, "London Open"),
    NY_OVERLAP: SessionBudget(NY_OVERLAP, 5, 0.85, 1.2, 0.95, "NY Overlap"),
    ASIAN: SessionBudget(ASIAN, 3, 1.3, 0.85, 0.6, "Asian Session"),
    LATE_NY: SessionBudget(LATE_NY, 2, 1.2, 0.75, 0.4, "Late NY"),
    ROLLOVER: SessionBudget(ROLLOVER, 1, 1.8, 0.5, 0.15, "Rollover"),
}


def detect_session(now: datetime) -> str:
    """Map a UTC wall-clock hour to its session window."""
    hour = ensure_utc(now).hour
    if hour >= 21 or hour < 1:
        return ROLLOVER
    if hour < 7:
        return ASIAN
    if hour < 12:
        return LONDON_OPEN
    if hour < 17:
        return NY_OVERLAP
    return LATE_NY


def session_budget(now: datetime) -> SessionBudget:
    """Budget row for the session containing ``now`` (UTC)."""
    return SESSION_BUDGETS[detect_session(now)]


def regime_label(now: datetime) -> str:
    hour = ensure_utc(now).hour
    if 7 <= hour < 10:
        return "ignition"
    if 10 <= hour < 16:
        return "expansion"
    if 16 <= hour < 20:
        return "exhaustion"
    return "compression"


__all__ = [
    "SessionBudget",
    "SESSION_BUDGETS",
    "detect_session",
    "session_budget",
    "regime_label",
    "is_weekend",
    "ROLLOVER",
    "ASIAN",
    "LONDON_OPEN",
    "NY_OVERLAP",
    "LATE_NY",
]

"""Tick orchestration: candidate generation, admission and broker submission."""

from .cache import TickCaches, TTLCache
from .executor import ExecutionOrchestrator, run_tick
from .types import CandidateOutcome, PreflightReport, TickRequest, TickResult

__all__ = [
    "ExecutionOrchestrator",
    "run_tick",
    "TickCaches",
    "TTLCache",
    "TickRequest",
    "TickResult",
    "CandidateOutcome",
    "PreflightReport",
]

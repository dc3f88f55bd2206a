"""
One governed execution tick.

Loads the trailing ledger, derives governance state, pair allocations and
the agent roster, then walks a bounded list of candidates strictly in order:
each one is persisted (idempotency key first) before the broker is called, so
the next candidate's dedup check always sees it.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol, Set
from uuid import uuid4

from loguru import logger
from sqlalchemy.orm import Session

from fxgov.config import Settings, settings as default_settings
from fxgov.core.exceptions import (
    BrokerError,
    DirectionInvariantError,
    LedgerConflictError,
    LedgerError,
    MarketHaltedError,
)
from fxgov.core.instruments import (
    PRIMARY_PAIR,
    SCALP_PAIRS,
    SECONDARY_DEPLOYMENT_RANGE,
    SECONDARY_FOCUS_PAIRS,
    base_spread,
    pip_divisor,
)
from fxgov.core.models import OrderStatus
from fxgov.core.timeutils import is_weekend, now_utc
from fxgov.db import models
from fxgov.db.repositories.orders import OrderRepository
from fxgov.execution.oanda_client import BrokerFill, Quote
from fxgov.execution.quality import score_execution
from fxgov.governance.allocation import PairAllocation, compute_all_pair_allocations
from fxgov.governance.discovery import (
    DiscoveryContext,
    DiscoveryResult,
    classify_discovery,
    forced_discovery,
)
from fxgov.governance.friction import GateResult, run_friction_gate
from fxgov.governance.metrics import compute_rolling_metrics
from fxgov.governance.sampling import WeightedSampler
from fxgov.governance.sessions import SessionBudget, regime_label, session_budget
from fxgov.governance.sizing import (
    SizingMultipliers,
    compute_position_size,
    secondary_deployment_multiplier,
    secondary_pair_multiplier,
)
from fxgov.governance.state import (
    STATE_CONFIGS,
    GovernanceDecision,
    GovernanceState,
    GovernanceStateConfig,
    determine_governance_state,
)
from fxgov.governance.tiers import AgentRoster, aggregate_agent_stats, build_agent_roster
from fxgov.logging_utils import logging_context
from fxgov.orchestration.cache import TickCaches
from fxgov.orchestration.preflight import run_preflight
from fxgov.orchestration.signals import (
    RandomSignalSource,
    SignalSource,
    select_agent,
    select_pair,
    signal_count,
)
from fxgov.orchestration.types import (
    LONG,
    Candidate,
    CandidateOutcome,
    TickRequest,
    TickResult,
)

WINDOWS = (20, 50, 200)
DEDUP_WINDOW = timedelta(minutes=2)
FORCE_AGENT = "manual-test"
FORCE_CONFIDENCE = 90.0

KeyFactory = Callable[[int, int, str, str], str]


class Broker(Protocol):
    def get_account_balance(self) -> float: ...

    def get_price(self, pair: str) -> Quote: ...

    def place_market_order(self, pair: str, units: int) -> BrokerFill: ...


def default_idempotency_key(ts_ms: int, index: int, pair: str, direction: str) -> str:
    return f"scalp-{ts_ms}-{index}-{pair}-{direction}"


def enforce_long(direction: str, *, stage: str) -> None:
    """Hard long-only check; a breach is a defect, not a policy outcome."""
    if direction != LONG:
        logger.critical(
            "DIRECTION INVARIANT BREACH at {}: direction={!r} (long-only engine)",
            stage,
            direction,
        )
        raise DirectionInvariantError(f"{stage}: direction {direction!r} is not permitted")


@dataclass
class _TickState:
    now: datetime
    ts_ms: int
    request: TickRequest
    result: TickResult
    budget: SessionBudget
    regime: str
    decision: GovernanceDecision
    allocations: Dict[str, PairAllocation]
    roster: AgentRoster
    balance: float
    breaker_all: bool = False
    breaker_pairs: Set[str] = field(default_factory=set)
    submissions: int = 0
    direction_breach: bool = False
    aborted: bool = False

    def breaker_active(self, pair: str) -> bool:
        return self.breaker_all or pair in self.breaker_pairs


class ExecutionOrchestrator:
    """Runs governed ticks against one ledger session and one broker."""

    def __init__(
        self,
        session: Session,
        broker: Broker,
        *,
        config: Settings | None = None,
        sampler: WeightedSampler | None = None,
        signal_source: SignalSource | None = None,
        caches: TickCaches | None = None,
        clock: Callable[[], datetime] = now_utc,
        sleep: Callable[[float], None] = time.sleep,
        key_factory: KeyFactory = default_idempotency_key,
    ) -> None:
        """
        Args:
            session (Session): Ledger session; one orchestrator per session.
            broker (Broker): Broker adapter (``OandaClient`` in production).
            config (Settings | None): Settings snapshot; defaults to the process settings.
            sampler (WeightedSampler | None): Random source for every draw in a tick.
            signal_source (SignalSource | None): Direction and confidence proposals.
            caches (TickCaches | None): TTL caches shared across ticks.
            clock (Callable[[], datetime]): UTC clock.
            sleep (Callable[[float], None]): Delay between submissions.
            key_factory (KeyFactory): Builds idempotency keys.
        """
        self.repo = OrderRepository(session)
        self.broker = broker
        self.config = config or default_settings
        self.sampler = sampler or WeightedSampler()
        self.signal_source = signal_source or RandomSignalSource(self.sampler)
        self.caches = caches or TickCaches()
        self.clock = clock
        self.sleep = sleep
        self.key_factory = key_factory

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def run(self, request: TickRequest | None = None) -> TickResult:
        """
        Executes one governed tick under a fresh tick id.

        Args:
            request (TickRequest | None): Force, pair and preflight options.

        Returns:
            TickResult: Governance snapshot plus one outcome per candidate.
        """
        request = request or TickRequest()
        tick_id = uuid4().hex[:12]
        with logging_context(request_id=tick_id):
            return self._run(tick_id, request)

    def _run(self, tick_id: str, request: TickRequest) -> TickResult:
        started = time.perf_counter()
        now = self.clock()
        result = TickResult(
            tick_id=tick_id,
            environment=self.config.environment,
            should_execute=self.config.should_execute,
            started_at=now,
        )

        def finish(reason: Optional[str] = None) -> TickResult:
            result.skipped_reason = reason
            result.elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                "[tick] done env={} state={} outcomes={} skipped={} aborted={} {}ms",
                result.environment,
                result.governance.state.value if result.governance else "-",
                result.status_counts(),
                reason,
                result.aborted,
                result.elapsed_ms,
            )
            return result

        if not request.preflight and not request.force and is_weekend(now):
            logger.info("[tick] weekend: market closed, no signals")
            return finish("weekend")

        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="fxgov-balance") as pool:
            balance_future = pool.submit(self._account_balance, now)
            history = self.repo.governance_history(
                self.config.environment, limit=self.config.history_limit
            )
            agent_records = self.repo.closed_agent_history(
                now - timedelta(days=self.config.agent_stats_days)
            )
            breakers = self.repo.active_circuit_breakers(now)
            balance = balance_future.result()

        windows = {f"w{w}": compute_rolling_metrics(history, w) for w in WINDOWS}
        decision = determine_governance_state(windows["w20"], windows["w50"], windows["w200"])
        allocations = compute_all_pair_allocations(
            history, protected_pairs=self.config.protected_pairs
        )
        roster = build_agent_roster(aggregate_agent_stats(agent_records))
        budget = session_budget(now)

        result.session = budget.session
        result.regime = regime_label(now)
        result.windows = windows
        result.governance = decision
        result.allocations = allocations
        result.roster = roster
        result.account_balance = balance
        result.circuit_breakers = [b.pair or "*" for b in breakers]

        if request.preflight:
            result.preflight = run_preflight(self.repo, roster, self.config.long_only_cutover)
            return finish("preflight-only")

        if self.config.is_live and self.config.live_trading_enabled:
            result.preflight = run_preflight(self.repo, roster, self.config.long_only_cutover)
            if not result.preflight.passed:
                logger.error("[tick] live submission refused: preflight failed")
                return finish("preflight-failed")

        state = _TickState(
            now=now,
            ts_ms=int(now.timestamp() * 1000),
            request=request,
            result=result,
            budget=budget,
            regime=result.regime,
            decision=decision,
            allocations=allocations,
            roster=roster,
            balance=balance,
            breaker_all=any(b.pair is None for b in breakers),
            breaker_pairs={b.pair for b in breakers if b.pair},
        )
        if breakers:
            logger.warning("[tick] circuit breaker active for {}", result.circuit_breakers)

        if request.force:
            count = 1
        else:
            count = signal_count(decision.config, budget, self.sampler)
            if count == 0:
                logger.info(
                    "[tick] session {} closed for state {}", budget.session, decision.state.value
                )
                return finish("session-restricted")
            if not roster.eligible:
                logger.warning("[tick] no eligible agents; nothing to execute")
                return finish("no-eligible-agents")

        logger.info(
            "[tick] {} candidate(s) session={} regime={} state={} balance={:.2f}",
            count,
            budget.session,
            state.regime,
            decision.state.value,
            balance,
        )
        for index in range(count):
            outcome = self._process(state, index)
            result.outcomes.append(outcome)
            if state.aborted:
                result.aborted = True
                logger.error("[tick] market halted; remaining candidates aborted")
                break
        return finish()

    # ------------------------------------------------------------------
    # Data loading
    # ------------------------------------------------------------------
    def _account_balance(self, now: datetime) -> float:
        cached = self.caches.balance.get(self.config.environment, now)
        if cached is not None:
            return cached
        try:
            balance = float(self.broker.get_account_balance())
        except BrokerError as exc:
            logger.warning(
                "account balance unavailable ({}); using default {:.2f}",
                exc,
                self.config.default_balance,
            )
            return self.config.default_balance
        except Exception:
            logger.exception(
                "account balance response unusable; using default {:.2f}",
                self.config.default_balance,
            )
            return self.config.default_balance
        self.caches.balance.set(self.config.environment, balance, now)
        return balance

    def _quote(self, state: _TickState, pair: str) -> Optional[Quote]:
        cached = self.caches.quotes.get(pair, state.now)
        if cached is not None:
            return cached
        try:
            quote = self.broker.get_price(pair)
        except MarketHaltedError:
            raise
        except BrokerError as exc:
            logger.warning("{}: price unavailable ({}); using baseline spread", pair, exc)
            return None
        except Exception:
            logger.exception("{}: price response unusable; using baseline spread", pair)
            return None
        self.caches.quotes.set(pair, quote, state.now)
        return quote

    # ------------------------------------------------------------------
    # Candidate pipeline
    # ------------------------------------------------------------------
    def _build_candidate(self, state: _TickState, index: int) -> Candidate:
        request = state.request
        if request.force:
            agent_id, tier, size, constraints = FORCE_AGENT, "manual", 1.0, ()
            pair = request.pair or PRIMARY_PAIR
            direction = request.direction or LONG
            confidence = FORCE_CONFIDENCE
        else:
            agent = select_agent(state.roster.eligible, self.sampler)
            pair = select_pair(self.sampler)
            proposal = self.signal_source.propose(pair, agent, state.budget.session)
            agent_id, tier = agent.agent_id, agent.effective_tier
            size, constraints = agent.size_multiplier, agent.constraints
            direction, confidence = proposal.direction, float(proposal.confidence)
        return Candidate(
            index=index,
            agent_id=agent_id,
            pair=pair,
            direction=direction,
            confidence=confidence,
            signal_id=f"scalp-{state.ts_ms}-{index}-{pair}",
            idempotency_key=self.key_factory(state.ts_ms, index, pair, direction),
            agent_tier=tier,
            agent_size=size,
            constraints=tuple(constraints),
        )

    def _process(self, state: _TickState, index: int) -> CandidateOutcome:
        cand = self._build_candidate(state, index)
        with logging_context(pair=cand.pair, agent=cand.agent_id):
            return self._evaluate(state, cand)

    def _evaluate(self, state: _TickState, cand: Candidate) -> CandidateOutcome:
        force = state.request.force

        if state.direction_breach:
            return self._outcome(cand, OrderStatus.BLOCKED, reasons=["direction breach earlier in tick"])
        try:
            enforce_long(cand.direction, stage="signal")
        except DirectionInvariantError as exc:
            state.direction_breach = True
            return self._outcome(cand, OrderStatus.BLOCKED, error=f"DIRECTION_INVARIANT: {exc}")

        allocation = state.allocations.get(cand.pair) or PairAllocation(pair=cand.pair)
        payload: Dict[str, Any] = {
            "governanceState": state.decision.state.value,
            "agentTier": cand.agent_tier,
            "constraints": list(cand.constraints),
            "coalitionTier": state.roster.coalition.tier if state.roster.coalition else None,
            "force": force,
        }

        if not force:
            if allocation.banned:
                reasons = [
                    f"{cand.pair} banned: {allocation.closed_count} closed, "
                    f"exp {allocation.expectancy:.2f}p, WR {allocation.win_rate:.0%}"
                ]
                return self._persist_terminal(state, cand, OrderStatus.PAIR_BANNED, reasons, payload)
            restriction = self._restriction_reason(state.decision.config, cand.pair, allocation)
            if restriction:
                return self._persist_terminal(
                    state, cand, OrderStatus.PAIR_RESTRICTED, [restriction], payload
                )

        breaker = state.breaker_active(cand.pair)
        config = STATE_CONFIGS[GovernanceState.HALT] if breaker else state.decision.config
        payload["effectiveState"] = GovernanceState.HALT.value if breaker else state.decision.state.value

        if force:
            gate = GateResult(True, "FORCE", 100, 0.0, 0.0, 0.0)
        else:
            gate = run_friction_gate(cand.pair, state.budget, config.friction_k)
            if not gate.passed:
                reasons = list(gate.reasons)
                if breaker:
                    reasons.append("circuit breaker active")
                return self._persist_terminal(
                    state, cand, OrderStatus.GATED, reasons, payload, gate=gate
                )

        discovery_ctx = DiscoveryContext(
            session=state.budget.session,
            regime=state.regime,
            pair=cand.pair,
            direction=cand.direction,
            agent_id=cand.agent_id,
            spread_pips=base_spread(cand.pair) * state.budget.friction_multiplier,
            composite=gate.friction_score / 100.0,
        )
        discovery = forced_discovery(discovery_ctx) if force else classify_discovery(discovery_ctx)
        payload.update(
            discoveryLabel=discovery.label,
            discoveryMultiplier=discovery.multiplier,
            envKey=discovery.env_key,
        )
        if discovery.blocked:
            return self._persist_terminal(
                state,
                cand,
                OrderStatus.DISCOVERY_BLOCKED,
                discovery.reasons,
                payload,
                gate=gate,
                discovery=discovery,
            )

        if self.repo.has_recent_fill(cand.pair, state.now - DEDUP_WINDOW):
            return self._persist_terminal(
                state,
                cand,
                OrderStatus.DEDUPED,
                [f"{cand.pair} filled within the last 2 minutes"],
                payload,
                gate=gate,
                discovery=discovery,
            )

        pair_mult = allocation.capital_multiplier
        deploy_mult = discovery.multiplier
        if not force and cand.pair in SECONDARY_FOCUS_PAIRS:
            pair_mult = secondary_pair_multiplier(
                pair_mult, state.budget.session, allocation.closed_count, allocation.expectancy
            )
            deploy_mult = secondary_deployment_multiplier(
                deploy_mult, self.sampler.uniform(*SECONDARY_DEPLOYMENT_RANGE)
            )
        multipliers = SizingMultipliers(
            governance=config.sizing_multiplier,
            pair=pair_mult,
            session=state.budget.capital_budget_pct,
            agent=cand.agent_size,
            discovery=deploy_mult,
        )
        units = compute_position_size(cand.pair, state.balance, cand.confidence, multipliers)
        payload["multipliers"] = asdict(multipliers)

        shadow_reason = self._shadow_reason(state, breaker)
        if shadow_reason:
            payload["shadowReason"] = shadow_reason
            return self._persist_terminal(
                state,
                cand,
                OrderStatus.SHADOW_EVAL,
                [shadow_reason],
                payload,
                units=units,
                gate=gate,
                discovery=discovery,
            )

        try:
            order = self._insert(state, cand, OrderStatus.SUBMITTED, [], payload, units, gate)
        except LedgerConflictError:
            logger.info("{}: idempotency key {} already recorded", cand.pair, cand.idempotency_key)
            return self._outcome(cand, OrderStatus.IDEMPOTENCY_CONFLICT, units=units)
        except LedgerError as exc:
            logger.error("{}: ledger insert failed: {}", cand.pair, exc)
            return self._outcome(cand, OrderStatus.DB_ERROR, units=units, error=str(exc))

        return self._submit(state, cand, order, units, gate, discovery)

    def _restriction_reason(
        self, config: GovernanceStateConfig, pair: str, allocation: PairAllocation
    ) -> Optional[str]:
        if config.pair_restriction == "top-performers" and allocation.restricted:
            return f"{pair} restricted under top-performers mode"
        if config.pair_restriction == "majors-only" and pair not in SCALP_PAIRS:
            return f"{pair} outside majors under majors-only mode"
        return None

    def _shadow_reason(self, state: _TickState, breaker: bool) -> Optional[str]:
        if state.decision.state is GovernanceState.HALT:
            return "governance HALT: shadow evaluation only"
        if breaker:
            return "circuit breaker active: shadow evaluation only"
        if not self.config.should_execute:
            return "live trading disabled: shadow evaluation only"
        return None

    def _submit(
        self,
        state: _TickState,
        cand: Candidate,
        order: models.Order,
        units: int,
        gate: GateResult,
        discovery: DiscoveryResult,
    ) -> CandidateOutcome:
        outcome_base = dict(
            units=units,
            order_id=order.id,
            gate_result=gate.result,
            friction_score=gate.friction_score,
            discovery_label=discovery.label,
        )
        if state.submissions:
            self.sleep(self.config.submission_delay_ms / 1000.0)
        state.submissions += 1

        try:
            quote = self._quote(state, cand.pair)
        except MarketHaltedError as exc:
            state.aborted = True
            self._finalize(order, status=OrderStatus.REJECTED, error_message=str(exc))
            return self._outcome(cand, OrderStatus.REJECTED, error=str(exc), **outcome_base)

        expected_spread = base_spread(cand.pair) * state.budget.friction_multiplier
        requested = quote.ask if quote else None
        spread = quote.spread_pips if quote else expected_spread

        try:
            enforce_long(order.direction, stage="broker")
        except DirectionInvariantError as exc:
            state.direction_breach = True
            message = f"DIRECTION_INVARIANT: {exc}"
            self._finalize(order, status=OrderStatus.BLOCKED, error_message=message)
            return self._outcome(cand, OrderStatus.BLOCKED, error=message, **outcome_base)

        try:
            fill = self.broker.place_market_order(cand.pair, units)
        except MarketHaltedError as exc:
            state.aborted = True
            logger.error("{}: market halted: {}", cand.pair, exc)
            self._finalize(order, status=OrderStatus.REJECTED, error_message=str(exc))
            return self._outcome(cand, OrderStatus.REJECTED, error=str(exc), **outcome_base)
        except BrokerError as exc:
            logger.error("{}: order rejected: {}", cand.pair, exc)
            self._finalize(order, status=OrderStatus.REJECTED, error_message=str(exc))
            return self._outcome(cand, OrderStatus.REJECTED, error=str(exc), **outcome_base)
        except Exception as exc:
            logger.exception("{}: unusable broker response; order marked rejected", cand.pair)
            message = f"BROKER_RESPONSE_INVALID: {exc}"
            self._finalize(order, status=OrderStatus.REJECTED, error_message=message)
            return self._outcome(cand, OrderStatus.REJECTED, error=message, **outcome_base)

        slippage = (fill.price - requested) / pip_divisor(cand.pair) if requested else 0.0
        quality = score_execution(slippage, fill.latency_ms, spread, expected_spread)
        self._finalize(
            order,
            status=OrderStatus.FILLED,
            entry_price=fill.price,
            requested_price=requested,
            filled_units=fill.units,
            slippage_pips=round(slippage, 3),
            fill_latency_ms=fill.latency_ms,
            spread_at_entry=round(spread, 3),
            execution_quality_score=quality,
            broker_order_id=fill.order_id,
            broker_trade_id=fill.trade_id,
        )
        logger.info(
            "{}: filled {}u @ {} agent={} slip={:.2f}p q={}",
            cand.pair,
            units,
            fill.price,
            cand.agent_id,
            slippage,
            quality,
        )
        return self._outcome(cand, OrderStatus.FILLED, **outcome_base)

    # ------------------------------------------------------------------
    # Ledger helpers
    # ------------------------------------------------------------------
    def _insert(
        self,
        state: _TickState,
        cand: Candidate,
        status: str,
        reasons: List[str],
        payload: Dict[str, Any],
        units: int,
        gate: Optional[GateResult],
    ) -> models.Order:
        enforce_long(cand.direction, stage="ledger")
        return self.repo.insert_order(
            signal_id=cand.signal_id,
            idempotency_key=cand.idempotency_key,
            currency_pair=cand.pair,
            direction=cand.direction,
            units=units,
            status=status,
            environment=self.config.environment,
            agent_id=cand.agent_id,
            confidence_score=cand.confidence,
            session_label=state.budget.session,
            regime_label=state.regime,
            gate_result=gate.result if gate else None,
            gate_reasons=list(reasons),
            friction_score=gate.friction_score if gate else None,
            governance_payload=dict(payload),
            created_at=state.now,
        )

    def _persist_terminal(
        self,
        state: _TickState,
        cand: Candidate,
        status: str,
        reasons: List[str],
        payload: Dict[str, Any],
        *,
        units: int = 0,
        gate: Optional[GateResult] = None,
        discovery: Optional[DiscoveryResult] = None,
    ) -> CandidateOutcome:
        logger.info("{}: {} ({})", cand.pair, status, "; ".join(reasons))
        extra = dict(
            units=units or None,
            gate_result=gate.result if gate else None,
            friction_score=gate.friction_score if gate else None,
            discovery_label=discovery.label if discovery else None,
        )
        try:
            order = self._insert(state, cand, status, reasons, payload, units, gate)
        except LedgerConflictError:
            logger.info("{}: idempotency key {} already recorded", cand.pair, cand.idempotency_key)
            return self._outcome(cand, OrderStatus.IDEMPOTENCY_CONFLICT, reasons=reasons, **extra)
        except LedgerError as exc:
            logger.error("{}: ledger insert failed: {}", cand.pair, exc)
            return self._outcome(cand, OrderStatus.DB_ERROR, reasons=reasons, error=str(exc), **extra)
        return self._outcome(cand, status, order_id=order.id, reasons=reasons, **extra)

    def _finalize(self, order: models.Order, **fields: Any) -> None:
        try:
            self.repo.update_order(order, **fields)
        except LedgerError as exc:
            logger.error(
                "order {} finalize to {} failed: {}", order.id, fields.get("status"), exc
            )

    @staticmethod
    def _outcome(cand: Candidate, status: str, **kwargs: Any) -> CandidateOutcome:
        return CandidateOutcome(
            pair=cand.pair,
            direction=cand.direction,
            status=status,
            agent_id=cand.agent_id,
            **kwargs,
        )


def run_tick(
    session: Session,
    broker: Broker,
    request: TickRequest | None = None,
    **kwargs: Any,
) -> TickResult:
    """Convenience wrapper: one orchestrator, one tick."""
    return ExecutionOrchestrator(session, broker, **kwargs).run(request)


__all__ = [
    "Broker",
    "ExecutionOrchestrator",
    "run_tick",
    "enforce_long",
    "default_idempotency_key",
]

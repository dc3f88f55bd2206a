from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from loguru import logger
from sqlalchemy import func, select

import fxgov.execution.oanda_client as oanda_module
import fxgov.orchestration.executor as executor_module
from fxgov.core.exceptions import MarketHaltedError, PermanentBrokerError, TransientBrokerError
from fxgov.db import models
from fxgov.governance.discovery import forced_discovery
from fxgov.governance.friction import GateResult
from fxgov.orchestration.executor import ExecutionOrchestrator
from fxgov.orchestration.signals import SignalProposal
from fxgov.orchestration.types import TickRequest

LONDON_OPEN_TS = datetime(2026, 3, 4, 8, 30, tzinfo=timezone.utc)


def _orders(session):
    return list(session.scalars(select(models.Order).where(models.Order.signal_id.like("scalp-%"))))


def test_force_tick_fills_and_records_execution(make_orchestrator, fake_broker, session):
    result = make_orchestrator().run(TickRequest(force=True))

    assert [o.status for o in result.outcomes] == ["filled"]
    assert fake_broker.orders == [("USD_CAD", 5000)]

    (order,) = _orders(session)
    assert order.status == "filled"
    assert order.direction == "long"
    assert order.agent_id == "manual-test"
    assert order.units == 5000
    assert order.entry_price == 1.36012
    assert order.requested_price == 1.36010
    assert abs(order.slippage_pips - 0.2) < 1e-6
    assert order.fill_latency_ms == 45
    assert order.broker_order_id == "1001"
    assert 0 <= order.execution_quality_score <= 100
    assert order.gate_result == "FORCE"
    assert order.governance_payload["discoveryLabel"] == "NORMAL"
    assert order.governance_payload["governanceState"] == "NORMAL"


def test_force_tick_uses_requested_pair(make_orchestrator, fake_broker):
    result = make_orchestrator().run(TickRequest(force=True, pair="EUR_GBP"))

    assert result.outcomes[0].pair == "EUR_GBP"
    assert fake_broker.orders[0][0] == "EUR_GBP"


def test_idempotency_key_conflict_never_reaches_broker(
    make_orchestrator, fake_broker, session, clock
):
    orchestrator = make_orchestrator(key_factory=lambda *_: "fixed-key")

    first = orchestrator.run(TickRequest(force=True))
    clock.now = LONDON_OPEN_TS + timedelta(minutes=3)
    second = orchestrator.run(TickRequest(force=True))

    assert first.outcomes[0].status == "filled"
    assert second.outcomes[0].status == "idempotency_conflict"
    assert len(fake_broker.orders) == 1
    count = session.scalar(
        select(func.count(models.Order.id)).where(models.Order.idempotency_key == "fixed-key")
    )
    assert count == 1


def test_recent_fill_on_pair_is_deduped(make_orchestrator, fake_broker, session, clock):
    orchestrator = make_orchestrator()
    orchestrator.run(TickRequest(force=True))
    clock.now = LONDON_OPEN_TS + timedelta(seconds=30)
    result = orchestrator.run(TickRequest(force=True))

    assert result.outcomes[0].status == "deduped"
    assert len(fake_broker.orders) == 1
    assert sorted(o.status for o in _orders(session)) == ["deduped", "filled"]


def test_candidates_run_in_order_and_dedup_sees_prior_fill(
    make_orchestrator, fake_broker, seed_closed
):
    seed_closed()
    result = make_orchestrator().run()

    statuses = [o.status for o in result.outcomes]
    assert statuses[0] == "filled"
    assert statuses[1:] and set(statuses[1:]) == {"deduped"}
    assert len(fake_broker.orders) == 1
    assert result.outcomes[0].discovery_label == "EDGE_BOOST"


def test_submissions_are_spaced_by_delay(make_orchestrator, fake_broker, seed_closed):
    seed_closed()
    fake_broker.order_errors = [PermanentBrokerError("insufficient margin")] * 10
    orchestrator = make_orchestrator()
    result = orchestrator.run()

    assert result.outcomes and all(o.status == "rejected" for o in result.outcomes)
    assert len(fake_broker.orders) == len(result.outcomes)
    assert orchestrator.sleeps == [0.15] * (len(result.outcomes) - 1)


def test_market_halt_aborts_remaining_candidates(make_orchestrator, fake_broker, seed_closed, session):
    seed_closed()
    fake_broker.order_errors = [MarketHaltedError("halted", reason="MARKET_HALTED")]
    result = make_orchestrator().run()

    assert result.aborted is True
    assert [o.status for o in result.outcomes] == ["rejected"]
    assert len(fake_broker.orders) == 1
    (order,) = _orders(session)
    assert order.status == "rejected"
    assert "halted" in order.error_message


def test_short_proposal_is_blocked_without_ledger_row(
    make_orchestrator, fake_broker, seed_closed, session
):
    class ShortSource:
        def propose(self, pair, agent, session_label):
            return SignalProposal(direction="short", confidence=70)

    seed_closed()
    result = make_orchestrator(signal_source=ShortSource()).run()

    assert result.outcomes and all(o.status == "blocked" for o in result.outcomes)
    assert fake_broker.orders == []
    shorts = session.scalar(
        select(func.count(models.Order.id)).where(models.Order.direction == "short")
    )
    assert shorts == 0


def test_halt_state_routes_to_shadow(make_orchestrator, fake_broker, seed_closed, session):
    seed_closed(wins=0, losses=6)
    result = make_orchestrator().run(TickRequest(force=True))

    assert result.governance.state.value == "HALT"
    assert [o.status for o in result.outcomes] == ["shadow_eval"]
    assert fake_broker.orders == []
    (order,) = _orders(session)
    assert order.governance_payload["shadowReason"].startswith("governance HALT")
    assert order.governance_payload["force"] is True
    assert order.governance_payload["multipliers"]["governance"] == 0.35


def test_circuit_breaker_forces_halt_config(make_orchestrator, fake_broker, seed_closed, session):
    seed_closed()
    session.add(
        models.GateBypass(
            gate_id="CIRCUIT_BREAKER:USD_CAD",
            pair="USD_CAD",
            reason="manual stop",
            expires_at=LONDON_OPEN_TS + timedelta(hours=1),
        )
    )
    session.commit()

    result = make_orchestrator().run()

    assert result.circuit_breakers == ["USD_CAD"]
    assert result.outcomes and all(o.status == "gated" for o in result.outcomes)
    assert any("circuit breaker active" in r for r in result.outcomes[0].reasons)
    assert fake_broker.orders == []


def test_expired_circuit_breaker_is_ignored(make_orchestrator, fake_broker, session):
    session.add(
        models.GateBypass(
            gate_id="CIRCUIT_BREAKER:ALL",
            pair=None,
            expires_at=LONDON_OPEN_TS - timedelta(minutes=1),
        )
    )
    session.commit()

    result = make_orchestrator().run(TickRequest(force=True))

    assert result.circuit_breakers == []
    assert result.outcomes[0].status == "filled"


def test_live_with_trading_disabled_is_shadow_only(
    make_orchestrator, fake_broker, practice_settings
):
    config = replace(practice_settings, environment="live", live_trading_enabled=False)
    result = make_orchestrator(config=config).run(TickRequest(force=True))

    assert result.should_execute is False
    assert [o.status for o in result.outcomes] == ["shadow_eval"]
    assert fake_broker.orders == []


def test_live_submission_requires_preflight(make_orchestrator, fake_broker, practice_settings):
    config = replace(practice_settings, environment="live", live_trading_enabled=True)
    result = make_orchestrator(config=config).run(TickRequest(force=True))

    assert result.skipped_reason == "preflight-failed"
    assert result.preflight is not None and not result.preflight.passed
    assert result.outcomes == []
    assert fake_broker.orders == []


def test_weekend_skips_tick(make_orchestrator, clock, fake_broker):
    clock.now = datetime(2026, 3, 7, 12, 0, tzinfo=timezone.utc)
    result = make_orchestrator().run()

    assert result.skipped_reason == "weekend"
    assert result.outcomes == []
    assert fake_broker.balance_calls == 0


def test_throttled_state_skips_asian_session(make_orchestrator, clock, add_order):
    for i in range(10):
        add_order(
            entry_price=1.3600,
            exit_price=1.3605 if i < 4 else 1.3598,
            slippage_pips=0.1,
            execution_quality_score=80.0,
        )
    clock.now = datetime(2026, 3, 4, 3, 0, tzinfo=timezone.utc)
    result = make_orchestrator().run()

    assert result.governance.state.value == "THROTTLED"
    assert result.skipped_reason == "session-restricted"


def test_no_eligible_agents_skips_tick(make_orchestrator):
    result = make_orchestrator().run()

    assert result.skipped_reason == "no-eligible-agents"
    assert result.outcomes == []


def test_balance_falls_back_to_default(make_orchestrator, fake_broker, practice_settings):
    fake_broker.balance_error = TransientBrokerError("timeout")
    result = make_orchestrator().run(TickRequest(force=True))

    assert result.account_balance == practice_settings.default_balance


def test_preflight_only_reports_without_signals(make_orchestrator, fake_broker, seed_closed):
    seed_closed(agent_id="trend-scalper")
    seed_closed(agent_id="london-breakout")
    result = make_orchestrator().run(TickRequest(preflight=True))

    assert result.skipped_reason == "preflight-only"
    assert result.preflight.passed is True
    assert fake_broker.orders == []
    payload = result.to_dict()
    assert {c["name"] for c in payload["preflight"]["checks"]} == {
        "no_short_executions",
        "eligible_agent_present",
        "coalition_minimum",
    }
    assert all(c["pass"] for c in payload["preflight"]["checks"])
    assert payload["agentSnapshot"]["eligibleCount"] == 2


def test_tick_result_serialises_decision_trail(make_orchestrator, seed_closed):
    seed_closed()
    payload = make_orchestrator().run().to_dict()

    assert payload["executionConfig"] == {"environment": "practice", "shouldExecute": True}
    assert payload["governance"]["state"] == "NORMAL"
    assert set(payload["governance"]["windows"]) == {"w20", "w50", "w200"}
    assert payload["summary"]["total"] == len(payload["signals"])
    assert payload["session"] == "london-open"
    assert payload["regime"] == "ignition"


def test_policy_rows_do_not_dilute_halt_windows(
    make_orchestrator, fake_broker, add_order, seed_closed, session
):
    seed_closed(wins=2, losses=18)
    assert make_orchestrator().run(TickRequest(force=True)).governance.state.value == "HALT"

    for i in range(260):
        add_order(
            status="shadow_eval",
            created_at=LONDON_OPEN_TS - timedelta(minutes=20) + timedelta(seconds=i),
        )
    result = make_orchestrator().run(TickRequest(force=True))

    assert result.governance.state.value == "HALT"
    assert "All metrics nominal" not in result.governance.reasons
    assert fake_broker.orders == []


def test_unexpected_order_failure_finalizes_row_as_rejected(make_orchestrator, fake_broker, session):
    fake_broker.order_errors = [ValueError("could not convert string to float: 'abc'")]
    result = make_orchestrator().run(TickRequest(force=True))

    (outcome,) = result.outcomes
    assert outcome.status == "rejected"
    assert outcome.error.startswith("BROKER_RESPONSE_INVALID")
    (order,) = _orders(session)
    assert order.status == "rejected"
    assert "could not convert" in order.error_message


def test_unexpected_balance_failure_uses_default(make_orchestrator, fake_broker, practice_settings):
    fake_broker.balance_error = KeyError("account")
    result = make_orchestrator().run(TickRequest(force=True))

    assert result.account_balance == practice_settings.default_balance
    assert [o.status for o in result.outcomes] == ["filled"]


class _HttpResp:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self.headers = {}
        self._payload = payload
        self.text = text or str(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


def test_html_order_response_from_oanda_is_rejected(monkeypatch, session, practice_settings, clock):
    def fake_request(method, url, **kwargs):
        if url.endswith("/summary"):
            return _HttpResp(200, {"account": {"balance": "100000.00"}})
        if url.endswith("/pricing"):
            book = {"bids": [{"price": "1.36000"}], "asks": [{"price": "1.36010"}]}
            return _HttpResp(200, {"prices": [book]})
        return _HttpResp(200, text="<html>upstream error</html>")

    monkeypatch.setattr(oanda_module.requests, "request", fake_request)
    monkeypatch.setattr(oanda_module.time, "sleep", lambda _s: None)
    client = oanda_module.OandaClient("tok", "001-001", "https://api.example.com", retries=2)
    orchestrator = ExecutionOrchestrator(
        session, client, config=practice_settings, clock=clock, sleep=lambda _s: None
    )

    result = orchestrator.run(TickRequest(force=True))

    assert [o.status for o in result.outcomes] == ["rejected"]
    assert result.aborted is False
    (order,) = _orders(session)
    assert (order.status, order.currency_pair) == ("rejected", "USD_CAD")
    assert "Non-JSON" in order.error_message


def test_direction_breach_at_submission_is_blocked(
    monkeypatch, make_orchestrator, fake_broker, seed_closed
):
    seed_closed()
    orchestrator = make_orchestrator()
    tampered = []

    def insert_as_short(state, cand, status, reasons, payload, units, gate):
        order = models.Order(
            signal_id=cand.signal_id,
            idempotency_key=cand.idempotency_key,
            currency_pair=cand.pair,
            direction="short",
            units=units,
            status=status,
            environment="practice",
            agent_id=cand.agent_id,
        )
        tampered.append(order)
        return order

    monkeypatch.setattr(orchestrator, "_insert", insert_as_short)
    critical = []
    sink_id = logger.add(lambda m: critical.append(m.record["message"]), level="CRITICAL")
    try:
        result = orchestrator.run()
    finally:
        logger.remove(sink_id)

    statuses = [o.status for o in result.outcomes]
    assert len(statuses) >= 2 and set(statuses) == {"blocked"}
    assert result.outcomes[0].error.startswith("DIRECTION_INVARIANT")
    assert "broker" in result.outcomes[0].error
    assert all("direction breach" in " ".join(o.reasons) for o in result.outcomes[1:])
    assert len(tampered) == 1 and tampered[0].status == "blocked"
    assert fake_broker.orders == []
    assert any("DIRECTION INVARIANT BREACH at broker" in m for m in critical)


def _route_to_eur_usd(monkeypatch):
    monkeypatch.setattr(executor_module, "select_pair", lambda sampler: "EUR_USD")
    monkeypatch.setattr(executor_module, "classify_discovery", forced_discovery)
    monkeypatch.setattr(
        executor_module,
        "run_friction_gate",
        lambda pair, budget, k: GateResult(True, "PASS", 90, 10.0, 1.0, 10.0),
    )


def test_secondary_pair_deployment_is_capped(
    make_orchestrator, fake_broker, seed_closed, session, monkeypatch
):
    seed_closed()
    _route_to_eur_usd(monkeypatch)

    result = make_orchestrator().run()

    assert result.outcomes[0].status == "filled"
    assert fake_broker.orders[0][0] == "EUR_USD"
    order = next(o for o in _orders(session) if o.status == "filled")
    multipliers = order.governance_payload["multipliers"]
    assert multipliers["pair"] == 1.0
    assert multipliers["discovery"] == 0.7


def test_underperforming_secondary_pair_is_cut_to_quarter(
    make_orchestrator, fake_broker, seed_closed, add_order, session, monkeypatch
):
    seed_closed()
    # 2 wins of +5p, 3 losses of -6p: expectancy -1.6p, restricted but not banned
    for exit_price in (1.1005, 1.1005, 1.0994, 1.0994, 1.0994):
        add_order(
            currency_pair="EUR_USD",
            entry_price=1.1000,
            exit_price=exit_price,
            slippage_pips=0.1,
            execution_quality_score=80.0,
        )
    _route_to_eur_usd(monkeypatch)

    result = make_orchestrator().run()

    assert result.allocations["EUR_USD"].restricted
    assert result.outcomes[0].status == "filled"
    order = next(o for o in _orders(session) if o.status == "filled")
    assert order.governance_payload["multipliers"]["pair"] == 0.25

from __future__ import annotations

from datetime import datetime, timezone

import numpy as np
import pytest

from fxgov.core.models import TradeRecord
from fxgov.db.repositories.orders import OrderRepository
from fxgov.governance.metrics import (
    compute_rolling_metrics,
    neutral_metrics,
    profit_factor,
    slippage_drift,
)
from fxgov.governance.state import (
    STATE_CONFIGS,
    GovernanceState,
    determine_governance_state,
)
from fxgov.governance.tiers import aggregate_agent_stats, build_agent_roster
from fxgov.orchestration.preflight import run_preflight

CUTOVER = datetime(2026, 2, 1, tzinfo=timezone.utc)


def closed(pips: float, *, pair="EUR_USD", slip=0.1, quality=80.0) -> TradeRecord:
    entry = 1.1000
    return TradeRecord(
        agent_id="a1",
        pair=pair,
        direction="long",
        status="closed",
        entry_price=entry,
        exit_price=entry + pips * 0.0001,
        slippage_pips=slip,
        execution_quality=quality,
    )


def rejected() -> TradeRecord:
    return TradeRecord(agent_id="a1", pair="EUR_USD", direction="long", status="rejected")


def gated() -> TradeRecord:
    return TradeRecord(agent_id="a1", pair="EUR_USD", direction="long", status="gated")


def windows(records):
    return [compute_rolling_metrics(records, w) for w in (20, 50, 200)]


def test_fewer_than_three_filled_is_neutral():
    m = compute_rolling_metrics([closed(5), closed(-3)], 20)
    assert m == neutral_metrics(20, trade_count=2)
    assert m.win_rate == 0.5
    assert m.profit_factor == 1.0


def test_window_ignores_policy_outcomes():
    records = [gated()] * 10 + [closed(10), closed(-5), closed(10)]
    m = compute_rolling_metrics(records, 20)
    assert m.trade_count == 3
    assert m.win_rate == pytest.approx(2 / 3)
    assert m.expectancy == pytest.approx(5.0)


def test_window_takes_most_recent_records():
    records = [closed(-5)] * 20 + [closed(10)] * 20
    assert compute_rolling_metrics(records, 20).win_rate == 0.0
    assert compute_rolling_metrics(records, 50).win_rate == pytest.approx(0.5)


def test_rejection_rate_counts_rejected_executions():
    records = [rejected(), rejected(), closed(5), closed(5), closed(5), closed(5)]
    m = compute_rolling_metrics(records, 20)
    assert m.rejection_rate == pytest.approx(2 / 6)


def test_profit_factor_without_losses_is_capped():
    assert profit_factor(np.array([3.0, 2.0])) == 99.0
    assert profit_factor(np.array([])) == 0.0
    assert profit_factor(np.array([4.0, -2.0])) == pytest.approx(2.0)


def test_slippage_drift_needs_eight_readings():
    assert slippage_drift([1.0] * 7) is False
    assert slippage_drift([1.0] * 5 + [0.5] * 3) is True
    assert slippage_drift([0.5] * 8) is False


def test_empty_history_is_normal():
    decision = determine_governance_state(*windows([]))
    assert decision.state is GovernanceState.NORMAL
    assert decision.allows_live_submission


def test_losing_streak_halts():
    # 4 wins, 16 losses of -5: WR 20%, expectancy -3
    records = [closed(-5)] * 16 + [closed(5)] * 4
    decision = determine_governance_state(*windows(records))
    assert decision.state is GovernanceState.HALT
    assert decision.config.friction_k == 10.0
    assert not decision.allows_live_submission
    assert decision.reasons[0].startswith("HALT")


def test_low_win_rate_throttles():
    records = [closed(5)] * 4 + [closed(-2)] * 6
    decision = determine_governance_state(*windows(records))
    assert decision.state is GovernanceState.THROTTLED
    assert decision.config.aggressiveness("asian") == 0.0


def test_mediocre_win_rate_is_defensive():
    records = [closed(5)] * 5 + [closed(-3)] * 5
    decision = determine_governance_state(*windows(records))
    assert decision.state is GovernanceState.DEFENSIVE
    assert any("WR" in r for r in decision.reasons)


def test_small_samples_do_not_trigger_win_rate_guards():
    records = [closed(-1), closed(-1), closed(-1), closed(-1)]
    decision = determine_governance_state(*windows(records))
    assert decision.state is GovernanceState.NORMAL


def test_state_configs_tighten_monotonically():
    order = [
        GovernanceState.NORMAL,
        GovernanceState.DEFENSIVE,
        GovernanceState.THROTTLED,
        GovernanceState.HALT,
    ]
    ks = [STATE_CONFIGS[s].friction_k for s in order]
    sizing = [STATE_CONFIGS[s].sizing_multiplier for s in order]
    assert ks == sorted(ks)
    assert sizing == sorted(sizing, reverse=True)


def test_losing_history_halts_and_fails_preflight(session):
    # 25 closed trades, 8 wins, net -120 pips
    records = [closed(-10), closed(-10), closed(5)] * 8 + [closed(0)]
    assert sum(r.pips for r in records) == pytest.approx(-120)
    assert sum(1 for r in records if r.pips > 0) == 8

    decision = determine_governance_state(*windows(records))
    assert decision.state is GovernanceState.HALT
    assert decision.reasons and decision.reasons[0].startswith("HALT")

    roster = build_agent_roster(aggregate_agent_stats(records))
    assert roster.eligible_count == 0
    report = run_preflight(OrderRepository(session), roster, CUTOVER)
    assert report.passed is False


def test_identical_windows_give_identical_decisions():
    records = [closed(5)] * 5 + [closed(-3)] * 5
    first = determine_governance_state(*windows(records))
    second = determine_governance_state(*windows(list(records)))
    assert first == second
    assert first.state is GovernanceState.DEFENSIVE

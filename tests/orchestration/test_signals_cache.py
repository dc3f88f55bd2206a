from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fxgov.governance.sampling import WeightedSampler
from fxgov.governance.sessions import ASIAN, LONDON_OPEN, ROLLOVER, SESSION_BUDGETS
from fxgov.governance.state import STATE_CONFIGS, GovernanceState
from fxgov.orchestration.cache import TickCaches, TTLCache
from fxgov.orchestration.signals import (
    RandomSignalSource,
    pair_weights,
    select_pair,
    signal_count,
)

T0 = datetime(2026, 3, 4, 8, 0, tzinfo=timezone.utc)


class StubSampler(WeightedSampler):
    def __init__(self, extra: int) -> None:
        super().__init__(seed=0)
        self.extra = extra

    def randint(self, low: int, high: int) -> int:
        return self.extra


def test_signal_count_zero_when_session_closed():
    config = STATE_CONFIGS[GovernanceState.THROTTLED]
    assert signal_count(config, SESSION_BUDGETS[ASIAN], StubSampler(3)) == 0


def test_signal_count_respects_session_density():
    config = STATE_CONFIGS[GovernanceState.NORMAL]
    assert signal_count(config, SESSION_BUDGETS[LONDON_OPEN], StubSampler(3)) == 6
    assert signal_count(config, SESSION_BUDGETS[ROLLOVER], StubSampler(3)) == 1


def test_signal_count_floor_is_one():
    config = STATE_CONFIGS[GovernanceState.HALT]
    # 3 * 0.15 * 0.3 rounds to 0, floored to one candidate
    assert signal_count(config, SESSION_BUDGETS[LONDON_OPEN], StubSampler(0)) == 1


def test_primary_pair_takes_half_the_weight():
    pairs, weights = pair_weights()
    assert pairs[0] == "USD_CAD"
    assert weights[0] == 0.5
    assert sum(weights) == pytest.approx(1.0)


def test_select_pair_only_returns_focus_pairs():
    sampler = WeightedSampler(seed=5)
    picks = {select_pair(sampler) for _ in range(200)}
    assert picks <= {"USD_CAD", "AUD_USD", "EUR_USD", "EUR_GBP"}
    assert "USD_CAD" in picks


def test_random_signal_source_is_long_only():
    source = RandomSignalSource(WeightedSampler(seed=9))
    proposals = [source.propose("EUR_USD", None, LONDON_OPEN) for _ in range(50)]
    assert {p.direction for p in proposals} == {"long"}
    assert all(60 <= p.confidence <= 80 for p in proposals)


def test_ttl_cache_expires_entries():
    cache = TTLCache(ttl=timedelta(seconds=2))
    cache.set("USD_CAD", 1.36, T0)
    assert cache.get("USD_CAD", T0 + timedelta(seconds=1)) == 1.36
    assert cache.get("USD_CAD", T0 + timedelta(seconds=2)) is None
    assert len(cache) == 0


def test_ttl_cache_evicts_oldest_when_full():
    cache = TTLCache(ttl=timedelta(seconds=60), max_size=2)
    cache.set("a", 1, T0)
    cache.set("b", 2, T0 + timedelta(seconds=1))
    cache.set("c", 3, T0 + timedelta(seconds=2))
    assert cache.get("a", T0) is None
    assert cache.is_fresh("c", T0 + timedelta(seconds=3))


def test_tick_caches_share_balance_between_ticks(make_orchestrator, fake_broker):
    caches = TickCaches()
    orchestrator = make_orchestrator(caches=caches)
    orchestrator.run()
    orchestrator.run()
    assert fake_broker.balance_calls == 1
    assert caches.balance.get("practice", T0 + timedelta(minutes=30)) == 100_000.0

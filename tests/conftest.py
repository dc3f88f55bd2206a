from __future__ import annotations

import os
import random
import warnings
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

import pytest
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("OANDA_ENV", "practice")

from fxgov.config import settings  # noqa: E402
from fxgov.db import metadata, models  # noqa: E402
from fxgov.execution.oanda_client import BrokerFill, Quote  # noqa: E402
from fxgov.governance.sampling import WeightedSampler  # noqa: E402
from fxgov.logging_utils import setup_test_logging  # noqa: E402
from fxgov.orchestration.executor import ExecutionOrchestrator  # noqa: E402

warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    module=r"sentry_sdk\.integrations\.fastapi",
)

# Wednesday, London open, ignition regime
LONDON_OPEN_TS = datetime(2026, 3, 4, 8, 30, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def load_env():
    load_dotenv(override=False)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_test_logging()
    yield


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    factory = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False, future=True)
    db = factory()
    try:
        yield db
    finally:
        db.close()


class FakeBroker:
    """In-memory broker double; ``order_errors`` are raised in order."""

    def __init__(self) -> None:
        self.balance = 100_000.0
        self.balance_error: Optional[Exception] = None
        self.bid = 1.36000
        self.ask = 1.36010
        self.fill_price = 1.36012
        self.order_errors: List[Exception] = []
        self.orders: List[tuple] = []
        self.balance_calls = 0
        self.healthy = True

    def get_account_balance(self) -> float:
        self.balance_calls += 1
        if self.balance_error is not None:
            raise self.balance_error
        return self.balance

    def health_check(self) -> bool:
        return self.healthy

    def get_price(self, pair: str) -> Quote:
        return Quote(pair=pair, bid=self.bid, ask=self.ask)

    def place_market_order(self, pair: str, units: int) -> BrokerFill:
        self.orders.append((pair, units))
        if self.order_errors:
            raise self.order_errors.pop(0)
        return BrokerFill(
            order_id=str(1000 + len(self.orders)),
            trade_id=str(2000 + len(self.orders)),
            price=self.fill_price,
            units=units,
            latency_ms=45,
        )


class FixedRandom(random.Random):
    """Always the first weighted item, the top of every integer range."""

    def random(self) -> float:
        return 0.0

    def randint(self, a: int, b: int) -> int:
        return b

    def uniform(self, a: float, b: float) -> float:
        return (a + b) / 2.0


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def practice_settings():
    return replace(
        settings,
        environment="practice",
        live_trading_enabled=False,
        submission_delay_ms=150,
        default_balance=100_000.0,
        protected_pairs=("USD_CAD",),
    )


@pytest.fixture
def clock():
    """Mutable clock: assign ``clock.now`` to move time."""

    class _Clock:
        now = LONDON_OPEN_TS

        def __call__(self) -> datetime:
            return self.now

    return _Clock()


@pytest.fixture
def make_orchestrator(session, fake_broker, practice_settings, clock):
    sleeps: List[float] = []

    def _build(**kwargs: Any) -> ExecutionOrchestrator:
        kwargs.setdefault("config", practice_settings)
        kwargs.setdefault("sampler", WeightedSampler(rng=FixedRandom()))
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", sleeps.append)
        orchestrator = ExecutionOrchestrator(session, fake_broker, **kwargs)
        orchestrator.sleeps = sleeps  # type: ignore[attr-defined]
        return orchestrator

    return _build


@pytest.fixture
def add_order(session) -> Callable[..., models.Order]:
    counter = {"n": 0}

    def _add(**fields: Any) -> models.Order:
        counter["n"] += 1
        n = counter["n"]
        defaults = dict(
            signal_id=f"seed-{n}",
            idempotency_key=f"seed-{n}",
            currency_pair="USD_CAD",
            direction="long",
            units=1000,
            status="closed",
            environment="practice",
            agent_id="trend-scalper",
            created_at=LONDON_OPEN_TS - timedelta(hours=1, minutes=n),
        )
        defaults.update(fields)
        order = models.Order(**defaults)
        session.add(order)
        session.commit()
        return order

    return _add


@pytest.fixture
def seed_closed(add_order):
    """Closed USD_CAD longs: ``wins`` at +10p and ``losses`` at -5p."""

    def _seed(agent_id: str = "trend-scalper", wins: int = 7, losses: int = 3, **fields):
        rows = []
        for i in range(wins + losses):
            exit_price = 1.3610 if i < wins else 1.3595
            rows.append(
                add_order(
                    agent_id=agent_id,
                    entry_price=1.3600,
                    exit_price=exit_price,
                    slippage_pips=0.1,
                    execution_quality_score=80.0,
                    **fields,
                )
            )
        return rows

    return _seed

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import fxgov.main as main_module
from fxgov.api import deps


@pytest.fixture
def client(session, fake_broker, practice_settings):
    app = main_module.app
    app.dependency_overrides[deps.db_session] = lambda: session
    app.dependency_overrides[deps.broker_client] = lambda: fake_broker
    app.dependency_overrides[deps.engine_settings] = lambda: practice_settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_force_tick_returns_decision_trail(client, fake_broker):
    resp = client.post("/execution/tick", json={"force": True, "pair": "USD_CAD"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["executionConfig"]["environment"] == "practice"
    assert data["signals"][0]["status"] == "filled"
    assert data["governance"]["state"] == "NORMAL"
    assert fake_broker.orders[0][0] == "USD_CAD"
    assert resp.headers["X-Request-ID"]


def test_short_direction_is_rejected_at_the_boundary(client, fake_broker):
    resp = client.post("/execution/tick", json={"force": True, "direction": "short"})

    assert resp.status_code == 422
    assert fake_broker.orders == []


def test_malformed_pair_is_rejected(client):
    resp = client.post("/execution/tick", json={"force": True, "pair": "usdcad"})
    assert resp.status_code == 422


def test_preflight_endpoint_never_submits(client, fake_broker):
    resp = client.get("/execution/preflight")

    assert resp.status_code == 200
    data = resp.json()
    assert data["skippedReason"] == "preflight-only"
    assert data["preflight"]["passed"] is False
    assert fake_broker.orders == []


def test_orders_lists_ledger_rows(client, add_order):
    add_order(currency_pair="EUR_GBP", status="filled", entry_price=0.8512)

    resp = client.get("/orders/?limit=10")

    assert resp.status_code == 200
    (row,) = resp.json()
    assert row["currency_pair"] == "EUR_GBP"
    assert row["status"] == "filled"
    assert row["direction"] == "long"


def test_health_live(client):
    resp = client.get("/health/live")
    assert resp.status_code == 200
    assert resp.json()["service"] == "fxgov"


def test_health_config_reports_checks(client):
    data = client.get("/health/config").json()
    assert set(data["checks"]) == {"has_db_url", "has_broker_credentials"}
    assert data["execution"]["long_only_cutover"].startswith("2026-02-01")


def test_health_broker_reports_degraded(client, fake_broker):
    assert client.get("/health/broker").json()["status"] == "ok"

    fake_broker.healthy = False
    data = client.get("/health/broker").json()
    assert data["status"] == "degraded"
    assert data["environment"] == "practice"

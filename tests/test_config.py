from __future__ import annotations

from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timezone

import pytest

from fxgov.config import Settings, _parse_cutover, settings
from fxgov.utils.env import EnvSettings

_KEYS = (
    "PORT",
    "OANDA_ENV",
    "LIVE_TRADING_ENABLED",
    "SUBMISSION_DELAY_MS",
    "PROTECTED_PAIRS",
    "HTTP_TIMEOUT",
    "HTTP_TIMEOUT_SECS",
    "HTTP_RETRIES",
    "HTTP_RETRY_ATTEMPTS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_env_defaults_are_deterministic(clean_env):
    env = EnvSettings()

    assert env.PORT == 8000
    assert env.OANDA_ENV == "practice"
    assert env.IS_LIVE is False
    assert env.LIVE_TRADING_ENABLED is False
    assert env.SUBMISSION_DELAY_MS == 150
    assert env.PROTECTED_PAIRS == ["USD_CAD"]
    assert env.HTTP_TIMEOUT_SECS == 10
    assert env.HTTP_RETRY_ATTEMPTS == 2


def test_env_overrides(clean_env):
    clean_env.setenv("OANDA_ENV", "LIVE")
    clean_env.setenv("LIVE_TRADING_ENABLED", "true")
    clean_env.setenv("PROTECTED_PAIRS", "USD_CAD, EUR_GBP")
    clean_env.setenv("HTTP_RETRIES", "5")

    env = EnvSettings()

    assert env.OANDA_ENV == "live"
    assert env.IS_LIVE is True
    assert env.LIVE_TRADING_ENABLED is True
    assert env.PROTECTED_PAIRS == ["USD_CAD", "EUR_GBP"]
    assert env.HTTP_RETRY_ATTEMPTS == 5


def test_invalid_numbers_fall_back_to_defaults(clean_env):
    clean_env.setenv("PORT", "not-a-port")
    assert EnvSettings().PORT == 8000


def test_cutover_parsing():
    assert _parse_cutover("2026-02-01T00:00:00Z") == datetime(2026, 2, 1, tzinfo=timezone.utc)
    assert _parse_cutover("2026-02-01T00:00:00").tzinfo is not None


@pytest.mark.parametrize(
    "environment,enabled,expected",
    [("practice", False, True), ("live", False, False), ("live", True, True)],
)
def test_should_execute_matrix(environment, enabled, expected):
    config = replace(settings, environment=environment, live_trading_enabled=enabled)
    assert config.should_execute is expected
    assert config.is_live is (environment == "live")


def test_settings_are_frozen():
    with pytest.raises(FrozenInstanceError):
        settings.environment = "live"  # type: ignore[misc]
    assert isinstance(settings, Settings)

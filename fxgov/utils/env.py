from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable, List

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


def get_str(name: str, default: str = "") -> str:
    """Return env var as a string with a sensible default."""
    value = os.getenv(name)
    return value if value not in (None, "") else default


def get_bool(name: str, default: bool = False) -> bool:
    """Coerce env var into bool (accepts 1/0, true/false, yes/no)."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def get_int(name: str, default: int) -> int:
    """Coerce env var into int, falling back on conversion errors."""
    raw = os.getenv(name)
    try:
        return int(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        return default


def get_float(name: str, default: float) -> float:
    """Coerce env var into float, falling back on conversion errors."""
    raw = os.getenv(name)
    try:
        return float(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        return default


def get_float_chain(names: Iterable[str], default: float) -> float:
    """Return the first valid float from a list of env vars."""
    for name in names:
        raw = os.getenv(name)
        if raw is None or not str(raw).strip():
            continue
        try:
            return float(str(raw).strip())
        except ValueError:
            continue
    return default


def get_int_chain(names: Iterable[str], default: int) -> int:
    """Return the first valid int from a list of env vars."""
    for name in names:
        raw = os.getenv(name)
        if raw is None or not str(raw).strip():
            continue
        try:
            return int(str(raw).strip())
        except ValueError:
            continue
    return default


def get_csv(name: str, default: str = "") -> List[str]:
    """Parse comma-delimited strings into a list of trimmed tokens."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        raw = default
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


@dataclass(frozen=True)
class EnvSettings:
    """Runtime configuration sourced from environment variables."""

    #: HTTP port for FastAPI server.
    PORT: int = field(default_factory=lambda: get_int("PORT", 8000))

    #: Broker environment the engine routes to (practice|live).
    OANDA_ENV: str = field(
        default_factory=lambda: get_str("OANDA_ENV", "practice").lower()
    )
    #: Practice-account API token.
    OANDA_API_TOKEN: str = field(default_factory=lambda: get_str("OANDA_API_TOKEN", ""))
    #: Practice account id.
    OANDA_ACCOUNT_ID: str = field(
        default_factory=lambda: get_str("OANDA_ACCOUNT_ID", "")
    )
    #: Live-account API token.
    OANDA_LIVE_API_TOKEN: str = field(
        default_factory=lambda: get_str("OANDA_LIVE_API_TOKEN", "")
    )
    #: Live account id.
    OANDA_LIVE_ACCOUNT_ID: str = field(
        default_factory=lambda: get_str("OANDA_LIVE_ACCOUNT_ID", "")
    )
    #: Practice REST host.
    OANDA_PRACTICE_URL: str = field(
        default_factory=lambda: get_str(
            "OANDA_PRACTICE_URL", "https://api-fxpractice.oanda.com"
        )
    )
    #: Live REST host.
    OANDA_LIVE_URL: str = field(
        default_factory=lambda: get_str("OANDA_LIVE_URL", "https://api-fxtrade.oanda.com")
    )
    #: Live submissions are shadow-evaluated unless this is true.
    LIVE_TRADING_ENABLED: bool = field(
        default_factory=lambda: get_bool("LIVE_TRADING_ENABLED", False)
    )

    #: Balance used when the account summary is unavailable.
    DEFAULT_ACCOUNT_BALANCE: float = field(
        default_factory=lambda: get_float("DEFAULT_ACCOUNT_BALANCE", 100_000.0)
    )
    #: Pause between consecutive broker submissions (milliseconds).
    SUBMISSION_DELAY_MS: int = field(
        default_factory=lambda: get_int("SUBMISSION_DELAY_MS", 150)
    )
    #: ISO-8601 timestamp after which no short execution may exist.
    LONG_ONLY_CUTOVER: str = field(
        default_factory=lambda: get_str("LONG_ONLY_CUTOVER", "2026-02-01T00:00:00+00:00")
    )
    #: Pairs exempt from ban/restriction.
    PROTECTED_PAIRS: List[str] = field(
        default_factory=lambda: get_csv("PROTECTED_PAIRS", "USD_CAD")
    )
    #: Trailing ledger rows loaded for governance.
    GOVERNANCE_HISTORY_LIMIT: int = field(
        default_factory=lambda: get_int("GOVERNANCE_HISTORY_LIMIT", 250)
    )
    #: Lookback for per-agent statistics (days).
    AGENT_STATS_DAYS: int = field(default_factory=lambda: get_int("AGENT_STATS_DAYS", 90))

    #: Full DATABASE_URL if provided.
    DATABASE_URL: str = field(default_factory=lambda: get_str("DATABASE_URL", ""))

    #: Default HTTP request timeout (seconds).
    HTTP_TIMEOUT_SECS: int = field(
        default_factory=lambda: get_int_chain(("HTTP_TIMEOUT", "HTTP_TIMEOUT_SECS"), 10)
    )
    #: Retry attempts for transient broker failures.
    HTTP_RETRY_ATTEMPTS: int = field(
        default_factory=lambda: get_int_chain(("HTTP_RETRIES", "HTTP_RETRY_ATTEMPTS"), 2)
    )
    #: Linear retry backoff unit (seconds).
    HTTP_RETRY_BACKOFF_SEC: float = field(
        default_factory=lambda: get_float_chain(
            ("HTTP_BACKOFF", "HTTP_RETRY_BACKOFF_SEC"), 0.5
        )
    )

    #: True when the engine targets the live account.
    IS_LIVE: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "IS_LIVE", self.OANDA_ENV == "live")


ENV = EnvSettings()

PORT = ENV.PORT
OANDA_ENV = ENV.OANDA_ENV
LIVE_TRADING_ENABLED = ENV.LIVE_TRADING_ENABLED
DATABASE_URL = ENV.DATABASE_URL
HTTP_TIMEOUT_SECS = ENV.HTTP_TIMEOUT_SECS
HTTP_RETRY_ATTEMPTS = ENV.HTTP_RETRY_ATTEMPTS
HTTP_RETRY_BACKOFF_SEC = ENV.HTTP_RETRY_BACKOFF_SEC

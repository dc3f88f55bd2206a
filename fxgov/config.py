from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Tuple

from fxgov import __version__
from fxgov.utils.env import ENV


def _parse_cutover(raw: str) -> datetime:
    value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _token() -> str:
    return ENV.OANDA_LIVE_API_TOKEN if ENV.IS_LIVE else ENV.OANDA_API_TOKEN


def _account_id() -> str:
    return ENV.OANDA_LIVE_ACCOUNT_ID if ENV.IS_LIVE else ENV.OANDA_ACCOUNT_ID


def _base_url() -> str:
    return ENV.OANDA_LIVE_URL if ENV.IS_LIVE else ENV.OANDA_PRACTICE_URL


@dataclass(frozen=True)
class Settings:
    """
    Engine settings snapshot.

    Attributes:
        VERSION (str): The application version.
        port (int): The port to run the application on.
        environment (str): Broker environment, ``practice`` or ``live``.
        live_trading_enabled (bool): Whether live-environment orders reach the broker.
        oanda_token (str): API token for the selected environment.
        oanda_account_id (str): Account id for the selected environment.
        oanda_base_url (str): REST host for the selected environment.
        default_balance (float): Balance assumed when the account summary fails.
        submission_delay_ms (int): Pause between broker submissions.
        long_only_cutover (datetime): No short execution may exist after this instant.
        protected_pairs (tuple): Pairs the allocator never bans or restricts.
        history_limit (int): Ledger rows loaded for governance per tick.
        agent_stats_days (int): Lookback for per-agent statistics.
        database_url (str): The database URL.
        http_timeout (int): Broker request timeout in seconds.
        http_retries (int): Retries for transient broker failures.
        http_backoff (float): Linear backoff unit in seconds.
    """

    VERSION: str = __version__
    port: int = ENV.PORT
    environment: str = ENV.OANDA_ENV
    live_trading_enabled: bool = ENV.LIVE_TRADING_ENABLED
    oanda_token: str = field(default_factory=_token)
    oanda_account_id: str = field(default_factory=_account_id)
    oanda_base_url: str = field(default_factory=_base_url)
    default_balance: float = ENV.DEFAULT_ACCOUNT_BALANCE
    submission_delay_ms: int = ENV.SUBMISSION_DELAY_MS
    long_only_cutover: datetime = field(
        default_factory=lambda: _parse_cutover(ENV.LONG_ONLY_CUTOVER)
    )
    protected_pairs: Tuple[str, ...] = tuple(ENV.PROTECTED_PAIRS)
    history_limit: int = ENV.GOVERNANCE_HISTORY_LIMIT
    agent_stats_days: int = ENV.AGENT_STATS_DAYS
    database_url: str = ENV.DATABASE_URL
    http_timeout: int = ENV.HTTP_TIMEOUT_SECS
    http_retries: int = ENV.HTTP_RETRY_ATTEMPTS
    http_backoff: float = ENV.HTTP_RETRY_BACKOFF_SEC

    @property
    def is_live(self) -> bool:
        return self.environment == "live"

    @property
    def should_execute(self) -> bool:
        """Practice always executes; live only when explicitly enabled."""
        return not self.is_live or self.live_trading_enabled


settings = Settings()

__all__ = ["settings", "Settings"]

"""Centralized application settings powered by Pydantic.

Environment matrix:

| Section  | Environment Variable            | Default                     | Purpose                                  |
|----------|---------------------------------|-----------------------------|------------------------------------------|
| Sentry   | `SENTRY_DSN`                    | `None`                      | Sentry ingest DSN                        |
| Sentry   | `SENTRY_TRACES_SAMPLE_RATE`     | `0.0`                       | Fraction of transactions to trace        |
| Sentry   | `SENTRY_ENVIRONMENT`            | `None`                      | Deployment environment label             |
| Database | `DATABASE_URL`                  | `None`                      | Primary Postgres connection URI          |
| Database | `TEST_DATABASE_URL`             | `None`                      | Fallback URI for tests/CI                |
| Database | `PGHOST`                        | `localhost`                 | Postgres host when building DSN manually |
| Database | `PGPORT`                        | `5432`                      | Postgres port                            |
| Database | `PGDATABASE`                    | `fxgov`                     | Postgres database                        |
| Database | `PGUSER`                        | `postgres`                  | Postgres user                            |
| Database | `PGPASSWORD`                    | `""`                        | Postgres password                        |
| Database | `PGSSLMODE`                     | `prefer`                    | Postgres SSL mode                        |
| Broker   | `OANDA_ENV`                     | `practice`                  | Target broker environment                |
| Broker   | `OANDA_API_TOKEN`               | `None`                      | Practice token                           |
| Broker   | `OANDA_ACCOUNT_ID`              | `None`                      | Practice account                         |
| Broker   | `OANDA_LIVE_API_TOKEN`          | `None`                      | Live token                               |
| Broker   | `OANDA_LIVE_ACCOUNT_ID`         | `None`                      | Live account                             |
| Broker   | `LIVE_TRADING_ENABLED`          | `false`                     | Live orders reach the broker             |

Settings are read at instantiation and are intended to be treated as read-only.
"""

from __future__ import annotations

from functools import cached_property
from urllib.parse import quote_plus

from pydantic import BaseModel, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class _SettingsBase(BaseSettings):
    """Common configuration for BaseSettings subclasses."""

    model_config = SettingsConfigDict(
        env_prefix="",
        populate_by_name=True,
        extra="ignore",
        case_sensitive=True,
        frozen=True,
    )


class SentrySettings(_SettingsBase):
    """Sentry SDK configuration."""

    dsn: str | None = Field(default=None, alias="SENTRY_DSN")
    traces_sample_rate: float = Field(default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE")
    environment: str | None = Field(default=None, alias="SENTRY_ENVIRONMENT")

    @computed_field
    @property
    def enabled(self) -> bool:
        return bool(self.dsn)


class DatabaseSettings(_SettingsBase):
    """Postgres configuration, supports DSN override or manual assembly."""

    url: str | None = Field(default=None, alias="DATABASE_URL")
    test_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    host: str = Field(default="localhost", alias="PGHOST")
    port: int = Field(default=5432, alias="PGPORT")
    name: str = Field(default="fxgov", alias="PGDATABASE")
    user: str = Field(default="postgres", alias="PGUSER")
    password: str = Field(default="", alias="PGPASSWORD")
    sslmode: str = Field(default="prefer", alias="PGSSLMODE")

    @field_validator("port", mode="before")
    @classmethod
    def _coerce_port(cls, value: int | str | None) -> int:
        if value in (None, ""):
            return 5432
        try:
            return int(value)
        except (TypeError, ValueError):
            return 5432

    @computed_field
    @property
    def primary_dsn(self) -> str | None:
        return self.url or self.test_url

    @cached_property
    def assembled_dsn(self) -> str:
        user = quote_plus(self.user or "")
        password = quote_plus(self.password or "")
        return (
            f"postgresql+psycopg2://{user}:{password}@"
            f"{self.host}:{self.port}/{self.name}?sslmode={self.sslmode}"
        )

    def effective_dsn(self) -> str | None:
        return self.primary_dsn or self.assembled_dsn


class BrokerSettings(_SettingsBase):
    """Broker credentials and the live-trading switch."""

    environment: str = Field(default="practice", alias="OANDA_ENV")
    practice_token: str | None = Field(default=None, alias="OANDA_API_TOKEN")
    practice_account_id: str | None = Field(default=None, alias="OANDA_ACCOUNT_ID")
    live_token: str | None = Field(default=None, alias="OANDA_LIVE_API_TOKEN")
    live_account_id: str | None = Field(default=None, alias="OANDA_LIVE_ACCOUNT_ID")
    live_trading_enabled: bool = Field(default=False, alias="LIVE_TRADING_ENABLED")

    @field_validator("environment", mode="before")
    @classmethod
    def _normalise_environment(cls, value: str | None) -> str:
        env = (value or "practice").strip().lower()
        return env if env in {"practice", "live"} else "practice"

    @computed_field
    @property
    def is_live(self) -> bool:
        return self.environment == "live"

    @computed_field
    @property
    def has_credentials(self) -> bool:
        if self.is_live:
            return bool(self.live_token and self.live_account_id)
        return bool(self.practice_token and self.practice_account_id)


class Settings(BaseModel):
    """Aggregate accessor for domain-specific settings."""

    sentry: SentrySettings = Field(default_factory=SentrySettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    broker: BrokerSettings = Field(default_factory=BrokerSettings)

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
    }


def get_settings() -> Settings:
    """Instantiate settings from the current environment."""
    return Settings()


def get_sentry_settings() -> SentrySettings:
    return get_settings().sentry


def get_database_settings() -> DatabaseSettings:
    return get_settings().database


def get_broker_settings() -> BrokerSettings:
    return get_settings().broker


__all__ = [
    "Settings",
    "get_settings",
    "get_sentry_settings",
    "get_database_settings",
    "get_broker_settings",
    "SentrySettings",
    "DatabaseSettings",
    "BrokerSettings",
]

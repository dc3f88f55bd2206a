"""Governed multi-agent FX trade execution service."""

import logging
import os
from pathlib import Path

import sentry_sdk
from dotenv import load_dotenv
from loguru import logger
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

__version__ = "1.0.0"

# Load .env before anything reads OANDA_* or SENTRY_DSN
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")

from fxgov.settings import get_broker_settings, get_sentry_settings  # noqa: E402


def _detect_build_version() -> str:
    explicit = os.getenv("APP_VERSION")
    if explicit:
        return explicit
    build_file = Path(__file__).resolve().parents[1] / "_build_version.txt"
    if build_file.exists():
        try:
            return build_file.read_text(encoding="utf-8").strip()
        except OSError:
            return __version__
    return __version__


APP_VERSION = _detect_build_version()

_sentry = get_sentry_settings()
if _sentry.enabled:
    sentry_sdk.init(
        dsn=_sentry.dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=_sentry.traces_sample_rate,
        profiles_sample_rate=0.0,
        environment=_sentry.environment or get_broker_settings().environment,
        release=APP_VERSION,
    )
    logger.info("sentry enabled env={}", _sentry.environment or get_broker_settings().environment)
else:
    logger.debug("Sentry DSN not set; Sentry disabled")

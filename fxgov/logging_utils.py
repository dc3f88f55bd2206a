"""Loguru configuration for the execution service.

Every record carries the deployment metadata (environment, version, git sha)
plus the tick-scoped fields set with :func:`logging_context`: ``request_id``
(HTTP request or tick id), ``pair`` and ``agent`` (the candidate being
evaluated). Records are mirrored to stdlib ``logging`` so Sentry's
LoggingIntegration and pytest's capture both see them.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from os import PathLike
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from fxgov.config import settings as app_settings

PathLikeArg = Union[str, PathLike]

_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "env={extra[environment]} | req={extra[request_id]} | "
    "{extra[pair]}/{extra[agent]} | {message}"
)

_DEFAULTS: Dict[str, str] = {
    "request_id": "-",
    "pair": "-",
    "agent": "-",
    "environment": "practice",
    "service_version": "unknown",
    "git_sha": "unknown",
}

_CONTEXT_VARS: Dict[str, ContextVar[str]] = {
    key: ContextVar(f"fxgov_log_{key}", default=default)
    for key, default in _DEFAULTS.items()
}


def _inject_context(record: Dict[str, Any]) -> None:
    extra = record["extra"]
    for key, ctx in _CONTEXT_VARS.items():
        extra.setdefault(key, ctx.get())


def _std_logging_sink(message) -> None:
    record = message.record
    exc = record["exception"]
    exc_info = (exc.type, exc.value, exc.traceback) if exc else None

    log_record = logging.LogRecord(
        name=record["name"],
        level=record["level"].no,
        pathname=record["file"].path,
        lineno=record["line"],
        msg=record["message"],
        args=(),
        exc_info=exc_info,
        func=record["function"],
    )
    for k, v in record["extra"].items():
        setattr(log_record, k, v)
    logging.getLogger().handle(log_record)


def _git_sha() -> str:
    for key in ("GIT_SHA", "COMMIT_SHA", "SOURCE_VERSION"):
        value = os.getenv(key)
        if value:
            return value
    return "unknown"


def setup_logging(*, force: bool = False, level: str | None = None) -> None:
    """Configure the stdout sink and the stdlib bridge once per process."""
    if not force and getattr(setup_logging, "_configured", False):
        return

    log_level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    static = {
        "environment": app_settings.environment,
        "service_version": app_settings.VERSION,
        "git_sha": _git_sha(),
    }
    for key, value in static.items():
        _CONTEXT_VARS[key].set(value)

    logger.remove()
    logger.configure(extra={**_DEFAULTS, **static}, patcher=_inject_context)
    logger.add(
        sys.stdout,
        level=log_level,
        format=_LOG_FORMAT,
        enqueue=False,
        backtrace=False,
        diagnose=False,
    )
    logger.add(_std_logging_sink, level=log_level, enqueue=False, backtrace=False, diagnose=False)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))
    if not root_logger.handlers:
        root_logger.addHandler(logging.StreamHandler(sys.stdout))
    setup_logging._configured = True  # type: ignore[attr-defined]


def setup_test_logging(
    arg: Optional[PathLikeArg] = None,
    *,
    level: Optional[str] = None,
    filename: str = "pytest.log",
) -> None:
    """
    Logging setup for tests.

    ``arg`` is either a level ("DEBUG") or a path for an extra file sink;
    directories get ``<dir>/<filename>``.
    """
    target: Optional[Path] = None
    inferred_level: Optional[str] = None
    if isinstance(arg, PathLike) or (isinstance(arg, str) and ("/" in arg or arg.endswith(".log"))):
        target = Path(arg)
    elif isinstance(arg, str):
        inferred_level = arg

    effective_level = (level or inferred_level or os.getenv("PYTEST_LOGLEVEL") or "INFO").upper()
    setup_logging(force=True, level=effective_level)
    if target is None:
        return

    if target.is_dir():
        target = target / filename
    target.parent.mkdir(parents=True, exist_ok=True)
    logger.add(str(target), level=effective_level, format=_LOG_FORMAT, enqueue=False)


@contextmanager
def logging_context(**values: str):
    """Set tick-scoped fields (``request_id``, ``pair``, ``agent``) for nested records."""
    tokens = []
    for key, value in values.items():
        ctx = _CONTEXT_VARS.get(key)
        if ctx is not None:
            tokens.append((ctx, ctx.set(value or "-")))
    try:
        with logger.contextualize(**values):
            yield
    finally:
        for ctx, token in reversed(tokens):
            ctx.reset(token)


__all__ = ["setup_logging", "setup_test_logging", "logging_context"]

"""
Postgres engine/session helpers with safe DSN building, minimal logging, and
resilient health checks. Prefers DATABASE_URL; falls back to the assembled DSN
from the PG* variables.
"""

from __future__ import annotations

import contextlib
import time
from typing import Iterator, Optional

from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from fxgov.settings import get_database_settings

Base = declarative_base()
metadata = Base.metadata

# ----------------------------------------------------------------------------
# DSN helpers
# ----------------------------------------------------------------------------


def get_db_url() -> Optional[str]:
    """
    Retrieves the database DSN from settings.

    Returns:
        Optional[str]: ``DATABASE_URL``, then ``TEST_DATABASE_URL``, then the
        DSN assembled from the PG* variables; None when none is set.
    """
    return get_database_settings().effective_dsn()


def _sanitize_dsn(dsn: str) -> str:
    """
    Redacts the password from a DSN string for safe logging.

    Args:
        dsn (str): The DSN string.

    Returns:
        str: The sanitized DSN string.
    """
    if "@" in dsn and "://" in dsn:
        scheme_user, rest = dsn.split("://", 1)
        user_part, tail = rest.rsplit("@", 1)
        if ":" in user_part:
            user_only = user_part.split(":", 1)[0]
            return f"{scheme_user}://{user_only}:***@{tail}"
    return dsn


# ----------------------------------------------------------------------------
# Engine / sessions (cached)
# ----------------------------------------------------------------------------

_ENGINE: Optional[Engine] = None
_SESSION_FACTORY: Optional[sessionmaker] = None


def make_engine(
    dsn: Optional[str] = None, pool_size: int = 5, max_overflow: int = 5
) -> Optional[Engine]:
    """
    Creates a new SQLAlchemy Engine.

    Args:
        dsn (Optional[str]): Connection string; defaults to :func:`get_db_url`.
        pool_size (int): Pool size for server databases.
        max_overflow (int): Extra connections above ``pool_size``.

    Returns:
        Optional[Engine]: The engine, or None when no DSN is configured.
    """
    dsn = dsn or get_db_url()
    if not dsn:
        logger.warning("[postgres] no DSN in env; engine not created")
        return None
    kwargs = {"pool_pre_ping": True, "future": True}
    if not dsn.startswith("sqlite"):
        kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_recycle=1800)
    eng = create_engine(dsn, **kwargs)
    logger.info("[postgres] engine created dsn={}", _sanitize_dsn(dsn))
    return eng


def get_engine() -> Optional[Engine]:
    """
    Returns the process-wide Engine, creating it on first use.

    Returns:
        Optional[Engine]: The cached engine, or None without a DSN.
    """
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = make_engine()
    return _ENGINE


def make_session_factory(engine: Optional[Engine] = None) -> Optional[sessionmaker]:
    """
    Creates (or reuses) the sessionmaker bound to ``engine``.

    Args:
        engine (Optional[Engine]): Engine to bind; defaults to :func:`get_engine`.

    Returns:
        Optional[sessionmaker]: The factory, or None without an engine.
    """
    global _SESSION_FACTORY
    eng = engine if engine is not None else get_engine()
    if eng is None:
        return None
    if _SESSION_FACTORY is None or (
        engine is not None and _SESSION_FACTORY.kw.get("bind") is not eng
    ):
        _SESSION_FACTORY = sessionmaker(
            bind=eng, expire_on_commit=False, autoflush=False, future=True
        )
    return _SESSION_FACTORY


def get_session() -> Session:
    """
    Return a new Session.

    Raises:
        RuntimeError: If the database engine is not configured.
    """
    factory = make_session_factory()
    if factory is None:
        raise RuntimeError("Database engine not configured (no DSN in env)")
    return factory()


@contextlib.contextmanager
def get_db() -> Iterator[Session]:
    """Yield a Session and close it afterwards."""
    db = get_session()
    try:
        yield db
    finally:
        db.close()


# ----------------------------------------------------------------------------
# Health / diagnostics
# ----------------------------------------------------------------------------


def ping(
    engine: Optional[Engine] = None,
    retries: int = 0,
    backoff: float = 0.75,
) -> bool:
    """
    Checks database connectivity with ``SELECT 1``.

    Args:
        engine (Optional[Engine]): Engine to check; defaults to :func:`get_engine`.
        retries (int): Extra attempts after the first failure.
        backoff (float): Linear backoff factor in seconds.

    Returns:
        bool: True if a query succeeded, False otherwise.
    """
    eng = engine or get_engine()
    if eng is None:
        logger.warning("[postgres] ping: no engine available (no DSN)")
        return False

    attempts = 0
    while True:
        attempts += 1
        try:
            with eng.begin() as cx:
                cx.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(
                "[postgres] ping failed (attempt {}/{}): {}", attempts, retries + 1, e
            )
            if attempts > retries:
                return False
            time.sleep(backoff * attempts)

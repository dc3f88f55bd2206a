# fxgov/main.py
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from loguru import logger

import fxgov as fxgov_package  # noqa: F401  # ensure package __init__ (Sentry) runs
from fxgov.api import get_api_router
from fxgov.config import settings
from fxgov.logging_utils import logging_context, setup_logging
from fxgov.orchestration.cache import TickCaches

__all__ = ["app"]


setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    app.state.tick_caches = TickCaches()

    prefix = "OANDA_LIVE_" if settings.is_live else "OANDA_"
    required = {
        f"{prefix}API_TOKEN": settings.oanda_token,
        f"{prefix}ACCOUNT_ID": settings.oanda_account_id,
        "DATABASE_URL": settings.database_url,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        logger.warning("Missing required env vars: {}", ",".join(missing))

    logger.info(
        "FX governor {} port={} env={} should_execute={}",
        settings.VERSION,
        settings.port,
        settings.environment,
        settings.should_execute,
    )
    if settings.is_live and not settings.live_trading_enabled:
        logger.warning("Live environment with LIVE_TRADING_ENABLED=false: shadow evaluation only")
    yield


app = FastAPI(title="FX Execution Governor", version=settings.VERSION, lifespan=lifespan)
app.include_router(get_api_router())


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    start = time.perf_counter()
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    request.state.request_id = request_id
    with logging_context(request_id=request_id):
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000.0
            logger.exception(
                "request method={} path={} status=500 duration_ms={:.2f}",
                request.method,
                request.url.path,
                duration_ms,
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request method={} path={} status={} duration_ms={:.2f}",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict
from urllib.parse import urlparse

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from fxgov import APP_VERSION
from fxgov.adapters.db.postgres import ping
from fxgov.api.deps import broker_client
from fxgov.config import settings
from fxgov.settings import get_broker_settings, get_database_settings

router = APIRouter(tags=["health"])


@router.get("")
async def health() -> Dict[str, Any]:
    """Legacy health endpoint."""
    return await health_live()


@router.get("/live")
async def health_live() -> Dict[str, Any]:
    """
    A lightweight liveness check.

    Returns:
        Dict[str, Any]: A dictionary with the service status and version.
    """
    return {"ok": True, "service": "fxgov", "version": APP_VERSION}


@router.get("/db")
async def health_db() -> Dict[str, Any]:
    """
    Database connectivity check.

    Returns:
        Dict[str, Any]: A dictionary with the database status and latency.
    """
    t0 = time.perf_counter()
    ok = bool(await run_in_threadpool(lambda: ping(retries=1)))
    latency_ms = round((time.perf_counter() - t0) * 1000.0, 1)
    return {"status": "ok" if ok else "degraded", "latency_ms": latency_ms}


@router.get("/ready")
async def health_ready() -> Dict[str, str]:
    return {"status": "ok", "utc": datetime.now(timezone.utc).isoformat()}


@router.get("/broker")
async def health_broker(broker=Depends(broker_client)) -> Dict[str, Any]:
    """Broker connectivity check against the selected OANDA environment."""
    t0 = time.perf_counter()
    ok = bool(await run_in_threadpool(broker.health_check))
    latency_ms = round((time.perf_counter() - t0) * 1000.0, 1)
    return {
        "status": "ok" if ok else "degraded",
        "environment": settings.environment,
        "latency_ms": latency_ms,
    }


@router.get("/version")
async def version() -> Dict[str, str]:
    return {"version": APP_VERSION}


def _mask(value: str | None) -> str:
    """Keep the first 2 and last 4 characters of a secret."""
    if not value:
        return ""
    prefix = 2
    suffix = 4
    stripped = value.strip()
    if len(stripped) <= prefix + suffix:
        if len(stripped) <= 2:
            return stripped[:1] + "*" * max(len(stripped) - 1, 0)
        return stripped[:prefix] + "*" * (len(stripped) - prefix)
    return (
        stripped[:prefix] + "*" * (len(stripped) - prefix - suffix) + stripped[-suffix:]
    )


@router.get("/config")
async def health_config() -> Dict[str, Any]:
    """
    Exposes the masked execution configuration.

    Returns:
        Dict[str, Any]: Environment, masked credentials and readiness checks.
    """
    broker = get_broker_settings()
    database_url = get_database_settings().primary_dsn or ""
    parsed = urlparse(database_url) if database_url else None
    db_host = parsed.hostname if parsed else ""
    db_name = parsed.path.lstrip("/") if parsed else ""
    masked_db = ""
    if db_host or db_name:
        masked_db = f"{_mask(db_host)}/{_mask(db_name)}".strip("/")

    checks = {
        "has_db_url": bool(database_url),
        "has_broker_credentials": broker.has_credentials,
    }
    status = "ok"
    if broker.is_live and not all(checks.values()):
        status = "degraded"

    return {
        "status": status,
        "environment": settings.environment,
        "execution": {
            "should_execute": settings.should_execute,
            "live_trading_enabled": settings.live_trading_enabled,
            "submission_delay_ms": settings.submission_delay_ms,
            "protected_pairs": list(settings.protected_pairs),
            "long_only_cutover": settings.long_only_cutover.isoformat(),
        },
        "config": {
            "database_url": masked_db or _mask(database_url),
            "oanda_account_id": _mask(settings.oanda_account_id),
            "oanda_api_token": _mask(settings.oanda_token),
            "oanda_base_url": settings.oanda_base_url,
        },
        "checks": checks,
    }

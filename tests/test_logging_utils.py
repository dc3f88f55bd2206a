from __future__ import annotations

import logging
from contextlib import contextmanager

import pytest
from loguru import logger

from fxgov.config import settings
from fxgov.logging_utils import logging_context, setup_logging
from fxgov.orchestration.types import TickRequest


@pytest.fixture(autouse=True)
def _reset_logging():
    setup_logging(force=True, level="INFO")
    yield
    setup_logging(force=True, level="INFO")


@contextmanager
def capture_records(level=logging.INFO):
    records = []

    class ListHandler(logging.Handler):
        def emit(self, record):
            records.append(record)

    handler = ListHandler()
    handler.setLevel(level)
    root = logging.getLogger()
    prev_level = root.level
    root.setLevel(level)
    root.addHandler(handler)
    try:
        yield records
    finally:
        root.removeHandler(handler)
        root.setLevel(prev_level)


def test_setup_logging_attaches_metadata(monkeypatch):
    monkeypatch.setenv("GIT_SHA", "abc123")

    setup_logging(force=True, level="INFO")

    with capture_records() as records:
        logger.info("hello world")

    record = records[-1]
    assert record.environment == settings.environment
    assert record.git_sha == "abc123"
    assert record.service_version == settings.VERSION
    assert record.request_id == "-"


def test_logging_context_sets_request_id():
    with capture_records() as records:
        with logging_context(request_id="tick-1"):
            logger.info("inside tick")
        logger.info("after tick")

    assert records[-2].request_id == "tick-1"
    assert records[-1].request_id == "-"


def test_tick_logs_carry_tick_id(make_orchestrator):
    with capture_records() as records:
        result = make_orchestrator().run(TickRequest(force=True))

    tick_records = [r for r in records if getattr(r, "request_id", "-") == result.tick_id]
    assert any("[tick] done" in r.getMessage() for r in tick_records)
    assert any(
        (r.pair, r.agent) == ("USD_CAD", "manual-test") for r in tick_records
    )


def test_candidate_fields_default_outside_context():
    with capture_records() as records:
        with logging_context(pair="USD_CAD", agent="trend-scalper"):
            logger.info("evaluating")
        logger.info("idle")

    assert (records[-2].pair, records[-2].agent) == ("USD_CAD", "trend-scalper")
    assert (records[-1].pair, records[-1].agent) == ("-", "-")

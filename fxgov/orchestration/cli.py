from __future__ import annotations

import argparse
import json

from loguru import logger

from fxgov.adapters.db.postgres import get_db
from fxgov.config import settings
from fxgov.execution.oanda_client import OandaClient
from fxgov.logging_utils import setup_logging

from .executor import ExecutionOrchestrator
from .types import LONG, TickRequest


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run one governed execution tick")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Single manual-test candidate; skips bans, restrictions and gates",
    )
    parser.add_argument("--pair", default=None, help="Pair for --force (default USD_CAD)")
    parser.add_argument(
        "--preflight",
        action="store_true",
        help="Report governance state and preflight checks without generating signals",
    )
    parser.add_argument("--json", action="store_true", help="Print the full tick result as JSON")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    request = TickRequest(
        force=args.force, pair=args.pair, direction=LONG, preflight=args.preflight
    )
    broker = OandaClient.from_settings(settings)
    with get_db() as session:
        result = ExecutionOrchestrator(session, broker, config=settings).run(request)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    logger.info(
        "Tick complete: env={} state={} summary={} skipped={}",
        result.environment,
        result.governance.state.value if result.governance else "-",
        result.status_counts(),
        result.skipped_reason,
    )
    if result.preflight is not None and not result.preflight.passed:
        return 2
    return 1 if result.aborted else 0


if __name__ == "__main__":
    raise SystemExit(main())

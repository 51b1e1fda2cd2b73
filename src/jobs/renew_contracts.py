"""Console entry point for the daily contract renewal.

Usage:
    hourbank-renew [--as-of YYYY-MM-DD]

Prints the JSON summary and exits non-zero when the run was aborted.
"""

import argparse
import asyncio
import sys
from datetime import date
from typing import Any

import orjson

from src.billing.renewal import RenewalAborted, renew_contracts
from src.core.clock import today
from src.core.database import create_engine, create_session_factory
from src.core.logging import configure_logging, job_context
from src.core.sentry import init_sentry


async def run(as_of: date | None = None) -> tuple[int, dict[str, Any]]:
    """Run one renewal pass against the configured database.

    Returns:
        Exit code and the summary payload.
    """
    engine = create_engine()
    session_factory = create_session_factory(engine)
    try:
        with job_context("renew_contracts"):
            summary = await renew_contracts(session_factory, as_of or today())
        return 0, summary.to_dict()
    except RenewalAborted as exc:
        return 1, exc.to_dict()
    finally:
        await engine.dispose()


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Renew expired recurring contracts.")
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Date to treat as today (YYYY-MM-DD). Defaults to the portal's local date.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging()
    init_sentry()

    exit_code, payload = asyncio.run(run(args.as_of))
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode() + "\n")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())

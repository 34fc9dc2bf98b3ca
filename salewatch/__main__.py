"""Salewatch process entry-point.

Usage:
    python -m salewatch [--once] [--dry-run] [--log-level L] [--log-format F]

The orchestration logic lives in ``salewatch.orchestrator``.  This module
calls ``configure_logging()`` first so that every subsequent import already
has a working logger, then hands off to the orchestrator.

Default behaviour (no ``--once``) is continuous: the daily scheduler and the
hourly status reporter run until ``SIGTERM`` / Ctrl+C.  Pass ``--once`` to
run a single pass right now and exit.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from salewatch.core import configure_logging
from salewatch.core.exceptions import ConfigError
from salewatch.core.run_context import RunContext
from salewatch.core.settings import Settings


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    parser = argparse.ArgumentParser(
        prog="salewatch",
        description="Daily storefront sale and release alerts for subscriber groups.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass over every tracked listing now, then exit.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Update subscription flags but log alerts instead of sending them.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )

    args = parser.parse_args()

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"salewatch: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)
    logger.info("Salewatch starting up")

    from salewatch.orchestrator.runner import run_continuous, run_once  # noqa: PLC0415

    try:
        settings = _load_settings()
        ctx = RunContext(dry_run=args.dry_run or settings.dry_run)
        logger.info("Run context: %s", ctx)

        if args.once:
            logger.info("Running a single pass (--once).")
            stats = asyncio.run(run_once(ctx=ctx, settings=settings))
            sys.exit(1 if stats.aborted else 0)
        else:
            logger.info("Running in continuous mode (Ctrl+C to stop).")
            asyncio.run(run_continuous(ctx=ctx, settings=settings))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted; exiting.")
        sys.exit(0)
    except asyncio.CancelledError:
        logger.info("Shutdown complete; exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()

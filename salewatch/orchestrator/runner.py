"""Orchestrator entry-points: assemble all components and run them.

Component wiring
----------------
:func:`open_scheduler` is an async context manager that:

1. Refuses live mode without ``TELEGRAM_BOT_TOKEN`` (raises
   :exc:`~salewatch.core.exceptions.ConfigError` before any I/O).
2. Opens the SQLite database via :func:`~salewatch.storage.database.open_db`
   and wraps it in a :class:`~salewatch.storage.repository.TrackingRepository`.
3. Opens the :class:`~salewatch.notifiers.telegram.TelegramClient` (live
   mode only) and builds the :class:`~salewatch.notifiers.notifier.Notifier`.
4. Opens the :class:`~salewatch.providers.api.steam.SteamStoreSource`.
5. Yields a :class:`~salewatch.orchestrator.scheduler.DailyScheduler` built
   from the above, the injected clock and the configured trigger.
6. Stops the scheduler and tears every resource down in reverse order via
   :class:`contextlib.AsyncExitStack`, including on exceptions.

Two run modes are built on top:

* :func:`run_once` — one pass right now, then exit (``--once``).
* :func:`run_continuous` — daily scheduler plus hourly status reporter
  until ``SIGTERM`` or cancellation.

Typical usage::

    import asyncio
    from salewatch.core.run_context import RunContext
    from salewatch.orchestrator.runner import run_continuous

    asyncio.run(run_continuous(RunContext(dry_run=True)))
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

from salewatch.core.clock import AsyncioClock, Clock, DailyTrigger
from salewatch.core.exceptions import ConfigError
from salewatch.core.run_context import RunContext
from salewatch.core.settings import Settings
from salewatch.notifiers.notifier import Notifier
from salewatch.notifiers.telegram import TelegramClient
from salewatch.orchestrator.processing import PassStats
from salewatch.orchestrator.scheduler import DailyScheduler, StatusReporter
from salewatch.providers.api.steam import SteamStoreSource
from salewatch.providers.base import BasePriceSource
from salewatch.storage.database import open_db
from salewatch.storage.repository import TrackingRepository

__all__ = ["open_scheduler", "run_once", "run_continuous"]

logger = logging.getLogger(__name__)


def _require_credentials(ctx: RunContext, settings: Settings) -> None:
    if ctx.should_notify and not settings.telegram_configured:
        raise ConfigError(
            "Live mode requires TELEGRAM_BOT_TOKEN. "
            "Set it in .env (or env vars), or run with --dry-run."
        )


@asynccontextmanager
async def open_scheduler(
    ctx: RunContext,
    settings: Settings,
    *,
    clock: Clock | None = None,
    source: BasePriceSource | None = None,
) -> AsyncIterator[DailyScheduler]:
    """Build a fully wired :class:`DailyScheduler` and release it on exit.

    Args:
        ctx: Runtime operating-mode flags.
        settings: Application settings.
        clock: Clock to drive timers.  Defaults to :class:`AsyncioClock`.
        source: Price source override.  Defaults to
            :class:`SteamStoreSource` built from *settings*.

    Raises:
        ConfigError: Live mode without a bot token.
    """
    _require_credentials(ctx, settings)

    async with AsyncExitStack() as stack:
        conn = await open_db(settings.database_path_resolved)
        stack.push_async_callback(conn.close)
        repo = TrackingRepository(conn)

        telegram: TelegramClient | None = None
        if ctx.should_notify:
            telegram = await stack.enter_async_context(
                TelegramClient(token=settings.telegram_bot_token)
            )
        notifier = Notifier(client=telegram, ctx=ctx)

        price_source = await stack.enter_async_context(source or SteamStoreSource(settings))

        if clock is None:
            clock = AsyncioClock()
        if isinstance(clock, AsyncioClock):
            # Runs after scheduler.stop(): callbacks finish before the db closes.
            stack.push_async_callback(clock.drain)

        scheduler = DailyScheduler(
            repo,
            price_source,
            notifier,
            clock,
            DailyTrigger(settings.check_time_of_day, settings.check_zone),
            cooldown_s=settings.rate_limit_cooldown,
            batch_size=settings.listing_batch_size,
        )
        stack.push_async_callback(scheduler.stop)

        logger.info(
            "Scheduler ready: mode=%s db=%s check=%s %s tracked=%d",
            ctx.mode_label,
            settings.database_path,
            settings.check_time,
            settings.check_timezone,
            await repo.count_listings(),
        )
        yield scheduler


async def run_once(ctx: RunContext, settings: Settings | None = None) -> PassStats:
    """Run a single pass immediately and return its counters.

    Raises:
        ConfigError: Live mode without a bot token.
    """
    if settings is None:
        settings = Settings()

    async with open_scheduler(ctx, settings) as scheduler:
        stats = await scheduler.run_pass_now()
    return stats


async def run_continuous(ctx: RunContext, settings: Settings | None = None) -> None:
    """Run the daily scheduler and the status reporter until stopped.

    A ``SIGTERM`` handler (e.g. ``docker stop``) ends the wait; ``SIGINT``
    (Ctrl+C) cancels the main task through asyncio's default handling.
    Either way the scheduler is stopped and every resource is closed before
    returning.

    Raises:
        ConfigError: Live mode without a bot token.
        asyncio.CancelledError: On cancellation (Ctrl+C).
    """
    if settings is None:
        settings = Settings()

    clock = AsyncioClock()
    async with open_scheduler(ctx, settings, clock=clock) as scheduler:
        scheduler.start()
        reporter = StatusReporter(scheduler, clock, settings.heartbeat_path)
        reporter.start()

        loop = asyncio.get_running_loop()
        shutdown = asyncio.Event()

        def _request_graceful_shutdown(signame: str) -> None:
            if not shutdown.is_set():
                logger.info("Received %s; graceful shutdown requested.", signame)
            shutdown.set()

        loop.add_signal_handler(signal.SIGTERM, lambda: _request_graceful_shutdown("SIGTERM"))
        try:
            await shutdown.wait()
            logger.info("Graceful shutdown complete.")
        except asyncio.CancelledError:
            logger.info("Continuous mode cancelled; stopping scheduler.")
            raise
        finally:
            with contextlib.suppress(Exception):
                loop.remove_signal_handler(signal.SIGTERM)
            reporter.stop()

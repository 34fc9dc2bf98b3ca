"""Daily polling scheduler for Salewatch.

:class:`DailyScheduler` walks every tracked listing once per daily trigger.
It is an explicit state machine driven by two timer callbacks:

* :meth:`DailyScheduler.on_trigger` — the daily instant fired.
  ``IDLE``/``COMPLETED`` → ``SCANNING``: open a fresh id iteration.
* :meth:`DailyScheduler.on_cooldown` — the rate-limit cooldown elapsed.
  ``RESUMING`` → ``SCANNING``: retry the parked id, then continue.

While scanning, each fetch outcome decides the next state:

==========================  ===============================================
fetch outcome               transition
==========================  ===============================================
snapshot                    process listing, stay ``SCANNING``
rate limited                keep the id in flight, arm cooldown, ``RESUMING``
any other failure           clear cursor, arm tomorrow, ``COMPLETED``
iteration exhausted         clear cursor, arm tomorrow, ``COMPLETED``
==========================  ===============================================

An aborted pass is **not** retried before the next daily trigger.

The clock, trigger policy, price source, store and notifier are all
injected, so tests drive the machine with a fake clock and fakes for the
collaborators.

:class:`StatusReporter` is an independent hourly timer that only reads
:attr:`DailyScheduler.next_trigger_at`: it logs the hours left until the
next check and rewrites a heartbeat file for container health checks.

Typical usage::

    scheduler = DailyScheduler(repo, source, notifier, AsyncioClock(), trigger)
    scheduler.start()
    reporter = StatusReporter(scheduler, clock, heartbeat_path)
    reporter.start()
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from enum import StrEnum

from salewatch.core import events
from salewatch.core.clock import Clock, DailyTrigger, Timer, next_whole_hour, seconds_until
from salewatch.core.exceptions import PriceSourceRateLimitError, SchedulerError
from salewatch.core.logging_config import PASS_ID_CTX
from salewatch.notifiers.notifier import Notifier
from salewatch.orchestrator.cursor import ResumableCursor
from salewatch.orchestrator.processing import PassStats, process_listing
from salewatch.providers.base import BasePriceSource
from salewatch.storage.repository import TrackingRepository

__all__ = [
    "DEFAULT_COOLDOWN_S",
    "SchedulerState",
    "DailyScheduler",
    "StatusReporter",
    "format_hours_until",
]

logger = logging.getLogger(__name__)

#: Wait after the price source rate-limits us before retrying the same id.
DEFAULT_COOLDOWN_S: float = 300.0


class SchedulerState(StrEnum):
    IDLE = "idle"
    SCANNING = "scanning"
    RESUMING = "resuming"
    COMPLETED = "completed"


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class DailyScheduler:
    """Runs one full pass over every tracked listing per daily trigger.

    Args:
        repo: Tracking store.
        source: Price source, already opened by the caller.
        notifier: Alert sink honouring the run mode.
        clock: Source of ``now()`` and one-shot timers.
        trigger: Daily trigger policy.
        cooldown_s: Wait after a rate-limited fetch.
        batch_size: Listing ids read from the store per page.
    """

    def __init__(
        self,
        repo: TrackingRepository,
        source: BasePriceSource,
        notifier: Notifier,
        clock: Clock,
        trigger: DailyTrigger,
        *,
        cooldown_s: float = DEFAULT_COOLDOWN_S,
        batch_size: int = 100,
    ) -> None:
        if cooldown_s <= 0:
            raise ValueError(f"cooldown_s must be > 0, got {cooldown_s!r}.")
        self._repo = repo
        self._source = source
        self._notifier = notifier
        self._clock = clock
        self._trigger = trigger
        self._cooldown_s = cooldown_s
        self._batch_size = batch_size

        self._state = SchedulerState.IDLE
        self._cursor = ResumableCursor()
        self._timer: Timer | None = None
        self._next_trigger_at: datetime | None = None
        self._stats: PassStats | None = None
        self._last_stats: PassStats | None = None
        self._pass_done: asyncio.Event | None = None
        self._scan_task: asyncio.Task[object] | None = None
        self._started = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def cursor(self) -> ResumableCursor:
        return self._cursor

    @property
    def next_trigger_at(self) -> datetime | None:
        """Instant of the armed daily trigger, ``None`` while a pass runs."""
        return self._next_trigger_at

    @property
    def current_stats(self) -> PassStats | None:
        return self._stats

    @property
    def last_stats(self) -> PassStats | None:
        """Counters of the most recently finished pass."""
        return self._last_stats

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> datetime:
        """Arm the first daily trigger and return its instant.

        The first trigger is today's instant while it is still ahead,
        otherwise tomorrow's.

        Raises:
            SchedulerError: Already started.
        """
        if self._started:
            raise SchedulerError("DailyScheduler.start() called twice.")
        self._started = True
        return self._arm_next_trigger()

    async def stop(self) -> None:
        """Cancel pending timers, abandon any running pass, clear the cursor.

        A later :meth:`start` opens a fresh pass from the first id.
        """
        self._cancel_timer()
        task, self._scan_task = self._scan_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._cursor.clear()
        if self._stats is not None:
            self._stats.aborted = True
            self._stats.abort_reason = "stopped"
            self._stats.finished_at = self._clock.now()
            self._last_stats, self._stats = self._stats, None
        if self._pass_done is not None:
            self._pass_done.set()

        self._state = SchedulerState.IDLE
        self._next_trigger_at = None
        self._started = False
        logger.info("Daily scheduler stopped.")

    async def run_pass_now(self) -> PassStats:
        """Run one pass immediately and wait for it to finish.

        The armed trigger (if any) is cancelled.  Rate-limit cooldowns are
        honoured, so this may take several cooldown periods.

        Raises:
            SchedulerError: A pass is already in progress.
        """
        if self._state in (SchedulerState.SCANNING, SchedulerState.RESUMING):
            raise SchedulerError(f"Cannot start a pass while {self._state}.")
        self._cancel_timer()
        self._next_trigger_at = None

        await self.on_trigger()
        if self._pass_done is not None:
            await self._pass_done.wait()
        assert self._last_stats is not None
        return self._last_stats

    # ------------------------------------------------------------------
    # Timer entry points
    # ------------------------------------------------------------------

    async def on_trigger(self) -> None:
        """Daily trigger fired: open a fresh pass and scan."""
        if self._state in (SchedulerState.SCANNING, SchedulerState.RESUMING):
            logger.warning("Trigger fired while %s; ignored.", self._state)
            return

        self._timer = None
        self._next_trigger_at = None
        pass_id = uuid.uuid4().hex[:8]
        self._stats = PassStats(pass_id=pass_id, started_at=self._clock.now())
        self._pass_done = asyncio.Event()
        self._cursor.open(self._repo.listing_ids(self._batch_size))
        self._state = SchedulerState.SCANNING

        token = PASS_ID_CTX.set(pass_id)
        try:
            logger.info("Daily pass started.", extra={"event": events.PASS_START})
            await self._scan()
        finally:
            PASS_ID_CTX.reset(token)

    async def on_cooldown(self) -> None:
        """Cooldown elapsed: retry the parked id and continue the pass."""
        if self._state is not SchedulerState.RESUMING or self._stats is None:
            logger.warning("Cooldown fired while %s; ignored.", self._state)
            return

        self._timer = None
        self._state = SchedulerState.SCANNING
        token = PASS_ID_CTX.set(self._stats.pass_id)
        try:
            logger.info(
                "Resuming pass at listing %s.",
                self._cursor.in_flight,
                extra={"event": events.PASS_RESUME},
            )
            await self._scan()
        finally:
            PASS_ID_CTX.reset(token)

    # ------------------------------------------------------------------
    # Scan loop
    # ------------------------------------------------------------------

    async def _scan(self) -> None:
        self._scan_task = asyncio.current_task()
        try:
            listing_id = self._cursor.in_flight
            if listing_id is None:
                listing_id = await self._cursor.next_id()
            while listing_id is not None:
                if not await self._check(listing_id):
                    return
                self._cursor.resolve()
                listing_id = await self._cursor.next_id()
        except Exception as exc:  # noqa: BLE001
            # Store iteration failed (or a bug): the pass cannot continue.
            logger.error("Pass iteration failed: %s", exc, exc_info=True)
            await self._finish(abort_reason=f"{type(exc).__name__}: {exc}")
            return
        finally:
            if self._scan_task is asyncio.current_task():
                self._scan_task = None

        await self._finish()

    async def _check(self, listing_id: int) -> bool:
        """Fetch and process one listing.  Returns ``False`` to stop the scan."""
        assert self._stats is not None
        try:
            snapshot = await self._source.fetch(listing_id)
        except PriceSourceRateLimitError as exc:
            self._park(listing_id, exc)
            return False
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Fetching listing %s failed; abandoning today's pass: %s",
                listing_id,
                exc,
                extra={"event": events.PASS_ABORT},
            )
            await self._finish(abort_reason=f"listing {listing_id}: {exc}")
            return False

        try:
            await process_listing(snapshot, self._repo, self._notifier, self._stats)
        except Exception as exc:  # noqa: BLE001
            self._stats.skipped += 1
            logger.error(
                "Unexpected error processing listing %s; skipped: %s",
                listing_id,
                exc,
                exc_info=True,
                extra={"event": events.LISTING_SKIPPED},
            )
        return True

    def _park(self, listing_id: int, exc: PriceSourceRateLimitError) -> None:
        assert self._stats is not None
        self._stats.rate_limited += 1
        self._state = SchedulerState.RESUMING
        self._timer = self._clock.after(self._cooldown_s, self.on_cooldown)
        logger.info(
            "Rate limited at listing %s (%s); resuming in %.0f s.",
            listing_id,
            exc,
            self._cooldown_s,
            extra={"event": events.PASS_RATE_LIMITED},
        )

    async def _finish(self, abort_reason: str | None = None) -> None:
        """Clear the cursor, record the outcome and arm tomorrow's trigger."""
        await self._cursor.clear()
        self._state = SchedulerState.COMPLETED

        stats = self._stats
        if stats is not None:
            stats.finished_at = self._clock.now()
            stats.aborted = abort_reason is not None
            stats.abort_reason = abort_reason
            self._last_stats, self._stats = stats, None
            level = logging.WARNING if stats.aborted else logging.INFO
            logger.log(
                level,
                "%s",
                stats.format_pass_report(),
                extra={"event": events.PASS_ABORT if stats.aborted else events.PASS_COMPLETE},
            )

        self._arm_next_trigger()
        if self._pass_done is not None:
            self._pass_done.set()

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _arm_next_trigger(self) -> datetime:
        now = self._clock.now()
        at = self._trigger.next_trigger_after(now)
        self._cancel_timer()
        self._timer = self._clock.after(seconds_until(now, at), self.on_trigger)
        self._next_trigger_at = at
        logger.info(
            "Next check armed for %s.",
            at.isoformat(),
            extra={"event": events.NEXT_TRIGGER_ARMED},
        )
        return at

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


# ---------------------------------------------------------------------------
# Status reporter
# ---------------------------------------------------------------------------


def format_hours_until(now: datetime, instant: datetime | None) -> str:
    """``"N hour(s) until check"`` with whole hours truncated toward zero."""
    if instant is None:
        return "Check in progress"
    hours = int(seconds_until(now, instant) // 3600)
    return f"{hours} hour{'' if hours == 1 else 's'} until check"


def _write_heartbeat(path: str, now: datetime, next_check: datetime | None) -> None:
    """Write the current epoch timestamp and the next check instant to *path*.

    Errors are logged at WARNING level and never propagated.
    """
    try:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(f"{now.timestamp()}\n")
            fh.write(f"{next_check.isoformat() if next_check else ''}\n")
    except OSError:
        logger.warning("Failed to write heartbeat file '%s'.", path, exc_info=True)


class StatusReporter:
    """Hourly "time until next check" report plus heartbeat file.

    Fires once on :meth:`start` and then at the top of every hour.  Reads
    only :attr:`DailyScheduler.next_trigger_at`.

    Args:
        scheduler: Scheduler to report on.
        clock: Clock used for ``now()`` and the hourly timer.
        heartbeat_path: File rewritten on every report; ``None`` disables it.
    """

    def __init__(
        self,
        scheduler: DailyScheduler,
        clock: Clock,
        heartbeat_path: str | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._clock = clock
        self._heartbeat_path = heartbeat_path
        self._timer: Timer | None = None
        self.last_status: str | None = None

    def start(self) -> None:
        self.report()
        self._arm()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def report(self) -> str:
        now = self._clock.now()
        next_check = self._scheduler.next_trigger_at
        status = format_hours_until(now, next_check)
        self.last_status = status
        logger.info("%s", status, extra={"event": events.STATUS_REPORT})
        if self._heartbeat_path:
            _write_heartbeat(self._heartbeat_path, now, next_check)
        return status

    async def _on_tick(self) -> None:
        self.report()
        self._arm()

    def _arm(self) -> None:
        now = self._clock.now()
        self._timer = self._clock.after(seconds_until(now, next_whole_hour(now)), self._on_tick)

"""Clock, one-shot timers, and the daily trigger policy.

The scheduler never reads the host clock or sleeps directly.  It receives a
:class:`Clock` (``now()`` + ``after(delay, callback)``) and a
:class:`DailyTrigger` (``next_trigger_after(now)``) at construction, so tests
can substitute a fake clock and synthetic instants without depending on the
host time zone or real waiting.

Typical usage::

    from datetime import time
    from zoneinfo import ZoneInfo

    from salewatch.core.clock import AsyncioClock, DailyTrigger

    clock = AsyncioClock()
    trigger = DailyTrigger(time(10, 5), ZoneInfo("America/Los_Angeles"))

    at = trigger.next_trigger_after(clock.now())
    clock.after(seconds_until(clock.now(), at), scheduler.on_trigger)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

__all__ = [
    "TimerCallback",
    "Timer",
    "Clock",
    "AsyncioClock",
    "DailyTrigger",
    "next_whole_hour",
    "seconds_until",
]

logger = logging.getLogger(__name__)

#: Zero-argument coroutine function invoked when a timer fires.
TimerCallback = Callable[[], Awaitable[None]]


# ---------------------------------------------------------------------------
# Timer / Clock contracts
# ---------------------------------------------------------------------------


class Timer(ABC):
    """Handle to a pending one-shot callback."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running (no-op if it already ran)."""

    @property
    @abstractmethod
    def cancelled(self) -> bool: ...


class Clock(ABC):
    """Source of the current instant and of one-shot timers."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current instant as a timezone-aware datetime."""

    @abstractmethod
    def after(self, delay_s: float, callback: TimerCallback) -> Timer:
        """Run *callback* once, *delay_s* seconds from now.

        Negative delays are treated as zero.
        """


# ---------------------------------------------------------------------------
# asyncio implementation
# ---------------------------------------------------------------------------


class _AsyncioTimer(Timer):
    """Timer backed by :meth:`asyncio.AbstractEventLoop.call_later`.

    When the handle fires, the callback coroutine is wrapped in a task owned
    by the clock so it is not garbage-collected mid-flight.  Cancelling the
    timer after it fired cancels that task.
    """

    def __init__(self, clock: AsyncioClock, callback: TimerCallback) -> None:
        self._clock = clock
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False

    def _arm(self, loop: asyncio.AbstractEventLoop, delay_s: float) -> None:
        self._handle = loop.call_later(delay_s, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._task = self._clock._spawn(self._callback())

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioClock(Clock):
    """Wall clock in UTC with timers on the running asyncio loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def now(self) -> datetime:
        return datetime.now(UTC)

    def after(self, delay_s: float, callback: TimerCallback) -> Timer:
        loop = asyncio.get_running_loop()
        timer = _AsyncioTimer(self, callback)
        timer._arm(loop, max(delay_s, 0.0))
        return timer

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task[None]:
        task: asyncio.Task[None] = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Timer callback raised: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for every callback task that is currently running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# ---------------------------------------------------------------------------
# Trigger policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DailyTrigger:
    """A fixed local time-of-day in a named zone.

    Attributes:
        time_of_day: Local wall-clock time of the trigger.
        tz: Zone the wall-clock time is expressed in.
    """

    time_of_day: time
    tz: ZoneInfo

    def next_trigger_after(self, now: datetime) -> datetime:
        """Return the first trigger instant strictly after *now*.

        Today's instant is used while it is still in the future, otherwise
        the same wall-clock time on the next local calendar day.  The date
        arithmetic is done on the local calendar, so a DST change between
        today and tomorrow still yields the configured wall-clock time.

        A trigger inside the repeated fall-back hour fires once, at its first
        occurrence; once that has passed the next one is tomorrow.

        Args:
            now: Timezone-aware current instant.

        Raises:
            ValueError: If *now* is naive.
        """
        if now.tzinfo is None:
            raise ValueError("next_trigger_after requires a timezone-aware datetime")

        local_now = now.astimezone(self.tz)
        candidate = datetime.combine(local_now.date(), self.time_of_day, tzinfo=self.tz)
        # Compare instants in UTC; same-zone comparison ignores fold in the repeated hour.
        if candidate.astimezone(UTC) <= now.astimezone(UTC):
            candidate = datetime.combine(
                local_now.date() + timedelta(days=1), self.time_of_day, tzinfo=self.tz
            )
        return candidate


def next_whole_hour(now: datetime) -> datetime:
    """Return the start of the hour following *now*."""
    return (now + timedelta(hours=1)).replace(minute=0, second=0, microsecond=0)


def seconds_until(now: datetime, instant: datetime) -> float:
    """Seconds from *now* to *instant*, clamped at zero."""
    return max((instant.astimezone(UTC) - now.astimezone(UTC)).total_seconds(), 0.0)

"""Resumable position of the daily pass.

:class:`ResumableCursor` remembers, across a rate-limit cooldown, which
listing id is being retried and the open id iteration to continue from.
It is owned by :class:`~salewatch.orchestrator.scheduler.DailyScheduler`
and lives only in memory: a process restart always begins a fresh pass.
"""

from __future__ import annotations

import logging

from salewatch.core.exceptions import SchedulerError
from salewatch.storage.repository import ListingIdCursor

__all__ = ["ResumableCursor"]

logger = logging.getLogger(__name__)


class ResumableCursor:
    """Id iteration handle plus the single in-flight listing id.

    At most one id is ever in flight: it is set when the id is taken from
    the iteration and cleared with :meth:`resolve` once the listing was
    fully processed.  A rate-limited fetch leaves it set so the same id is
    retried after the cooldown.
    """

    def __init__(self) -> None:
        self._ids: ListingIdCursor | None = None
        self._in_flight: int | None = None

    @property
    def in_flight(self) -> int | None:
        return self._in_flight

    @property
    def is_open(self) -> bool:
        return self._ids is not None

    def open(self, ids: ListingIdCursor) -> None:
        """Start a fresh pass over *ids*.

        Raises:
            SchedulerError: A pass is already open.
        """
        if self._ids is not None:
            raise SchedulerError("Cursor already holds an open iteration.")
        self._ids = ids
        self._in_flight = None

    async def next_id(self) -> int | None:
        """Take the next id from the iteration and mark it in flight.

        Returns:
            The id, or ``None`` once the iteration is exhausted.

        Raises:
            SchedulerError: No iteration is open, or an id is still in
                flight.
            StorageError: The store could not be read.
        """
        if self._ids is None:
            raise SchedulerError("Cursor has no open iteration.")
        if self._in_flight is not None:
            raise SchedulerError(f"Listing {self._in_flight} is still in flight.")
        try:
            self._in_flight = await anext(self._ids)
        except StopAsyncIteration:
            self._in_flight = None
        return self._in_flight

    def resolve(self) -> None:
        """Mark the in-flight listing as done."""
        self._in_flight = None

    async def clear(self) -> None:
        """Drop the position and close the iteration.

        Both fields are reset before the close is awaited, so no other
        callback can observe a half-cleared cursor.  Idempotent.
        """
        ids, self._ids, self._in_flight = self._ids, None, None
        if ids is not None:
            await ids.close()
            logger.debug("Listing id iteration closed.")

    def __repr__(self) -> str:
        return f"ResumableCursor(open={self.is_open}, in_flight={self._in_flight})"

"""Tracking store repository.

Provides :class:`TrackingRepository`, the single data-access object for the
``listings``, ``groups`` and ``subscriptions`` tables, and
:class:`ListingIdCursor`, the lazy iteration over every tracked listing id
that drives a daily pass.

The daily scheduler uses only three operations:

* :meth:`TrackingRepository.listing_ids` — open a closeable id cursor.
* :meth:`TrackingRepository.subscriptions_of` — subscriptions of one listing,
  with the owning group's destination and threshold joined in.
* :meth:`TrackingRepository.update_subscription_flags` — atomic single-row
  flag write.

The remaining methods are the minimal administrative surface used to
populate the store (group binding, subscribe / unsubscribe).

Every :mod:`sqlite3` failure is re-raised as
:class:`~salewatch.core.exceptions.StorageError`.

Typical usage::

    from salewatch.storage.database import open_db
    from salewatch.storage.repository import TrackingRepository

    async def run() -> None:
        conn = await open_db()
        repo = TrackingRepository(conn)

        async with repo.listing_ids(batch_size=100) as ids:
            async for listing_id in ids:
                subs = await repo.subscriptions_of(listing_id)

        await conn.close()
"""

from __future__ import annotations

import logging
from collections import deque
from types import TracebackType

import aiosqlite

from salewatch.core.exceptions import StorageError
from salewatch.core.models import DEFAULT_SALE_THRESHOLD, Group, Subscription

__all__ = ["ListingIdCursor", "TrackingRepository"]

logger = logging.getLogger(__name__)

_SUBSCRIPTION_SELECT = """
    SELECT s.listing_id, s.group_id, s.trailing_sale_day, s.coming_soon,
           s.sale_threshold AS threshold_override,
           g.chat_id, g.sale_threshold AS group_threshold
      FROM subscriptions AS s
      JOIN groups AS g ON g.group_id = s.group_id
"""


def _row_to_subscription(row: aiosqlite.Row) -> Subscription:
    return Subscription(
        listing_id=row["listing_id"],
        group_id=row["group_id"],
        chat_id=row["chat_id"],
        group_threshold=row["group_threshold"],
        threshold_override=row["threshold_override"],
        trailing_sale_day=bool(row["trailing_sale_day"]),
        coming_soon=bool(row["coming_soon"]),
    )


# ---------------------------------------------------------------------------
# Listing id cursor
# ---------------------------------------------------------------------------


class ListingIdCursor:
    """Lazy, closeable async iterator over tracked listing ids (ascending).

    Ids are read in pages of *batch_size* with keyset paging
    (``WHERE listing_id > last``), so no SQLite statement stays open between
    pages and flag writes made while iterating are never blocked.  Listings
    removed mid-pass are simply not returned; listings added mid-pass are
    returned if their id is above the last one handed out.

    After :meth:`close` the cursor yields nothing more.

    Args:
        conn: Open database connection.
        batch_size: Ids fetched per page (≥ 1).
    """

    def __init__(self, conn: aiosqlite.Connection, batch_size: int) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be ≥ 1, got {batch_size!r}.")
        self._conn = conn
        self._batch_size = batch_size
        self._buffer: deque[int] = deque()
        self._last_id = 0
        self._exhausted = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> ListingIdCursor:
        return self

    async def __anext__(self) -> int:
        if self._closed:
            raise StopAsyncIteration
        if not self._buffer and not self._exhausted:
            await self._fill()
        if not self._buffer:
            raise StopAsyncIteration
        return self._buffer.popleft()

    async def close(self) -> None:
        """Release the cursor.  Idempotent."""
        self._closed = True
        self._buffer.clear()

    async def __aenter__(self) -> ListingIdCursor:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _fill(self) -> None:
        try:
            cursor = await self._conn.execute(
                "SELECT listing_id FROM listings WHERE listing_id > ? "
                "ORDER BY listing_id LIMIT ?",
                (self._last_id, self._batch_size),
            )
            rows = await cursor.fetchall()
            await cursor.close()
        except aiosqlite.Error as exc:
            raise StorageError(f"Could not read listing ids: {exc}") from exc

        ids = [row[0] for row in rows]
        if len(ids) < self._batch_size:
            self._exhausted = True
        if ids:
            self._last_id = ids[-1]
            self._buffer.extend(ids)
        logger.debug("Listing id page loaded: %d id(s), last=%d", len(ids), self._last_id)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TrackingRepository:
    """Data-access object for listings, groups and subscriptions.

    It owns no connection lifecycle: the caller supplies an open
    :class:`aiosqlite.Connection` (see
    :func:`~salewatch.storage.database.open_db`) and closes it when done.

    Args:
        conn: Open, configured :class:`aiosqlite.Connection`.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Scan operations
    # ------------------------------------------------------------------

    def listing_ids(self, batch_size: int = 100) -> ListingIdCursor:
        """Open a lazy iteration over every tracked listing id."""
        return ListingIdCursor(self._conn, batch_size)

    async def subscriptions_of(self, listing_id: int) -> list[Subscription]:
        """Return every subscription of *listing_id* with group data joined in.

        Raises:
            StorageError: The query failed.
        """
        try:
            cursor = await self._conn.execute(
                _SUBSCRIPTION_SELECT + " WHERE s.listing_id = ? ORDER BY s.group_id",
                (listing_id,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError(
                f"Could not read subscriptions of listing {listing_id}: {exc}"
            ) from exc
        return [_row_to_subscription(row) for row in rows]

    async def update_subscription_flags(
        self,
        listing_id: int,
        group_id: int,
        *,
        trailing_sale_day: bool,
        coming_soon: bool,
    ) -> bool:
        """Overwrite both flags of one subscription and commit.

        Re-applying the same values is a no-op.

        Returns:
            ``False`` when the subscription no longer exists (removed
            mid-pass), ``True`` otherwise.

        Raises:
            StorageError: The write failed.
        """
        try:
            cursor = await self._conn.execute(
                "UPDATE subscriptions SET trailing_sale_day = ?, coming_soon = ? "
                "WHERE listing_id = ? AND group_id = ?",
                (int(trailing_sale_day), int(coming_soon), listing_id, group_id),
            )
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(
                f"Could not update flags of {listing_id}/{group_id}: {exc}"
            ) from exc

        updated = cursor.rowcount > 0
        logger.debug(
            "Flags %s/%s → trailing_sale_day=%s coming_soon=%s (updated=%s)",
            listing_id,
            group_id,
            trailing_sale_day,
            coming_soon,
            updated,
        )
        return updated

    # ------------------------------------------------------------------
    # Administrative operations
    # ------------------------------------------------------------------

    async def get_group(self, group_id: int) -> Group | None:
        try:
            cursor = await self._conn.execute(
                "SELECT group_id, chat_id, sale_threshold FROM groups WHERE group_id = ?",
                (group_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Could not read group {group_id}: {exc}") from exc
        if row is None:
            return None
        return Group(
            group_id=row["group_id"],
            chat_id=row["chat_id"],
            sale_threshold=row["sale_threshold"],
        )

    async def upsert_group(
        self,
        group_id: int,
        *,
        chat_id: str | None = None,
        sale_threshold: int | None = None,
    ) -> Group:
        """Create a group, or update the fields given for an existing one.

        Fields left as ``None`` keep their stored value (or the default on
        insert).

        Raises:
            ValueError: *sale_threshold* is outside 1–99.
            StorageError: The write failed.
        """
        if sale_threshold is not None and not 1 <= sale_threshold <= 99:
            raise ValueError(f"sale_threshold must be within 1–99, got {sale_threshold!r}")

        try:
            await self._conn.execute(
                """
                INSERT INTO groups (group_id, chat_id, sale_threshold)
                VALUES (?, ?, ?)
                ON CONFLICT (group_id) DO UPDATE SET
                    chat_id = COALESCE(excluded.chat_id, groups.chat_id),
                    sale_threshold = COALESCE(?, groups.sale_threshold)
                """,
                (
                    group_id,
                    chat_id,
                    sale_threshold or DEFAULT_SALE_THRESHOLD,
                    sale_threshold,
                ),
            )
            await self._conn.commit()
        except aiosqlite.Error as exc:
            raise StorageError(f"Could not upsert group {group_id}: {exc}") from exc

        group = await self.get_group(group_id)
        assert group is not None
        logger.debug(
            "Upserted group %s (chat_id=%s threshold=%d)",
            group_id,
            group.chat_id,
            group.sale_threshold,
        )
        return group

    async def add_subscription(
        self,
        listing_id: int,
        group_id: int,
        *,
        name: str = "",
        threshold_override: int | None = None,
    ) -> None:
        """Track *listing_id* for *group_id* in one transaction.

        Upserts the listing (refreshing its name), creates the group if it is
        unknown, and inserts the subscription with both flags false.  An
        existing subscription keeps its flags; only the override is updated
        when one is given.

        Raises:
            StorageError: Any statement failed; nothing is committed.
        """
        try:
            await self._conn.execute(
                """
                INSERT INTO listings (listing_id, name) VALUES (?, ?)
                ON CONFLICT (listing_id) DO UPDATE SET name = excluded.name
                """,
                (listing_id, name),
            )
            await self._conn.execute(
                "INSERT OR IGNORE INTO groups (group_id, sale_threshold) VALUES (?, ?)",
                (group_id, DEFAULT_SALE_THRESHOLD),
            )
            await self._conn.execute(
                """
                INSERT INTO subscriptions
                    (listing_id, group_id, trailing_sale_day, coming_soon, sale_threshold)
                VALUES (?, ?, 0, 0, ?)
                ON CONFLICT (listing_id, group_id) DO UPDATE SET
                    sale_threshold = COALESCE(excluded.sale_threshold,
                                              subscriptions.sale_threshold)
                """,
                (listing_id, group_id, threshold_override),
            )
            await self._conn.commit()
        except aiosqlite.Error as exc:
            await self._conn.rollback()
            raise StorageError(
                f"Could not subscribe group {group_id} to listing {listing_id}: {exc}"
            ) from exc

        logger.debug("Group %s subscribed to listing %s", group_id, listing_id)

    async def remove_subscription(self, listing_id: int, group_id: int) -> bool:
        """Delete one subscription and, if it was the last, its listing.

        Both deletes happen in one transaction.

        Returns:
            ``True`` if a subscription was removed.

        Raises:
            StorageError: Any statement failed; nothing is committed.
        """
        try:
            cursor = await self._conn.execute(
                "DELETE FROM subscriptions WHERE listing_id = ? AND group_id = ?",
                (listing_id, group_id),
            )
            removed = cursor.rowcount > 0
            await self._conn.execute(
                """
                DELETE FROM listings
                 WHERE listing_id = ?
                   AND NOT EXISTS (SELECT 1 FROM subscriptions WHERE listing_id = ?)
                """,
                (listing_id, listing_id),
            )
            await self._conn.commit()
        except aiosqlite.Error as exc:
            await self._conn.rollback()
            raise StorageError(
                f"Could not unsubscribe group {group_id} from listing {listing_id}: {exc}"
            ) from exc

        logger.debug(
            "Group %s unsubscribed from listing %s (removed=%s)", group_id, listing_id, removed
        )
        return removed

    async def get_subscription(self, listing_id: int, group_id: int) -> Subscription | None:
        try:
            cursor = await self._conn.execute(
                _SUBSCRIPTION_SELECT + " WHERE s.listing_id = ? AND s.group_id = ?",
                (listing_id, group_id),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(
                f"Could not read subscription {listing_id}/{group_id}: {exc}"
            ) from exc
        return _row_to_subscription(row) if row is not None else None

    async def count_listings(self) -> int:
        """Number of tracked listings (used for pass logging)."""
        try:
            cursor = await self._conn.execute("SELECT COUNT(*) FROM listings")
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(f"Could not count listings: {exc}") from exc
        return int(row[0]) if row else 0

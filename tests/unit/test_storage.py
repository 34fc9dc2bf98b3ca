"""Unit tests for the tracking store.

Covers:
- :func:`~salewatch.storage.database.open_db` schema bootstrap and PRAGMAs.
- :class:`~salewatch.storage.repository.ListingIdCursor` keyset paging,
  mid-iteration changes, and close semantics.
- :class:`~salewatch.storage.repository.TrackingRepository` flag updates,
  group upserts, and the transactional subscribe / unsubscribe surface.

Every test runs against a fresh on-disk SQLite file (``db_conn`` fixture).
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite
import pytest

from salewatch.core.exceptions import StorageError
from salewatch.core.models import DEFAULT_SALE_THRESHOLD
from salewatch.storage.database import create_schema, open_db
from salewatch.storage.repository import ListingIdCursor, TrackingRepository

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _seed(repo: TrackingRepository, listing_ids: list[int], group_id: int = 1) -> None:
    await repo.upsert_group(group_id, chat_id="-1001", sale_threshold=10)
    for listing_id in listing_ids:
        await repo.add_subscription(listing_id, group_id, name=f"Game {listing_id}")


async def _collect(cursor: ListingIdCursor) -> list[int]:
    return [listing_id async for listing_id in cursor]


# ---------------------------------------------------------------------------
# Database bootstrap
# ---------------------------------------------------------------------------


class TestDatabase:
    async def test_open_creates_parent_dirs(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "dir" / "salewatch.db"
        conn = await open_db(path)
        try:
            assert path.exists()
        finally:
            await conn.close()

    async def test_tables_exist(self, db_conn: aiosqlite.Connection) -> None:
        cursor = await db_conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        names = {row[0] for row in await cursor.fetchall()}
        assert {"listings", "groups", "subscriptions"} <= names

    async def test_foreign_keys_enabled(self, db_conn: aiosqlite.Connection) -> None:
        cursor = await db_conn.execute("PRAGMA foreign_keys")
        row = await cursor.fetchone()
        assert row is not None and row[0] == 1

    async def test_wal_mode(self, db_conn: aiosqlite.Connection) -> None:
        cursor = await db_conn.execute("PRAGMA journal_mode")
        row = await cursor.fetchone()
        assert row is not None and row[0] == "wal"

    async def test_create_schema_is_idempotent(self, db_conn: aiosqlite.Connection) -> None:
        await create_schema(db_conn)
        await create_schema(db_conn)


# ---------------------------------------------------------------------------
# ListingIdCursor
# ---------------------------------------------------------------------------


class TestListingIdCursor:
    async def test_yields_all_ids_ascending_across_pages(self, repo: TrackingRepository) -> None:
        await _seed(repo, [7, 3, 11, 1, 5])
        async with repo.listing_ids(batch_size=2) as ids:
            assert await _collect(ids) == [1, 3, 5, 7, 11]

    async def test_exact_page_multiple(self, repo: TrackingRepository) -> None:
        await _seed(repo, [1, 2, 3, 4])
        async with repo.listing_ids(batch_size=2) as ids:
            assert await _collect(ids) == [1, 2, 3, 4]

    async def test_empty_store(self, repo: TrackingRepository) -> None:
        async with repo.listing_ids() as ids:
            assert await _collect(ids) == []

    async def test_close_stops_iteration(self, repo: TrackingRepository) -> None:
        await _seed(repo, [1, 2, 3])
        ids = repo.listing_ids(batch_size=10)
        assert await anext(ids) == 1
        await ids.close()
        assert ids.closed
        assert await _collect(ids) == []

    async def test_close_is_idempotent(self, repo: TrackingRepository) -> None:
        ids = repo.listing_ids()
        await ids.close()
        await ids.close()
        assert ids.closed

    async def test_context_manager_closes(self, repo: TrackingRepository) -> None:
        async with repo.listing_ids() as ids:
            pass
        assert ids.closed

    async def test_flag_writes_while_iterating(self, repo: TrackingRepository) -> None:
        await _seed(repo, [1, 2, 3])
        seen: list[int] = []
        async with repo.listing_ids(batch_size=1) as ids:
            async for listing_id in ids:
                seen.append(listing_id)
                assert await repo.update_subscription_flags(
                    listing_id, 1, trailing_sale_day=True, coming_soon=False
                )
        assert seen == [1, 2, 3]

    async def test_listing_removed_mid_iteration_is_skipped(
        self, repo: TrackingRepository
    ) -> None:
        await _seed(repo, [1, 2, 3])
        async with repo.listing_ids(batch_size=1) as ids:
            assert await anext(ids) == 1
            await repo.remove_subscription(2, 1)
            assert await _collect(ids) == [3]

    async def test_invalid_batch_size(self, repo: TrackingRepository) -> None:
        with pytest.raises(ValueError):
            repo.listing_ids(batch_size=0)

    async def test_read_failure_is_storage_error(self, tmp_path: Path) -> None:
        conn = await open_db(tmp_path / "x.db")
        await conn.execute("DROP TABLE subscriptions")
        await conn.execute("DROP TABLE listings")
        try:
            ids = TrackingRepository(conn).listing_ids()
            with pytest.raises(StorageError):
                await anext(ids)
        finally:
            await conn.close()


# ---------------------------------------------------------------------------
# Subscriptions and flags
# ---------------------------------------------------------------------------


class TestSubscriptions:
    async def test_subscriptions_joined_with_group(self, repo: TrackingRepository) -> None:
        await _seed(repo, [620])
        subs = await repo.subscriptions_of(620)
        assert len(subs) == 1
        sub = subs[0]
        assert (sub.listing_id, sub.group_id) == (620, 1)
        assert sub.chat_id == "-1001"
        assert sub.group_threshold == 10
        assert sub.threshold_override is None
        assert sub.trailing_sale_day is False
        assert sub.coming_soon is False

    async def test_subscriptions_of_unknown_listing(self, repo: TrackingRepository) -> None:
        assert await repo.subscriptions_of(999) == []

    async def test_multiple_groups_ordered(self, repo: TrackingRepository) -> None:
        await repo.add_subscription(620, 3)
        await repo.add_subscription(620, 2)
        subs = await repo.subscriptions_of(620)
        assert [s.group_id for s in subs] == [2, 3]

    async def test_update_flags(self, repo: TrackingRepository) -> None:
        await _seed(repo, [620])
        updated = await repo.update_subscription_flags(
            620, 1, trailing_sale_day=True, coming_soon=True
        )
        assert updated is True
        sub = await repo.get_subscription(620, 1)
        assert sub is not None
        assert sub.trailing_sale_day is True
        assert sub.coming_soon is True

    async def test_update_flags_same_values_is_noop(self, repo: TrackingRepository) -> None:
        await _seed(repo, [620])
        for _ in range(2):
            assert await repo.update_subscription_flags(
                620, 1, trailing_sale_day=True, coming_soon=False
            )
        sub = await repo.get_subscription(620, 1)
        assert sub is not None and sub.trailing_sale_day is True

    async def test_update_flags_missing_subscription(self, repo: TrackingRepository) -> None:
        assert not await repo.update_subscription_flags(
            620, 1, trailing_sale_day=True, coming_soon=False
        )

    async def test_update_flags_failure_is_storage_error(self, tmp_path: Path) -> None:
        conn = await open_db(tmp_path / "x.db")
        await conn.execute("DROP TABLE subscriptions")
        try:
            with pytest.raises(StorageError):
                await TrackingRepository(conn).update_subscription_flags(
                    1, 1, trailing_sale_day=False, coming_soon=False
                )
        finally:
            await conn.close()

    async def test_add_keeps_flags_and_updates_override(self, repo: TrackingRepository) -> None:
        await _seed(repo, [620])
        await repo.update_subscription_flags(620, 1, trailing_sale_day=True, coming_soon=False)
        await repo.add_subscription(620, 1, name="Portal 2", threshold_override=40)
        sub = await repo.get_subscription(620, 1)
        assert sub is not None
        assert sub.trailing_sale_day is True
        assert sub.threshold_override == 40
        assert sub.effective_threshold == 40

    async def test_add_creates_unknown_group_with_default(
        self, repo: TrackingRepository
    ) -> None:
        await repo.add_subscription(620, 42)
        group = await repo.get_group(42)
        assert group is not None
        assert group.chat_id is None
        assert group.sale_threshold == DEFAULT_SALE_THRESHOLD

    async def test_remove_last_subscription_drops_listing(
        self, repo: TrackingRepository
    ) -> None:
        await _seed(repo, [620])
        assert await repo.remove_subscription(620, 1) is True
        assert await repo.count_listings() == 0
        assert await repo.get_subscription(620, 1) is None

    async def test_remove_keeps_listing_with_other_subscribers(
        self, repo: TrackingRepository
    ) -> None:
        await repo.add_subscription(620, 1)
        await repo.add_subscription(620, 2)
        assert await repo.remove_subscription(620, 1) is True
        assert await repo.count_listings() == 1
        assert [s.group_id for s in await repo.subscriptions_of(620)] == [2]

    async def test_remove_unknown_subscription(self, repo: TrackingRepository) -> None:
        assert await repo.remove_subscription(620, 1) is False


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class TestGroups:
    async def test_upsert_creates(self, repo: TrackingRepository) -> None:
        group = await repo.upsert_group(5, chat_id="-100", sale_threshold=25)
        assert (group.group_id, group.chat_id, group.sale_threshold) == (5, "-100", 25)

    async def test_upsert_partial_update_keeps_other_fields(
        self, repo: TrackingRepository
    ) -> None:
        await repo.upsert_group(5, chat_id="-100", sale_threshold=25)
        group = await repo.upsert_group(5, sale_threshold=50)
        assert group.chat_id == "-100"
        assert group.sale_threshold == 50

        group = await repo.upsert_group(5, chat_id="-200")
        assert group.chat_id == "-200"
        assert group.sale_threshold == 50

    @pytest.mark.parametrize("threshold", [0, 100])
    async def test_upsert_rejects_out_of_range(
        self, repo: TrackingRepository, threshold: int
    ) -> None:
        with pytest.raises(ValueError):
            await repo.upsert_group(5, sale_threshold=threshold)

    async def test_get_unknown_group(self, repo: TrackingRepository) -> None:
        assert await repo.get_group(404) is None

    async def test_group_threshold_change_reaches_subscriptions(
        self, repo: TrackingRepository
    ) -> None:
        await _seed(repo, [620])
        await repo.upsert_group(1, sale_threshold=75)
        sub = await repo.get_subscription(620, 1)
        assert sub is not None and sub.effective_threshold == 75

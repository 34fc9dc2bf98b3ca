"""SQLite database initialisation for Salewatch.

This module is responsible for:

* Opening (or creating) the SQLite file.
* Configuring low-level PRAGMA settings (WAL journal mode, foreign keys).
* Bootstrapping the schema via ``CREATE TABLE IF NOT EXISTS`` — safe to
  call on every startup because the statements are idempotent.

Consumers should call :func:`open_db` once at process startup and share the
returned connection with :class:`~salewatch.storage.repository.TrackingRepository`.
The connection must be closed explicitly (``await conn.close()``).

Typical usage::

    from salewatch.storage.database import open_db

    async def main() -> None:
        conn = await open_db(Path("data/salewatch.db"))
        # ... pass conn to TrackingRepository ...
        await conn.close()
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
]

logger = logging.getLogger(__name__)

#: Fallback database path when no explicit path is passed to :func:`open_db`.
DEFAULT_DB_PATH: Path = Path("data/salewatch.db")

# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

#: One row per tracked listing.  A listing exists only while at least one
#: subscription references it; orphan cleanup happens in
#: ``TrackingRepository.remove_subscription``.
_DDL_LISTINGS = """\
CREATE TABLE IF NOT EXISTS listings (
    listing_id  INTEGER  NOT NULL PRIMARY KEY,
    name        TEXT     NOT NULL DEFAULT ''
)"""

#: Subscriber communities.  ``chat_id`` is the Telegram destination; NULL
#: until the group binds one.
_DDL_GROUPS = """\
CREATE TABLE IF NOT EXISTS groups (
    group_id        INTEGER  NOT NULL PRIMARY KEY,
    chat_id         TEXT,
    sale_threshold  INTEGER  NOT NULL DEFAULT 1
)"""

#: Column notes
#: ------------
#: trailing_sale_day  0/1 — last successful check saw a non-zero discount.
#: coming_soon        0/1 — last successful check saw the listing unreleased.
#: sale_threshold     Per-subscription override.  NULL (or 0) = group default.
_DDL_SUBSCRIPTIONS = """\
CREATE TABLE IF NOT EXISTS subscriptions (
    listing_id         INTEGER  NOT NULL
                       REFERENCES listings(listing_id) ON DELETE CASCADE,
    group_id           INTEGER  NOT NULL
                       REFERENCES groups(group_id) ON DELETE CASCADE,
    trailing_sale_day  INTEGER  NOT NULL DEFAULT 0,
    coming_soon        INTEGER  NOT NULL DEFAULT 0,
    sale_threshold     INTEGER,
    PRIMARY KEY (listing_id, group_id)
)"""

_DDL_SUBSCRIPTIONS_GROUP_INDEX = """\
CREATE INDEX IF NOT EXISTS idx_subscriptions_group
    ON subscriptions (group_id)"""

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def open_db(path: Path | None = None) -> aiosqlite.Connection:
    """Open (or create) the SQLite database and configure it.

    Creates missing parent directories, sets ``row_factory`` to
    :class:`aiosqlite.Row`, applies the PRAGMAs and bootstraps the schema.

    Args:
        path: Filesystem path for the SQLite file.  Defaults to
            :data:`DEFAULT_DB_PATH`.

    Returns:
        An open, configured :class:`aiosqlite.Connection`.  The caller is
        responsible for closing it.

    Raises:
        aiosqlite.OperationalError: If the database file cannot be opened or
            created (e.g. permission denied on the parent directory).
    """
    db_path = Path(path or DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.debug("Opening SQLite database at %s", db_path)

    conn: aiosqlite.Connection = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row

    await _configure_pragmas(conn)
    await create_schema(conn)

    logger.info("SQLite database ready at %s", db_path)
    return conn


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create all required tables if they do not already exist.

    Idempotent.  Existing data is untouched.
    """
    for ddl in (
        _DDL_LISTINGS,
        _DDL_GROUPS,
        _DDL_SUBSCRIPTIONS,
        _DDL_SUBSCRIPTIONS_GROUP_INDEX,
    ):
        await conn.execute(ddl)
    await conn.commit()
    logger.debug("Schema bootstrap complete (listings, groups, subscriptions)")


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


async def _configure_pragmas(conn: aiosqlite.Connection) -> None:
    """Enable WAL journalling and foreign-key enforcement.

    ``foreign_keys`` must be on for the ``ON DELETE CASCADE`` clauses to
    apply; SQLite leaves it off by default.
    """
    result = await conn.execute("PRAGMA journal_mode=WAL")
    row = await result.fetchone()
    mode = row[0] if row else "unknown"
    if mode != "wal":
        logger.warning(
            "Requested WAL journal mode but SQLite reported: %r. "
            "This may happen for in-memory databases (':memory:').",
            mode,
        )

    await conn.execute("PRAGMA foreign_keys=ON")
    logger.debug("SQLite foreign_keys enforcement enabled")

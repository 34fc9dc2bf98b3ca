"""SQLite-backed tracking store for listings, groups and subscriptions."""

from salewatch.storage.database import DEFAULT_DB_PATH, create_schema, open_db
from salewatch.storage.repository import ListingIdCursor, TrackingRepository

__all__ = [
    "DEFAULT_DB_PATH",
    "open_db",
    "create_schema",
    "ListingIdCursor",
    "TrackingRepository",
]

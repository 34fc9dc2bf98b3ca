"""Shared pytest fixtures and configuration for the Salewatch test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from pathlib import Path

import aiosqlite
import pytest
from pydantic_settings import SettingsConfigDict

from salewatch.core import configure_logging
from salewatch.core.settings import Settings
from salewatch.storage.database import open_db
from salewatch.storage.repository import TrackingRepository


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own
    ``log_cli`` handler is already installed.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove Salewatch-related env vars and disable ``.env`` loading.

    Keeps a developer's shell or local ``.env`` from leaking real credentials
    or schedules into Settings tests.
    """
    prefixes = (
        "TELEGRAM_",
        "STORE_",
        "PRICE_SOURCE_",
        "DATABASE_",
        "LISTING_",
        "CHECK_",
        "RATE_LIMIT_",
        "HEARTBEAT_",
        "DRY_RUN",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db_conn(tmp_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    """Fresh on-disk SQLite database with the full schema."""
    conn = await open_db(tmp_path / "salewatch.db")
    try:
        yield conn
    finally:
        await conn.close()


@pytest.fixture()
def repo(db_conn: aiosqlite.Connection) -> TrackingRepository:
    return TrackingRepository(db_conn)


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a logger scoped to test code."""
    return logging.getLogger("tests")

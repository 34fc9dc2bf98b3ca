"""Salewatch application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.

Every environment variable maps 1-to-1 to a field in :class:`Settings`.  The
field name is the **lowercase** version of the env-var name (e.g.
``CHECK_TIME`` → ``check_time``).

Typical usage::

    from salewatch.core.settings import Settings

    settings = Settings()                 # loads from env + .env
    settings.check_time_of_day            # datetime.time(10, 5)
    settings.check_zone                   # ZoneInfo('America/Los_Angeles')
"""

from __future__ import annotations

import logging
import re
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["Settings"]

logger = logging.getLogger(__name__)

_HH_MM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Telegram
    # ------------------------------------------------------------------
    telegram_bot_token: str = Field(
        default="",
        description="Bot token from @BotFather (required for live alerts).",
    )

    # ------------------------------------------------------------------
    # Price source
    # ------------------------------------------------------------------
    store_country_code: str = Field(
        default="US",
        min_length=2,
        max_length=2,
        description="Country code used to price listings.",
    )
    price_source_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Seconds before a price-source request is abandoned.",
    )
    price_source_max_attempts: int = Field(
        default=2,
        ge=1,
        description="Attempts per listing on transient (5xx / network) errors.",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    database_path: str = Field(
        default="data/salewatch.db",
        description="Path to the SQLite database file.",
    )
    listing_batch_size: int = Field(
        default=100,
        ge=1,
        description="Listing ids read from the store per page during a pass.",
    )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    check_time: str = Field(
        default="10:05",
        description="Local wall-clock time of the daily check (HH:MM).",
    )
    check_timezone: str = Field(
        default="America/Los_Angeles",
        description="IANA time zone the check time is expressed in.",
    )
    rate_limit_cooldown: float = Field(
        default=300.0,
        gt=0.0,
        description="Seconds to wait after the price source rate-limits us.",
    )
    heartbeat_path: str = Field(
        default="/tmp/salewatch_heartbeat",
        description="File rewritten hourly with the next check instant.",
    )

    # ------------------------------------------------------------------
    # Runtime flags
    # ------------------------------------------------------------------
    dry_run: bool = Field(
        default=False,
        description="Log alert payloads without sending Telegram messages.",
    )
    log_level: str = Field(default="INFO", description="Logging level.")
    log_format: str = Field(default="text", description="Log format: 'text' or 'json'.")

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("check_time")
    @classmethod
    def _validate_check_time(cls, v: str) -> str:
        v = v.strip()
        if not _HH_MM.match(v):
            raise ValueError(f"check_time must be HH:MM (24h), got {v!r}")
        return v

    @field_validator("check_timezone")
    @classmethod
    def _validate_check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"check_timezone is not a known IANA zone: {v!r}") from exc
        return v

    @field_validator("store_country_code")
    @classmethod
    def _upper_country_code(cls, v: str) -> str:
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, v: str) -> str:
        allowed = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got {v!r}")
        return v_lower

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def check_time_of_day(self) -> time:
        """:attr:`check_time` parsed into a :class:`datetime.time`."""
        hours, minutes = self.check_time.split(":")
        return time(int(hours), int(minutes))

    @property
    def check_zone(self) -> ZoneInfo:
        return ZoneInfo(self.check_timezone)

    @property
    def database_path_resolved(self) -> Path:
        """Return the database path as a resolved :class:`~pathlib.Path`."""
        return Path(self.database_path).resolve()

    @property
    def telegram_configured(self) -> bool:
        """``True`` if a Telegram bot token is set."""
        return bool(self.telegram_bot_token)

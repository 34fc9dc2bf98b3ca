"""Salewatch exception taxonomy.

Every custom exception inherits from :class:`SalewatchError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    SalewatchError
    ├── ConfigError
    ├── StorageError
    ├── PriceSourceError
    │   ├── PriceSourceFetchError
    │   ├── PriceSourceParseError
    │   ├── PriceSourceNotFoundError
    │   └── PriceSourceRateLimitError
    ├── NotificationError
    │   └── TelegramError
    │       └── TelegramRateLimitError
    └── SchedulerError

The daily scheduler only distinguishes :class:`PriceSourceRateLimitError`
(wait and resume) from every other fetch failure (abort the pass).

Usage:

    from salewatch.core.exceptions import PriceSourceFetchError

    raise PriceSourceFetchError("steam", "Connection refused") from exc
"""

from __future__ import annotations

__all__ = [
    "SalewatchError",
    # Config
    "ConfigError",
    # Storage
    "StorageError",
    # Price source
    "PriceSourceError",
    "PriceSourceFetchError",
    "PriceSourceParseError",
    "PriceSourceNotFoundError",
    "PriceSourceRateLimitError",
    # Notification
    "NotificationError",
    "TelegramError",
    "TelegramRateLimitError",
    # Scheduler
    "SchedulerError",
]

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class SalewatchError(Exception):
    """Root exception for all Salewatch errors.

    Catch this to handle any application-level error uniformly.  Prefer
    catching layer-specific subclasses wherever possible.
    """


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(SalewatchError):
    """Raised when the application configuration is invalid or incomplete.

    Examples:
        - Live mode without ``TELEGRAM_BOT_TOKEN``.
        - ``CHECK_TIME`` that is not a valid ``HH:MM`` string.
    """


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(SalewatchError):
    """Raised when a tracking-store read or write fails."""


# ---------------------------------------------------------------------------
# Price source layer
# ---------------------------------------------------------------------------


class PriceSourceError(SalewatchError):
    """Base class for all price-source failures.

    Args:
        source: Short name of the price source (e.g. ``"steam"``).
        message: Human-readable error description.
    """

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"[{source}] {message}")


class PriceSourceFetchError(PriceSourceError):
    """Transient failure: network error, timeout, or unexpected HTTP status."""


class PriceSourceParseError(PriceSourceError):
    """The source answered but the payload could not be decoded or mapped."""


class PriceSourceNotFoundError(PriceSourceError):
    """The id does not correspond to a real, priced-or-unreleased listing.

    Args:
        source: Short name of the price source.
        listing_id: The id that was requested.
    """

    def __init__(self, source: str, listing_id: int) -> None:
        self.listing_id = listing_id
        super().__init__(source, f"Invalid listing id {listing_id}")


class PriceSourceRateLimitError(PriceSourceError):
    """The source is throttling requests (HTTP 429 / 403).

    This is the only *expected* fetch failure: callers wait a cooldown and
    retry the same id.

    Args:
        source: Short name of the price source.
        status_code: HTTP status that signalled the limit.
    """

    def __init__(self, source: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else "no status"
        super().__init__(source, f"Capacity limited ({detail}); try again later")


# ---------------------------------------------------------------------------
# Notification layer
# ---------------------------------------------------------------------------


class NotificationError(SalewatchError):
    """Base class for notification delivery errors."""


class TelegramError(NotificationError):
    """Raised when the Telegram Bot API returns an error or is unreachable.

    Args:
        message: Human-readable error description.
        status_code: HTTP status code from the Telegram API, if available.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Telegram error{detail}: {message}")


class TelegramRateLimitError(TelegramError):
    """Raised when the Telegram Bot API returns HTTP 429 (Too Many Requests).

    Args:
        retry_after: Seconds to wait before retrying, as reported by Telegram.
    """

    def __init__(self, retry_after: float) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"Rate limited; retry after {retry_after}s",
            status_code=429,
        )


# ---------------------------------------------------------------------------
# Scheduler layer
# ---------------------------------------------------------------------------


class SchedulerError(SalewatchError):
    """Raised for misuse of the daily scheduler.

    Examples:
        - ``start()`` called twice.
        - A timer callback fired while a pass was already running.
    """

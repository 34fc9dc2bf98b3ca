"""Core domain models, settings, clock, logging configuration, and exceptions."""

from salewatch.core.clock import AsyncioClock, Clock, DailyTrigger, Timer
from salewatch.core.exceptions import (
    ConfigError,
    NotificationError,
    PriceSourceError,
    PriceSourceFetchError,
    PriceSourceNotFoundError,
    PriceSourceParseError,
    PriceSourceRateLimitError,
    SalewatchError,
    SchedulerError,
    StorageError,
    TelegramError,
    TelegramRateLimitError,
)
from salewatch.core.logging_config import JsonFormatter, configure_logging
from salewatch.core.models import (
    AlertField,
    AlertKind,
    AlertMessage,
    Group,
    ListingSnapshot,
    Subscription,
)
from salewatch.core.run_context import RunContext
from salewatch.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "ListingSnapshot",
    "Group",
    "Subscription",
    "AlertKind",
    "AlertField",
    "AlertMessage",
    # Settings / runtime
    "Settings",
    "RunContext",
    # Clock
    "Clock",
    "Timer",
    "AsyncioClock",
    "DailyTrigger",
    # Exceptions
    "SalewatchError",
    "ConfigError",
    "StorageError",
    "PriceSourceError",
    "PriceSourceFetchError",
    "PriceSourceParseError",
    "PriceSourceNotFoundError",
    "PriceSourceRateLimitError",
    "NotificationError",
    "TelegramError",
    "TelegramRateLimitError",
    "SchedulerError",
]

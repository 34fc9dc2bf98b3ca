"""Alert formatting and Telegram delivery."""

from salewatch.notifiers.formatter import (
    build_release_alert,
    build_sale_alert,
    discount_color,
    escape_mdv2,
    escape_url,
    render_mdv2,
)
from salewatch.notifiers.notifier import Notifier
from salewatch.notifiers.telegram import TelegramClient

__all__ = [
    "Notifier",
    "TelegramClient",
    "build_release_alert",
    "build_sale_alert",
    "discount_color",
    "escape_mdv2",
    "escape_url",
    "render_mdv2",
]

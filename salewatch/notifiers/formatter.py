"""Alert construction and Telegram MarkdownV2 rendering.

Two stages:

1. :func:`build_sale_alert` / :func:`build_release_alert` turn a
   :class:`~salewatch.core.models.ListingSnapshot` into a transport-agnostic
   :class:`~salewatch.core.models.AlertMessage` (title, link, image, colour,
   labelled fields).
2. :func:`render_mdv2` renders an :class:`AlertMessage` as a ready-to-send
   Telegram ``MarkdownV2`` string.  Telegram has no message colour, so the
   colour band is shown as a marker emoji; the image is sent as the link
   preview by the caller.

Telegram MarkdownV2 escaping rules
-----------------------------------
The following characters **must** be escaped with a leading backslash when
they appear in ordinary message text::

    _ * [ ] ( ) ~ ` > # + - = | { } . !

Inside a ``[text](url)`` construct only ``)`` and ``\\`` need escaping.

Reference: https://core.telegram.org/bots/api#markdownv2-style

Typical usage::

    from salewatch.notifiers.formatter import build_sale_alert, render_mdv2

    message = build_sale_alert(snapshot)
    text = render_mdv2(message)
"""

from __future__ import annotations

import logging
import re

from salewatch.core.models import AlertField, AlertKind, AlertMessage, ListingSnapshot

__all__ = [
    "WHITE",
    "discount_color",
    "color_marker",
    "build_sale_alert",
    "build_release_alert",
    "escape_mdv2",
    "escape_url",
    "render_mdv2",
]

logger = logging.getLogger(__name__)

WHITE: int = 0xFFFFFF

# ---------------------------------------------------------------------------
# Escaping
# ---------------------------------------------------------------------------

_MDV2_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_mdv2(text: str) -> str:
    """Escape a plain-text string for safe embedding in a MarkdownV2 body.

    Examples:
        >>> escape_mdv2("Portal 2 is on sale for 90% off!")
        'Portal 2 is on sale for 90% off\\\\!'
    """
    return _MDV2_SPECIAL.sub(r"\\\1", text)


_URL_SPECIAL = re.compile(r"([)\\])")


def escape_url(url: str) -> str:
    """Escape a URL for use inside the ``(url)`` part of a MarkdownV2 link."""
    return _URL_SPECIAL.sub(r"\\\1", url)


# ---------------------------------------------------------------------------
# Discount colour bands
# ---------------------------------------------------------------------------

#: ``(max_discount, colour, marker)`` ordered by ascending upper bound.
_DISCOUNT_BANDS: tuple[tuple[int, int, str], ...] = (
    (5, 0x0BFF33, "🟢"),
    (10, 0x44FDD2, "🟢"),
    (15, 0x44FDFD, "🔵"),
    (20, 0x44DBFD, "🔵"),
    (25, 0x44B6FD, "🔵"),
    (30, 0x448BFD, "🔵"),
    (35, 0x445AFD, "🔵"),
    (40, 0x8544FD, "🟣"),
    (45, 0xB044FD, "🟣"),
    (50, 0xE144FD, "🟣"),
    (55, 0xFD44DE, "🟣"),
    (60, 0xFF23A7, "🔴"),
    (99, 0xFF0000, "🔴"),
)


def discount_color(discount: int) -> int:
    """24-bit colour for *discount*: cool hues for small cuts, red for deep ones."""
    for upper, color, _marker in _DISCOUNT_BANDS:
        if discount <= upper:
            return color
    return WHITE


def color_marker(color: int) -> str:
    """Marker emoji standing in for *color* in chat text."""
    for _upper, band_color, marker in _DISCOUNT_BANDS:
        if band_color == color:
            return marker
    return "⚪"


# ---------------------------------------------------------------------------
# Alert builders
# ---------------------------------------------------------------------------


def build_release_alert(snapshot: ListingSnapshot) -> AlertMessage:
    """Alert for a listing that just left "coming soon"."""
    return AlertMessage(
        kind=AlertKind.RELEASE,
        title=f"{snapshot.name} has released on Steam!",
        url=snapshot.url,
        image_url=snapshot.image_url,
        color=WHITE,
        fields=(
            AlertField(name="Price", value=snapshot.price_label),
            AlertField(name="Description", value=snapshot.description),
        ),
    )


def build_sale_alert(snapshot: ListingSnapshot) -> AlertMessage:
    """Alert for a listing whose discount crossed a group's threshold.

    Reviews are listed only when positive and the description only when
    non-empty.
    """
    fields = [
        AlertField(name="Original Price", value=snapshot.initial_price, inline=True),
        AlertField(name="Sale Price", value=snapshot.final_price, inline=True),
    ]
    if snapshot.reviews > 0:
        fields.append(AlertField(name="Reviews", value=str(snapshot.reviews), inline=True))
    if snapshot.description:
        fields.append(AlertField(name="Description", value=snapshot.description))

    return AlertMessage(
        kind=AlertKind.SALE,
        title=f"{snapshot.name} is on sale for {snapshot.discount}% off!",
        url=snapshot.url,
        image_url=snapshot.image_url,
        color=discount_color(snapshot.discount),
        fields=tuple(fields),
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

#: Telegram caps messages at 4 096 characters; descriptions are trimmed first.
DESCRIPTION_MAX_CHARS: int = 500


def _render_value(field: AlertField) -> str:
    value = field.value.strip()
    if field.name == "Description" and len(value) > DESCRIPTION_MAX_CHARS:
        value = value[:DESCRIPTION_MAX_CHARS].rstrip() + "…"
    return escape_mdv2(value)


def render_mdv2(message: AlertMessage) -> str:
    """Render *message* as a MarkdownV2 string.

    Layout: marker + bold title, inline fields joined on one line, block
    fields on their own paragraphs, then a store link.
    """
    lines: list[str] = [f"{color_marker(message.color)} *{escape_mdv2(message.title)}*"]

    inline = [f for f in message.fields if f.inline and f.value]
    blocks = [f for f in message.fields if not f.inline and f.value]

    if inline:
        lines.append(
            "  •  ".join(f"*{escape_mdv2(f.name)}:* {_render_value(f)}" for f in inline)
        )
    for f in blocks:
        lines.append(f"\n*{escape_mdv2(f.name)}*\n{_render_value(f)}")

    lines.append(f"\n[View in store]({escape_url(message.url)})")
    return "\n".join(lines)

"""Unit tests for the notification layer.

Covers:
- :func:`~salewatch.notifiers.formatter.escape_mdv2` / ``escape_url``.
- Discount colour bands and their marker emoji.
- :func:`~salewatch.notifiers.formatter.build_sale_alert` and
  :func:`~salewatch.notifiers.formatter.build_release_alert` content.
- :func:`~salewatch.notifiers.formatter.render_mdv2` layout.
- :class:`~salewatch.notifiers.notifier.Notifier` in dry-run, live-success,
  live-failure, and no-destination modes.
- :class:`~salewatch.notifiers.telegram.TelegramClient` payload, retries,
  and error mapping over :class:`httpx.MockTransport`.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from salewatch.core.exceptions import TelegramError, TelegramRateLimitError
from salewatch.core.models import AlertKind, ListingSnapshot
from salewatch.core.run_context import RunContext
from salewatch.notifiers.formatter import (
    DESCRIPTION_MAX_CHARS,
    WHITE,
    build_release_alert,
    build_sale_alert,
    color_marker,
    discount_color,
    escape_mdv2,
    escape_url,
    render_mdv2,
)
from salewatch.notifiers.notifier import Notifier
from salewatch.notifiers.telegram import TelegramClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_snapshot(
    *,
    listing_id: int = 620,
    name: str = "Portal 2",
    discount: int = 90,
    initial_price: str = "$9.99",
    final_price: str = "$0.99",
    release_pending: bool = False,
    reviews: int = 312000,
    description: str = "Sequel to the acclaimed Portal.",
    image_url: str | None = "https://cdn.example.com/620/header.jpg",
) -> ListingSnapshot:
    return ListingSnapshot(
        listing_id=listing_id,
        name=name,
        discount=discount,
        initial_price=initial_price,
        final_price=final_price,
        release_pending=release_pending,
        reviews=reviews,
        description=description,
        image_url=image_url,
    )


def _make_notifier(
    *,
    dry_run: bool = False,
    send_message_side_effect: Any = None,
) -> tuple[Notifier, MagicMock]:
    client = MagicMock(spec=TelegramClient)
    client.send_message = AsyncMock(side_effect=send_message_side_effect)
    return Notifier(client=client, ctx=RunContext(dry_run=dry_run)), client


def _telegram_client(handler: Any, *, max_attempts: int = 3) -> TelegramClient:
    return TelegramClient(
        "123:ABC",
        max_attempts=max_attempts,
        backoff_scale=0,
        transport=httpx.MockTransport(handler),
    )


_OK = {"ok": True, "result": {"message_id": 1}}


# ---------------------------------------------------------------------------
# Escaping
# ---------------------------------------------------------------------------


class TestEscaping:
    def test_plain_text_unchanged(self) -> None:
        assert escape_mdv2("hello world") == "hello world"

    def test_all_special_chars_escaped(self) -> None:
        for char in "_*[]()~`>#+-=|{}.!\\":
            assert escape_mdv2(char) == f"\\{char}"

    def test_title_with_percent_and_bang(self) -> None:
        assert escape_mdv2("90% off!") == r"90% off\!"

    def test_url_only_parens_and_backslash(self) -> None:
        assert escape_url("https://x.com/a_(b).html") == r"https://x.com/a_(b\).html"


# ---------------------------------------------------------------------------
# Colour bands
# ---------------------------------------------------------------------------


class TestDiscountColor:
    @pytest.mark.parametrize(
        ("discount", "marker"),
        [
            (1, "🟢"),
            (10, "🟢"),
            (11, "🔵"),
            (35, "🔵"),
            (36, "🟣"),
            (55, "🟣"),
            (56, "🔴"),
            (99, "🔴"),
        ],
    )
    def test_band_markers(self, discount: int, marker: str) -> None:
        assert color_marker(discount_color(discount)) == marker

    def test_deeper_discount_never_cooler_band(self) -> None:
        order = ["🟢", "🔵", "🟣", "🔴"]
        ranks = [order.index(color_marker(discount_color(d))) for d in range(1, 100)]
        assert ranks == sorted(ranks)

    def test_band_edges_distinct_colours(self) -> None:
        assert discount_color(5) != discount_color(6)
        assert discount_color(99) == 0xFF0000

    def test_white_has_neutral_marker(self) -> None:
        assert color_marker(WHITE) == "⚪"


# ---------------------------------------------------------------------------
# Alert builders
# ---------------------------------------------------------------------------


class TestBuildSaleAlert:
    def test_title_and_fields(self) -> None:
        alert = build_sale_alert(_make_snapshot())
        assert alert.kind is AlertKind.SALE
        assert alert.title == "Portal 2 is on sale for 90% off!"
        assert alert.url == "https://store.steampowered.com/app/620"
        assert alert.image_url == "https://cdn.example.com/620/header.jpg"
        assert alert.color == discount_color(90)
        names = [f.name for f in alert.fields]
        assert names == ["Original Price", "Sale Price", "Reviews", "Description"]
        assert alert.fields[2].value == "312000"

    def test_reviews_omitted_when_zero(self) -> None:
        alert = build_sale_alert(_make_snapshot(reviews=0))
        assert "Reviews" not in [f.name for f in alert.fields]

    def test_description_omitted_when_empty(self) -> None:
        alert = build_sale_alert(_make_snapshot(description=""))
        assert "Description" not in [f.name for f in alert.fields]

    def test_full_discount_is_white(self) -> None:
        alert = build_sale_alert(_make_snapshot(discount=100, final_price="Free"))
        assert alert.title == "Portal 2 is on sale for 100% off!"
        assert alert.color == WHITE
        assert render_mdv2(alert).startswith("⚪")


class TestBuildReleaseAlert:
    def test_title_and_fields(self) -> None:
        alert = build_release_alert(_make_snapshot(discount=0, final_price="$59.99"))
        assert alert.kind is AlertKind.RELEASE
        assert alert.title == "Portal 2 has released on Steam!"
        assert alert.color == WHITE
        fields = {f.name: f.value for f in alert.fields}
        assert fields["Price"] == "$59.99"
        assert fields["Description"] == "Sequel to the acclaimed Portal."

    def test_free_release(self) -> None:
        alert = build_release_alert(_make_snapshot(discount=0, final_price=""))
        assert {f.name: f.value for f in alert.fields}["Price"] == "Free"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRenderMdv2:
    def test_sale_layout(self) -> None:
        text = render_mdv2(build_sale_alert(_make_snapshot()))
        lines = text.split("\n")
        assert lines[0] == r"🔴 *Portal 2 is on sale for 90% off\!*"
        assert r"*Original Price:* $9\.99" in lines[1]
        assert r"*Sale Price:* $0\.99" in lines[1]
        assert "*Reviews:* 312000" in lines[1]
        assert r"Sequel to the acclaimed Portal\." in text
        assert text.endswith("[View in store](https://store.steampowered.com/app/620)")

    def test_release_layout(self) -> None:
        text = render_mdv2(build_release_alert(_make_snapshot(discount=0)))
        assert text.startswith(r"⚪ *Portal 2 has released on Steam\!*")
        assert "*Price*" in text

    def test_description_truncated(self) -> None:
        text = render_mdv2(build_sale_alert(_make_snapshot(description="a" * 2000)))
        assert "a" * DESCRIPTION_MAX_CHARS + "…" in text
        assert "a" * (DESCRIPTION_MAX_CHARS + 1) not in text

    def test_special_characters_in_name_escaped(self) -> None:
        text = render_mdv2(build_sale_alert(_make_snapshot(name="Half-Life 2: Episode [One]")))
        assert r"Half\-Life 2: Episode \[One\]" in text


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------


class TestNotifier:
    def test_live_mode_requires_client(self) -> None:
        with pytest.raises(ValueError):
            Notifier(client=None, ctx=RunContext())

    def test_dry_run_needs_no_client(self) -> None:
        Notifier(client=None, ctx=RunContext(dry_run=True))

    async def test_live_send(self) -> None:
        notifier, client = _make_notifier()
        alert = build_sale_alert(_make_snapshot())
        assert await notifier.send("-1001", alert) is True

        client.send_message.assert_awaited_once()
        args, kwargs = client.send_message.call_args
        assert args[0] == "-1001"
        assert args[1] == render_mdv2(alert)
        assert kwargs["preview_url"] == alert.image_url

    async def test_dry_run_logs_instead_of_sending(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        notifier, client = _make_notifier(dry_run=True)
        with caplog.at_level(logging.INFO, logger="salewatch.notifiers.notifier"):
            assert await notifier.send("-1001", build_sale_alert(_make_snapshot())) is True
        client.send_message.assert_not_awaited()
        assert any("[dry-run]" in r.getMessage() for r in caplog.records)

    @pytest.mark.parametrize("chat_id", [None, ""])
    async def test_no_destination(self, chat_id: str | None) -> None:
        notifier, client = _make_notifier()
        assert await notifier.send(chat_id, build_sale_alert(_make_snapshot())) is False
        client.send_message.assert_not_awaited()

    async def test_failure_logged_and_reraised(self, caplog: pytest.LogCaptureFixture) -> None:
        notifier, _ = _make_notifier(send_message_side_effect=TelegramError("chat not found", 400))
        with pytest.raises(TelegramError):
            await notifier.send("-1001", build_sale_alert(_make_snapshot()))
        assert any(r.levelno == logging.ERROR for r in caplog.records)


# ---------------------------------------------------------------------------
# TelegramClient
# ---------------------------------------------------------------------------


class TestTelegramClient:
    def test_empty_token_rejected(self) -> None:
        with pytest.raises(ValueError):
            TelegramClient("")

    async def test_payload_with_preview(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=_OK)

        async with _telegram_client(handler) as client:
            await client.send_message("-1001", "hi", preview_url="https://img/x.jpg")

        assert requests[0].url.path == "/bot123:ABC/sendMessage"
        body = json.loads(requests[0].content)
        assert body["chat_id"] == "-1001"
        assert body["text"] == "hi"
        assert body["parse_mode"] == "MarkdownV2"
        assert body["link_preview_options"] == {
            "url": "https://img/x.jpg",
            "prefer_large_media": True,
        }

    async def test_preview_disabled_without_url(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=_OK)

        async with _telegram_client(handler) as client:
            await client.send_message("-1001", "hi")

        body = json.loads(requests[0].content)
        assert body["link_preview_options"] == {"is_disabled": True}

    async def test_empty_chat_id_rejected(self) -> None:
        async with _telegram_client(lambda r: httpx.Response(200, json=_OK)) as client:
            with pytest.raises(ValueError):
                await client.send_message("", "hi")

    async def test_server_error_retried(self) -> None:
        statuses = [502, 200]

        def handler(request: httpx.Request) -> httpx.Response:
            status = statuses.pop(0)
            return httpx.Response(status, json=_OK if status == 200 else {})

        async with _telegram_client(handler) as client:
            await client.send_message("-1001", "hi")
        assert statuses == []

    async def test_rate_limit_exhausted(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(
                429, json={"ok": False, "parameters": {"retry_after": 3}}
            )

        async with _telegram_client(handler, max_attempts=2) as client:
            with pytest.raises(TelegramRateLimitError) as exc_info:
                await client.send_message("-1001", "hi")
        assert exc_info.value.retry_after == 3.0
        assert len(calls) == 2

    async def test_bad_request_not_retried(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(
                400, json={"ok": False, "description": "Bad Request: can't parse entities"}
            )

        async with _telegram_client(handler) as client:
            with pytest.raises(TelegramError, match="can't parse entities") as exc_info:
                await client.send_message("-1001", "hi")
        assert exc_info.value.status_code == 400
        assert len(calls) == 1

    async def test_ok_false_on_200(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": False, "description": "weird"})

        async with _telegram_client(handler, max_attempts=1) as client:
            with pytest.raises(TelegramError, match="weird"):
                await client.send_message("-1001", "hi")

    async def test_transport_error_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        async with _telegram_client(handler, max_attempts=2) as client:
            with pytest.raises(TelegramError, match="Network error"):
                await client.send_message("-1001", "hi")

"""Unit tests for the core layer.

Covers:
- :class:`~salewatch.core.models.ListingSnapshot` bounds and derived fields.
- :class:`~salewatch.core.models.Subscription` effective threshold.
- :class:`~salewatch.core.settings.Settings` loading, validation, and helpers.
- :class:`~salewatch.core.run_context.RunContext` mode logic.
- :class:`~salewatch.core.logging_config.JsonFormatter` and the pass id filter.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from salewatch.core.logging_config import PASS_ID_CTX, JsonFormatter, PassContextFilter
from salewatch.core.models import (
    DEFAULT_SALE_THRESHOLD,
    AlertKind,
    AlertMessage,
    Group,
    ListingSnapshot,
    Subscription,
)
from salewatch.core.run_context import RunContext
from salewatch.core.settings import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ListingSnapshot
# ---------------------------------------------------------------------------


class TestListingSnapshot:
    def test_defaults(self) -> None:
        snap = ListingSnapshot(listing_id=620)
        assert snap.discount == 0
        assert snap.release_pending is False
        assert snap.reviews == 0
        assert snap.image_url is None
        assert snap.on_sale is False

    def test_url_built_from_id(self) -> None:
        assert ListingSnapshot(listing_id=620).url == "https://store.steampowered.com/app/620"

    @pytest.mark.parametrize("discount", [-1, 101])
    def test_discount_out_of_range_rejected(self, discount: int) -> None:
        with pytest.raises(ValidationError):
            ListingSnapshot(listing_id=620, discount=discount)

    def test_non_positive_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ListingSnapshot(listing_id=0)

    def test_blank_image_url_becomes_none(self) -> None:
        assert ListingSnapshot(listing_id=1, image_url="   ").image_url is None

    def test_price_label_falls_back_to_free(self) -> None:
        assert ListingSnapshot(listing_id=1).price_label == "Free"
        assert ListingSnapshot(listing_id=1, final_price="$4.99").price_label == "$4.99"

    def test_frozen(self) -> None:
        snap = ListingSnapshot(listing_id=1)
        with pytest.raises(ValidationError):
            snap.discount = 50  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Group / Subscription
# ---------------------------------------------------------------------------


class TestSubscription:
    def test_override_wins_when_positive(self) -> None:
        sub = Subscription(listing_id=1, group_id=2, group_threshold=10, threshold_override=50)
        assert sub.effective_threshold == 50

    @pytest.mark.parametrize("override", [None, 0])
    def test_unset_override_uses_group_default(self, override: int | None) -> None:
        sub = Subscription(
            listing_id=1, group_id=2, group_threshold=10, threshold_override=override
        )
        assert sub.effective_threshold == 10

    def test_has_destination(self) -> None:
        assert Subscription(listing_id=1, group_id=2, chat_id="-100").has_destination
        assert not Subscription(listing_id=1, group_id=2, chat_id=None).has_destination
        assert not Subscription(listing_id=1, group_id=2, chat_id="").has_destination

    def test_flags_default_false(self) -> None:
        sub = Subscription(listing_id=1, group_id=2)
        assert sub.trailing_sale_day is False
        assert sub.coming_soon is False

    def test_group_threshold_bounds(self) -> None:
        assert Group(group_id=1).sale_threshold == DEFAULT_SALE_THRESHOLD
        with pytest.raises(ValidationError):
            Group(group_id=1, sale_threshold=0)
        with pytest.raises(ValidationError):
            Group(group_id=1, sale_threshold=100)


class TestAlertMessage:
    def test_empty_title_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AlertMessage(kind=AlertKind.SALE, title="", url="https://x")

    def test_color_bounds(self) -> None:
        with pytest.raises(ValidationError):
            AlertMessage(kind=AlertKind.SALE, title="t", url="https://x", color=0x1000000)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, clean_env: None) -> None:
        settings = Settings()
        assert settings.check_time_of_day == time(10, 5)
        assert settings.check_zone == ZoneInfo("America/Los_Angeles")
        assert settings.rate_limit_cooldown == 300.0
        assert settings.price_source_timeout == 10.0
        assert settings.store_country_code == "US"
        assert settings.dry_run is False
        assert settings.telegram_configured is False

    def test_env_overrides(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHECK_TIME", "07:30")
        monkeypatch.setenv("CHECK_TIMEZONE", "Europe/Rome")
        monkeypatch.setenv("STORE_COUNTRY_CODE", "it")
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:ABC")
        settings = Settings()
        assert settings.check_time_of_day == time(7, 30)
        assert settings.check_zone == ZoneInfo("Europe/Rome")
        assert settings.store_country_code == "IT"
        assert settings.telegram_configured is True

    @pytest.mark.parametrize("value", ["25:00", "10:60", "1005", "ten"])
    def test_invalid_check_time(self, clean_env: None, value: str) -> None:
        with pytest.raises(ValidationError, match="check_time"):
            Settings(check_time=value)

    def test_invalid_timezone(self, clean_env: None) -> None:
        with pytest.raises(ValidationError, match="check_timezone"):
            Settings(check_timezone="Mars/Olympus_Mons")

    def test_non_positive_cooldown_rejected(self, clean_env: None) -> None:
        with pytest.raises(ValidationError):
            Settings(rate_limit_cooldown=0)

    def test_invalid_log_level(self, clean_env: None) -> None:
        with pytest.raises(ValidationError):
            Settings(log_level="VERBOSE")

    def test_database_path_resolved(self, clean_env: None, tmp_path: Path) -> None:
        settings = Settings(database_path=str(tmp_path / "x.db"))
        assert settings.database_path_resolved == (tmp_path / "x.db").resolve()


# ---------------------------------------------------------------------------
# RunContext
# ---------------------------------------------------------------------------


class TestRunContext:
    def test_live_by_default(self) -> None:
        ctx = RunContext()
        assert ctx.should_notify is True
        assert ctx.mode_label == "live"

    def test_dry_run(self) -> None:
        ctx = RunContext(dry_run=True)
        assert ctx.should_notify is False
        assert ctx.mode_label == "dry-run"
        assert "dry-run" in str(ctx)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def _make_record(message: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="salewatch.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_shape(self) -> None:
        payload = json.loads(JsonFormatter().format(_make_record("hi")))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "salewatch.test"
        assert payload["message"] == "hi"
        assert payload["ts"].endswith("Z")

    def test_event_surfaces_under_extra(self) -> None:
        payload = json.loads(JsonFormatter().format(_make_record(event="PASS_START")))
        assert payload["extra"]["event"] == "PASS_START"

    def test_pass_id_injected_by_filter(self) -> None:
        record = _make_record()
        token = PASS_ID_CTX.set("a3f2b1c0")
        try:
            assert PassContextFilter().filter(record) is True
        finally:
            PASS_ID_CTX.reset(token)
        payload = json.loads(JsonFormatter().format(record))
        assert payload["extra"]["pass_id"] == "a3f2b1c0"

    def test_pass_id_defaults_to_dash(self) -> None:
        record = _make_record()
        PassContextFilter().filter(record)
        assert record.pass_id == "-"  # type: ignore[attr-defined]

    def test_exception_included(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _make_record()
            record.exc_info = sys.exc_info()
        payload = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in payload["exc_info"]

"""Per-listing processing: decide, persist flags, notify.

Given a successful :class:`~salewatch.core.models.ListingSnapshot`, every
subscription of that listing is handled independently:

1. :func:`decide_alert` picks at most one alert kind.  A release
   transition (``coming_soon`` was true, the listing is now out) wins over a
   sale; a sale needs ``discount ≥ effective threshold``, no trailing sale
   day and a bound destination.
2. The flags are overwritten from the snapshot (``trailing_sale_day =
   discount > 0``, ``coming_soon = release_pending``).
3. The alert is sent **only if that write succeeded**.  A failed write
   leaves the old flags in place, so the next pass makes the same decision
   again: the alert is deferred, never duplicated.  A failed send after a
   successful write is logged and lost.

A subscriptions lookup failure skips the whole listing for this pass.

Typical usage::

    stats = PassStats()
    await process_listing(snapshot, repo, notifier, stats)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from salewatch.core import events
from salewatch.core.exceptions import StorageError
from salewatch.core.models import AlertKind, ListingSnapshot, Subscription
from salewatch.notifiers.formatter import build_release_alert, build_sale_alert
from salewatch.notifiers.notifier import Notifier
from salewatch.storage.repository import TrackingRepository

__all__ = [
    "PassStats",
    "decide_alert",
    "process_listing",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@dataclass
class PassStats:
    """Counters for one daily pass (including its cooldown resumptions).

    Attributes:
        pass_id: Short identifier shared by every log record of the pass.
        started_at: Instant the trigger opened the pass.
        finished_at: Instant the pass completed or aborted.
        checked: Listings fetched and processed.
        rate_limited: Cooldowns taken.
        skipped: Listings whose subscriptions could not be read.
        sale_alerts: Sale alerts delivered (or logged in dry-run).
        release_alerts: Release alerts delivered (or logged in dry-run).
        notify_failures: Alerts whose delivery failed.
        flag_write_failures: Subscriptions whose flag update failed.
        aborted: ``True`` if a fetch failure ended the pass early.
        abort_reason: Error text for an aborted pass.
    """

    pass_id: str = "-"
    started_at: datetime | None = None
    finished_at: datetime | None = None
    checked: int = 0
    rate_limited: int = 0
    skipped: int = 0
    sale_alerts: int = 0
    release_alerts: int = 0
    notify_failures: int = 0
    flag_write_failures: int = 0
    aborted: bool = False
    abort_reason: str | None = field(default=None)

    @property
    def alerts(self) -> int:
        return self.sale_alerts + self.release_alerts

    @property
    def duration_s(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def format_pass_report(self) -> str:
        """One-line summary logged when the pass ends."""
        outcome = f"ABORTED ({self.abort_reason})" if self.aborted else "complete"
        duration = f" in {self.duration_s:.0f}s" if self.duration_s is not None else ""
        return (
            f"Pass {self.pass_id} {outcome}{duration}: checked={self.checked} "
            f"alerts={self.alerts} (sale={self.sale_alerts} release={self.release_alerts}) "
            f"cooldowns={self.rate_limited} skipped={self.skipped} "
            f"notify_failures={self.notify_failures} "
            f"flag_write_failures={self.flag_write_failures}"
        )


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------


def decide_alert(subscription: Subscription, snapshot: ListingSnapshot) -> AlertKind | None:
    """Return the alert *subscription* should receive for *snapshot*, if any.

    Pure function of the flags as they were before this check.
    """
    if subscription.coming_soon and not snapshot.release_pending:
        return AlertKind.RELEASE
    if (
        snapshot.discount > 0
        and snapshot.discount >= subscription.effective_threshold
        and not subscription.trailing_sale_day
        and subscription.has_destination
    ):
        return AlertKind.SALE
    return None


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


async def _process_subscription(
    subscription: Subscription,
    snapshot: ListingSnapshot,
    repo: TrackingRepository,
    notifier: Notifier,
    stats: PassStats,
) -> None:
    listing_id, group_id = subscription.listing_id, subscription.group_id
    kind = decide_alert(subscription, snapshot)

    try:
        updated = await repo.update_subscription_flags(
            listing_id,
            group_id,
            trailing_sale_day=snapshot.discount > 0,
            coming_soon=snapshot.release_pending,
        )
    except StorageError as exc:
        stats.flag_write_failures += 1
        logger.error(
            "Flag update failed for %s/%s; %s alert deferred: %s",
            listing_id,
            group_id,
            kind or "no",
            exc,
            extra={"event": events.FLAGS_WRITE_FAILED},
        )
        return

    if not updated:
        logger.debug("Subscription %s/%s removed mid-pass; skipped.", listing_id, group_id)
        return

    if kind is None:
        return

    if kind is AlertKind.RELEASE:
        message = build_release_alert(snapshot)
    else:
        message = build_sale_alert(snapshot)
    try:
        sent = await notifier.send(subscription.chat_id, message)
    except Exception as exc:  # noqa: BLE001
        # Notifier already logged the transport error; flags stay as written.
        stats.notify_failures += 1
        logger.warning(
            "%s alert for %s to group %s lost: %s",
            kind.capitalize(),
            listing_id,
            group_id,
            exc,
            extra={"event": events.ALERT_FAILED},
        )
        return

    if not sent:
        return
    if kind is AlertKind.RELEASE:
        stats.release_alerts += 1
    else:
        stats.sale_alerts += 1
    logger.info(
        "%s alert: listing %s → group %s",
        kind.capitalize(),
        listing_id,
        group_id,
        extra={"event": events.ALERT_SENT},
    )


async def process_listing(
    snapshot: ListingSnapshot,
    repo: TrackingRepository,
    notifier: Notifier,
    stats: PassStats,
) -> None:
    """Evaluate every subscription of ``snapshot.listing_id``.

    Failures are isolated: a subscriptions lookup failure skips the listing,
    and a flag-write or send failure affects only its own subscription.
    """
    try:
        subscriptions = await repo.subscriptions_of(snapshot.listing_id)
    except StorageError as exc:
        stats.skipped += 1
        logger.error(
            "Listing %s skipped: %s",
            snapshot.listing_id,
            exc,
            extra={"event": events.LISTING_SKIPPED},
        )
        return

    for subscription in subscriptions:
        await _process_subscription(subscription, snapshot, repo, notifier, stats)

    stats.checked += 1
    logger.debug(
        "Listing %s checked: discount=%d%% release_pending=%s subscriptions=%d",
        snapshot.listing_id,
        snapshot.discount,
        snapshot.release_pending,
        len(subscriptions),
        extra={"event": events.LISTING_CHECKED},
    )
